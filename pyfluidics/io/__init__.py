from .io import LOG_LEVEL_IO, IOBase
from .serial import Serial
from .socket import RfcommSocket
