import asyncio
import logging
import socket
from typing import Optional

from pyfluidics.io.io import LOG_LEVEL_IO, IOBase

logger = logging.getLogger(__name__)


class RfcommSocket(IOBase):
  """IO for reading/writing to a Bluetooth RFCOMM (serial port profile) stream socket.

  The socket is driven through asyncio streams. Requires a Python built with Bluetooth support
  (Linux, Windows).

  Args:
    address: MAC address of the remote device.
    channel: RFCOMM channel.
  """

  def __init__(
    self,
    address: str,
    channel: int = 1,
    read_timeout: float = 30,
    write_timeout: float = 30,
  ):
    self._address = address
    self._channel = channel
    self._reader: Optional[asyncio.StreamReader] = None
    self._writer: Optional[asyncio.StreamWriter] = None
    self._read_timeout = read_timeout
    self._write_timeout = write_timeout
    self._unique_id = f"{self._address}/{self._channel}"
    self._read_lock = asyncio.Lock()
    self._write_lock = asyncio.Lock()

  @property
  def address(self) -> str:
    return self._address

  @property
  def channel(self) -> int:
    return self._channel

  def _create_socket(self) -> socket.socket:
    if not hasattr(socket, "AF_BLUETOOTH"):
      raise RuntimeError("This Python build does not support Bluetooth sockets.")
    return socket.socket(
      socket.AF_BLUETOOTH, # type: ignore[attr-defined]
      socket.SOCK_STREAM,
      socket.BTPROTO_RFCOMM, # type: ignore[attr-defined]
    )

  async def setup(self):
    sock = self._create_socket()
    sock.setblocking(False)
    loop = asyncio.get_running_loop()
    try:
      await loop.sock_connect(sock, (self._address, self._channel))
    except OSError:
      logger.error("Could not connect to %s", self._unique_id)
      sock.close()
      raise
    self._reader, self._writer = await asyncio.open_connection(sock=sock)
    logger.info("Connected to %s", self._unique_id)

  async def stop(self):
    async with self._read_lock, self._write_lock:
      self._reader = None
      if self._writer is None:
        return

      logger.info("Closing connection to %s", self._unique_id)

      try:
        self._writer.close()
        await self._writer.wait_closed()
      except OSError as e:
        logger.warning("Error while closing connection: %s", e)
      finally:
        self._writer = None

  async def write(self, data: bytes, timeout: Optional[float] = None) -> None:
    """Wrapper around StreamWriter.write with lock and io logging.
    Does not retry on timeouts.
    """
    assert self._writer is not None, "forgot to call setup?"

    async with self._write_lock:
      self._writer.write(data)
      logger.log(LOG_LEVEL_IO, "[%s] write %s", self._unique_id, data.hex())
      try:
        await asyncio.wait_for(self._writer.drain(), timeout=timeout or self._write_timeout)
      except (ConnectionResetError, OSError) as e:
        logger.error("write error: %r", e)
        raise

  async def read(self, num_bytes: int = 128, timeout: Optional[float] = None) -> bytes:
    """Wrapper around StreamReader.read with lock and io logging. Returns b"" at EOF."""
    assert self._reader is not None, "forgot to call setup?"
    async with self._read_lock:
      data = await asyncio.wait_for(self._reader.read(num_bytes),
                                    timeout=timeout or self._read_timeout)
      logger.log(LOG_LEVEL_IO, "[%s] read %s", self._unique_id, data.hex())
      return data
