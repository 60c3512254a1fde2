from abc import ABCMeta, abstractmethod

from pyfluidics.machines.backend import MachineBackend


class CommunicatorBackend(MachineBackend, metaclass=ABCMeta):
  """ Abstract base class for the transports connecting to the microcontroller.

  A backend moves bytes; framing and interpretation are done by the `Communicator`.
  """

  @abstractmethod
  async def setup(self):
    """ Connect to the microcontroller. """

  @abstractmethod
  async def stop(self):
    """ Close the connection to the microcontroller. """

  @abstractmethod
  async def send_message(self, data: bytes):
    """ Write an already framed message to the link. """

  @abstractmethod
  async def read(self) -> bytes:
    """ Read the bytes that arrived since the last call.

    May return an empty bytes object when nothing arrived within the transport's read timeout.
    Raises `ConnectionError` when the link is closed by the other side.
    """
