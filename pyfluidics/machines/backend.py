from abc import ABC, abstractmethod


class MachineBackend(ABC):
  """ Abstract class for machine backends: the part of a machine that talks to the hardware. """

  @abstractmethod
  async def setup(self):
    """ Open the connection to the hardware. """

  @abstractmethod
  async def stop(self):
    """ Close the connection to the hardware. """
