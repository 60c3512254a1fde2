from typing import Optional

from pyfluidics.config import Config
from pyfluidics.fluidics.backend import CommunicatorBackend
from pyfluidics.io.serial import Serial


class SerialBackend(CommunicatorBackend):
  """ USB serial connection to the microcontroller.

  Args:
    port: serial port of the microcontroller, e.g. `/dev/ttyACM0` or `COM3`.
    baudrate: baud rate configured in the firmware.
    read_size: maximum number of bytes returned by one `read`.
    timeout: read timeout in seconds. `read` returns early when bytes are available.
  """

  def __init__(self, port: str, baudrate: int = 115200, read_size: int = 64,
               timeout: float = 0.05):
    super().__init__()
    self.port = port
    self.baudrate = baudrate
    self.read_size = read_size
    self.timeout = timeout
    self.io = Serial(port=self.port, baudrate=self.baudrate, timeout=self.timeout)

  @classmethod
  def from_config(cls, config: Optional[Config] = None) -> "SerialBackend":
    """ Create a backend from the `link` section of a config, by default the one loaded on
    import. """
    if config is None:
      import pyfluidics  # pylint: disable=import-outside-toplevel
      config = pyfluidics.CONFIG
    if config.link.port is None:
      raise ValueError("No serial port configured. Set `port` in the `link` section.")
    return cls(port=config.link.port, baudrate=config.link.baudrate,
               read_size=config.link.read_size)

  async def setup(self):
    await self.io.setup()
    await self.io.reset_input_buffer()

  async def stop(self):
    await self.io.stop()

  async def send_message(self, data: bytes):
    await self.io.write(data)

  async def read(self) -> bytes:
    return await self.io.read(self.read_size)
