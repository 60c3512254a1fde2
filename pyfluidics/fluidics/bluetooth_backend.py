import asyncio

from pyfluidics.fluidics.backend import CommunicatorBackend
from pyfluidics.io.socket import RfcommSocket


class BluetoothBackend(CommunicatorBackend):
  """ Bluetooth (RFCOMM serial profile) connection to the microcontroller.

  Args:
    address: MAC address of the microcontroller's Bluetooth module, e.g. `98:D3:31:FB:2A:11`.
    channel: RFCOMM channel.
    read_size: maximum number of bytes returned by one `read`.
    read_timeout: seconds `read` waits for data before returning an empty result.
  """

  def __init__(self, address: str, channel: int = 1, read_size: int = 64,
               read_timeout: float = 0.5):
    super().__init__()
    self.address = address
    self.channel = channel
    self.read_size = read_size
    self.read_timeout = read_timeout
    self.io = RfcommSocket(address=self.address, channel=self.channel)

  async def setup(self):
    await self.io.setup()

  async def stop(self):
    await self.io.stop()

  async def send_message(self, data: bytes):
    await self.io.write(data)

  async def read(self) -> bytes:
    try:
      data = await self.io.read(self.read_size, timeout=self.read_timeout)
    except asyncio.TimeoutError:
      return b""
    if len(data) == 0:
      raise ConnectionError(f"Bluetooth connection to {self.address} closed")
    return data
