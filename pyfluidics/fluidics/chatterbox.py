import asyncio

from pyfluidics.fluidics.backend import CommunicatorBackend


class CommunicatorChatterboxBackend(CommunicatorBackend):
  """ Chatter box backend for device-free testing. Prints out all messages. """

  def __init__(self, read_interval: float = 0.1):
    super().__init__()
    self.read_interval = read_interval

  async def setup(self):
    print("Connecting to the microcontroller.")

  async def stop(self):
    print("Disconnecting from the microcontroller.")

  async def send_message(self, data: bytes):
    print(f"Sending message: {data.hex(' ')}")

  async def read(self) -> bytes:
    await asyncio.sleep(self.read_interval)
    return b""
