import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, cast

import serial

from pyfluidics.io.io import LOG_LEVEL_IO, IOBase

logger = logging.getLogger(__name__)


class Serial(IOBase):
  """Thin wrapper around serial.Serial that runs blocking calls on a single worker thread and
  logs all traffic at the IO level."""

  def __init__(
    self,
    port: str,
    baudrate: int = 9600,
    bytesize: int = serial.EIGHTBITS,
    parity: str = serial.PARITY_NONE,
    stopbits: int = serial.STOPBITS_ONE,
    write_timeout=1,
    timeout=1,
    rtscts: bool = False,
  ):
    self._port = port
    self.baudrate = baudrate
    self.bytesize = bytesize
    self.parity = parity
    self.stopbits = stopbits
    self._ser: Optional[serial.Serial] = None
    self._executor: Optional[ThreadPoolExecutor] = None
    self.write_timeout = write_timeout
    self.timeout = timeout
    self.rtscts = rtscts

  @property
  def port(self) -> str:
    return self._port

  async def setup(self):
    loop = asyncio.get_running_loop()
    self._executor = ThreadPoolExecutor(max_workers=1)

    def _open_serial() -> serial.Serial:
      return serial.Serial(
        port=self._port,
        baudrate=self.baudrate,
        bytesize=self.bytesize,
        parity=self.parity,
        stopbits=self.stopbits,
        write_timeout=self.write_timeout,
        timeout=self.timeout,
        rtscts=self.rtscts,
      )

    try:
      self._ser = await loop.run_in_executor(self._executor, _open_serial)
    except serial.SerialException as e:
      logger.error("Could not connect to device on %s, is it in use by a different process?",
                   self._port)
      if self._executor is not None:
        self._executor.shutdown(wait=True)
        self._executor = None
      raise e

  async def stop(self):
    if self._ser is not None and self._ser.is_open:
      loop = asyncio.get_running_loop()
      if self._executor is None:
        raise RuntimeError("Call setup() first.")
      await loop.run_in_executor(self._executor, self._ser.close)
    if self._executor is not None:
      self._executor.shutdown(wait=True)
      self._executor = None

  async def write(self, data: bytes):
    assert self._ser is not None, "forgot to call setup?"
    loop = asyncio.get_running_loop()
    if self._executor is None:
      raise RuntimeError("Call setup() first.")
    await loop.run_in_executor(self._executor, self._ser.write, data)
    logger.log(LOG_LEVEL_IO, "[%s] write %s", self._port, data.hex())

  async def read(self, num_bytes: int = 1) -> bytes:
    """Read up to `num_bytes` bytes, returning fewer when the read timeout expires."""
    assert self._ser is not None, "forgot to call setup?"
    loop = asyncio.get_running_loop()
    if self._executor is None:
      raise RuntimeError("Call setup() first.")
    data = await loop.run_in_executor(self._executor, self._ser.read, num_bytes)
    if len(data) > 0:
      logger.log(LOG_LEVEL_IO, "[%s] read %s", self._port, data.hex())
    return cast(bytes, data)

  async def reset_input_buffer(self):
    assert self._ser is not None, "forgot to call setup?"
    loop = asyncio.get_running_loop()
    if self._executor is None:
      raise RuntimeError("Call setup() first.")
    await loop.run_in_executor(self._executor, self._ser.reset_input_buffer)
    logger.log(LOG_LEVEL_IO, "[%s] reset_input_buffer", self._port)
