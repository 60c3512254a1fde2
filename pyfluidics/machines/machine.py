from __future__ import annotations

import functools
import logging
import sys
from abc import ABC
from typing import Any, Awaitable, Callable, TypeVar

from pyfluidics.machines.backend import MachineBackend

if sys.version_info < (3, 10):
  from typing_extensions import ParamSpec
else:
  from typing import ParamSpec

logger = logging.getLogger("pyfluidics")

_P = ParamSpec("_P")
_R = TypeVar("_R", bound=Awaitable[Any])


def need_setup_finished(func: Callable[_P, _R]) -> Callable[_P, _R]:
  """ Decorator for frontend methods that talk to the hardware.

  Raises:
    RuntimeError: if `setup` has not finished, or `stop` was called since.
  """

  @functools.wraps(func)
  async def wrapper(*args, **kwargs):
    machine = args[0]
    assert isinstance(machine, Machine), "The first argument must be a Machine."

    if not machine.setup_finished:
      raise RuntimeError(f"{type(machine).__name__} is not set up. Call `setup` first.")
    return await func(*args, **kwargs)

  return wrapper  # type: ignore[return-value]


class Machine(ABC):
  """ Frontend of a piece of hardware. All communication goes through `backend`. """

  def __init__(self, backend: MachineBackend):
    self.backend = backend
    self._setup_finished = False

  @property
  def setup_finished(self) -> bool:
    return self._setup_finished

  async def setup(self, **backend_kwargs):
    """ Set up the backend. Raises `RuntimeError` if the machine is set up already. """
    if self._setup_finished:
      raise RuntimeError(f"{type(self).__name__} is set up already.")
    logger.debug("Setting up %s", type(self.backend).__name__)
    await self.backend.setup(**backend_kwargs)
    self._setup_finished = True

  @need_setup_finished
  async def stop(self):
    """ Stop the backend. The machine counts as stopped even when the backend fails to stop. """
    logger.debug("Stopping %s", type(self.backend).__name__)
    try:
      await self.backend.stop()
    finally:
      self._setup_finished = False

  async def __aenter__(self):
    await self.setup()
    return self

  async def __aexit__(self, exc_type, exc_value, traceback):
    await self.stop()
