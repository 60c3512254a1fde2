"""Control intents and the channel that carries them to the owner of the link.

Routines run on their own thread, but writes to the transport have to happen on the event loop
that owns it. The routine interpreter therefore never writes; it posts intents, and the
communicator performs them on its loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, List, Optional, Union

from pyfluidics.fluidics.components import PressureController, Pump, Valve

logger = logging.getLogger("pyfluidics")


@dataclass(frozen=True)
class SetValve:
  valve: Valve
  open: bool


@dataclass(frozen=True)
class SetPump:
  pump: Pump
  on: bool


@dataclass(frozen=True)
class SetPressure:
  """ `pressure` is a fraction of the controller's range, between 0 and 1. """
  controller: PressureController
  pressure: float


@dataclass(frozen=True)
class SetMultiplexer:
  channel: str


@dataclass(frozen=True)
class SetInputMultiplexer:
  channel: str


ControlIntent = Union[SetValve, SetPump, SetPressure, SetMultiplexer, SetInputMultiplexer]

IntentHandler = Callable[[ControlIntent], Awaitable[None]]


class IntentChannel:
  """ Thread-safe hand-off of control intents to an asyncio event loop.

  `post` may be called from any thread. Intents are delivered to the handler passed to `serve`,
  on the loop `serve` runs on, in the order they were posted.

  An intent stays in `pending` until the serving loop has moved it to its queue. Intents posted
  before `serve` has started, or while its loop is stopped, are delivered once the loop runs
  again, or by the next `serve`.
  """

  def __init__(self):
    self._lock = threading.Lock()
    self._loop: Optional[asyncio.AbstractEventLoop] = None
    self._queue: Optional["asyncio.Queue[ControlIntent]"] = None
    self._backlog: Deque[ControlIntent] = deque()

  @property
  def pending(self) -> List[ControlIntent]:
    """ Intents posted but not yet picked up by a running `serve`. """
    with self._lock:
      return list(self._backlog)

  def post(self, intent: ControlIntent) -> None:
    with self._lock:
      self._backlog.append(intent)
      if self._loop is None or self._queue is None:
        return
      loop, queue = self._loop, self._queue

    if not loop.is_running():
      logger.debug("Event loop not running; %s stays pending", intent)
    try:
      # runs once the loop runs, so a stopped loop picks the intent up when it is restarted
      loop.call_soon_threadsafe(self._flush, queue)
    except RuntimeError:
      logger.warning("Event loop closed; %s stays pending until `serve` is started again", intent)

  def _flush(self, queue: "asyncio.Queue[ControlIntent]"):
    with self._lock:
      if self._queue is not queue:
        return
      while self._backlog:
        queue.put_nowait(self._backlog.popleft())

  def _bind(self) -> "asyncio.Queue[ControlIntent]":
    queue: "asyncio.Queue[ControlIntent]" = asyncio.Queue()
    with self._lock:
      self._loop = asyncio.get_running_loop()
      self._queue = queue
    self._flush(queue)
    return queue

  def _unbind(self, queue: "asyncio.Queue[ControlIntent]"):
    with self._lock:
      if self._queue is queue:
        self._loop = None
        self._queue = None
      # intents still queued were posted before the ones in the backlog
      unhandled = []
      while not queue.empty():
        unhandled.append(queue.get_nowait())
      self._backlog.extendleft(reversed(unhandled))

  async def serve(self, handler: IntentHandler) -> None:
    """ Deliver intents to `handler` until cancelled. Errors raised by the handler are logged
    and do not stop the channel. """
    queue = self._bind()
    try:
      while True:
        intent = await queue.get()
        try:
          await handler(intent)
        except Exception: # pylint: disable=broad-except
          logger.exception("Error while handling %s", intent)
    finally:
      self._unbind(queue)
