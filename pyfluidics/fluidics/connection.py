import logging
from typing import Callable, List

from pyfluidics.fluidics.enums import ConnectionStatus

logger = logging.getLogger("pyfluidics")

ConnectionStatusCallback = Callable[[ConnectionStatus], None]


class ConnectionState:
  """ Connection status of the link to the microcontroller.

  Transitions are driven by whoever owns the transport; observers registered with
  `register_callback` are called with the new status on every change.
  """

  def __init__(self, status: ConnectionStatus = ConnectionStatus.DISCONNECTED):
    self._status = status
    self._callbacks: List[ConnectionStatusCallback] = []

  @property
  def status(self) -> ConnectionStatus:
    return self._status

  @property
  def status_string(self) -> str:
    """ The connection status in human-readable form. """
    return self._status.value

  def register_callback(self, callback: ConnectionStatusCallback) -> None:
    self._callbacks.append(callback)

  def deregister_callback(self, callback: ConnectionStatusCallback) -> None:
    self._callbacks.remove(callback)

  def set_status(self, status: ConnectionStatus) -> None:
    if status == self._status:
      return
    logger.info("Connection status: %s -> %s", self._status.value, status.value)
    self._status = status
    for callback in self._callbacks:
      callback(status)
