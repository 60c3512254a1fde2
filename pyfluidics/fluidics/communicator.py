import asyncio
import logging
from typing import Callable, List, Optional, Union

from pyfluidics.fluidics.backend import CommunicatorBackend
from pyfluidics.fluidics.components import (
  ComponentRegistry,
  PressureController,
  Pump,
  Valve,
)
from pyfluidics.fluidics.connection import ConnectionState, ConnectionStatusCallback
from pyfluidics.fluidics.constants import PR_MAX_VALUE
from pyfluidics.fluidics.dispatcher import CommandDispatcher
from pyfluidics.fluidics.enums import Command, ConnectionStatus
from pyfluidics.fluidics.events import DeviceEvent, DeviceEventCallback
from pyfluidics.fluidics.intents import (
  ControlIntent,
  IntentChannel,
  SetInputMultiplexer,
  SetMultiplexer,
  SetPressure,
  SetPump,
  SetValve,
)
from pyfluidics.fluidics.protocol import FrameDecoder, encode
from pyfluidics.machines.machine import Machine, need_setup_finished

logger = logging.getLogger("pyfluidics")

MultiplexerCallback = Callable[[Union[SetMultiplexer, SetInputMultiplexer]], None]


class Communicator(Machine):
  """ Frontend for the microcontroller driving the valves, pumps and pressure controllers.

  `set_valve`, `set_pump` and `set_pressure` tell the microcontroller to do something, while
  `request_status` asks it to report the status of all components. Reports arrive as
  `DeviceEvent`s, passed to the callbacks registered with `register_callback`.

  Valves, pumps and pressure controllers are 1-indexed; their numbers are checked against
  `components`.

  Routines and other threads must not call the async methods directly. They post
  `ControlIntent`s to `intents`, which are performed on the event loop `setup` was called on.

  Example:
    >>> communicator = Communicator(backend=SerialBackend(port="/dev/ttyACM0"))
    >>> await communicator.setup()
    >>> await communicator.set_valve(3, True)
    >>> await communicator.set_pressure(1, 0.5)
  """

  def __init__(
    self,
    backend: CommunicatorBackend,
    components: Optional[ComponentRegistry] = None,
  ):
    super().__init__(backend=backend)
    self.backend: CommunicatorBackend = backend  # fix type
    self.components = components or ComponentRegistry()

    self.decoder = FrameDecoder()
    self.dispatcher = CommandDispatcher(self.components)
    self.connection = ConnectionState()
    self.intents = IntentChannel()

    self._callbacks: List[DeviceEventCallback] = []
    self._multiplexer_callbacks: List[MultiplexerCallback] = []
    self._reader_task: Optional[asyncio.Task] = None
    self._intent_task: Optional[asyncio.Task] = None

  @property
  def connection_status(self) -> ConnectionStatus:
    return self.connection.status

  @property
  def connection_status_string(self) -> str:
    return self.connection.status_string

  def register_callback(self, callback: DeviceEventCallback) -> None:
    """ Register a callback called with every event reported by the microcontroller. """
    self._callbacks.append(callback)

  def deregister_callback(self, callback: DeviceEventCallback) -> None:
    self._callbacks.remove(callback)

  def register_connection_callback(self, callback: ConnectionStatusCallback) -> None:
    self.connection.register_callback(callback)

  def register_multiplexer_callback(self, callback: MultiplexerCallback) -> None:
    """ Register a callback for multiplexer intents. Multiplexers are not driven by the
    microcontroller, so these intents are handed over as they are. """
    self._multiplexer_callbacks.append(callback)

  async def setup(self, **backend_kwargs):
    if self.setup_finished:
      raise RuntimeError("Communicator is connected already.")
    self.connection.set_status(ConnectionStatus.CONNECTING)
    self.decoder.reset()
    try:
      await super().setup(**backend_kwargs)
    except Exception:
      self.connection.set_status(ConnectionStatus.DISCONNECTED)
      raise
    self.connection.set_status(ConnectionStatus.CONNECTED)

    loop = asyncio.get_running_loop()
    self._reader_task = loop.create_task(self._read_loop())
    self._intent_task = loop.create_task(self.intents.serve(self.apply))

  async def stop(self):
    for task in (self._reader_task, self._intent_task):
      if task is not None:
        task.cancel()
        try:
          await task
        except asyncio.CancelledError:
          pass
    self._reader_task = None
    self._intent_task = None

    try:
      if self.setup_finished:
        await super().stop()
    finally:
      self.connection.set_status(ConnectionStatus.DISCONNECTED)

  async def _read_loop(self):
    try:
      while True:
        data = await self.backend.read()
        if len(data) > 0:
          self.receive(data)
    except asyncio.CancelledError:
      raise
    except Exception: # pylint: disable=broad-except
      logger.exception("Error while reading from the microcontroller")
      self.connection.set_status(ConnectionStatus.DISCONNECTED)

  def receive(self, data: bytes) -> List[DeviceEvent]:
    """ Handle bytes received from the microcontroller.

    Every complete message is dispatched and its events are passed to the registered callbacks.
    Incomplete messages are kept until the rest arrives.

    Returns:
      The events, in the order they were received.
    """

    events: List[DeviceEvent] = []
    for message in self.decoder.messages(data):
      for event in self.dispatcher.dispatch(message):
        events.append(event)
        for callback in self._callbacks:
          callback(event)
    return events

  async def _send(self, command: Command, *parameters: bytes):
    await self.backend.send_message(encode(command, parameters))

  @need_setup_finished
  async def set_valve(
    self, valve: Union[Valve, int], open: bool  # pylint: disable=redefined-builtin
  ):
    """ Open or close a valve.

    Args:
      valve: the valve, or its number.
      open: if `True` the valve is opened, otherwise it is closed.
    """

    number = valve.number if isinstance(valve, Valve) else valve
    valve = self.components.valve(number)
    logger.debug("Setting %s %s", valve, "open" if open else "closed")
    await self._send(Command.VALVE, bytes([valve.number]), bytes([int(open)]))

  @need_setup_finished
  async def set_pump(self, pump: Union[Pump, int], on: bool):
    """ Switch a pump on or off. """

    number = pump.number if isinstance(pump, Pump) else pump
    pump = self.components.pump(number)
    logger.debug("Setting %s %s", pump, "on" if on else "off")
    await self._send(Command.PUMP, bytes([pump.number]), bytes([int(on)]))

  @need_setup_finished
  async def set_pressure(self, controller: Union[PressureController, int], pressure: float):
    """ Set the setpoint of a pressure controller.

    Args:
      controller: the pressure controller, or its number.
      pressure: between 0 and 1, 0 being the minimum and 1 the maximum pressure of the
        controller. Values outside this range are rejected with a warning and nothing is sent.
    """

    number = controller.number if isinstance(controller, PressureController) else controller
    controller = self.components.pressure_controller(number)
    if not 0 <= pressure <= 1:
      logger.warning("Pressure %s invalid for %s. Must be between 0 and 1.", pressure, controller)
      return
    setpoint = int(pressure * PR_MAX_VALUE)
    logger.debug("Setting %s to %s", controller, pressure)
    await self._send(Command.PRESSURE, bytes([controller.number]), bytes([setpoint]))

  @need_setup_finished
  async def request_status(self):
    """ Request the status of all components. """
    logger.debug("Requesting status of all components")
    await self._send(Command.STATUS)

  async def apply(self, intent: ControlIntent):
    """ Perform a control intent. """

    if isinstance(intent, SetValve):
      await self.set_valve(intent.valve, intent.open)
    elif isinstance(intent, SetPump):
      await self.set_pump(intent.pump, intent.on)
    elif isinstance(intent, SetPressure):
      await self.set_pressure(intent.controller, intent.pressure)
    elif isinstance(intent, (SetMultiplexer, SetInputMultiplexer)):
      if len(self._multiplexer_callbacks) == 0:
        logger.warning("No multiplexer registered; ignoring %s", intent)
      for callback in self._multiplexer_callbacks:
        callback(intent)
    else:
      raise TypeError(f"Unknown intent: {intent!r}")
