"""Interpretation of decoded messages received from the microcontroller."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar

from pyfluidics.fluidics.components import ComponentRegistry
from pyfluidics.fluidics.constants import PR_MAX_VALUE
from pyfluidics.fluidics.enums import NUM_COMMANDS, Command, LogLevel
from pyfluidics.fluidics.errors import MessageError
from pyfluidics.fluidics.events import (
  DeviceEvent,
  DeviceLog,
  PressureChanged,
  PressureSetpointChanged,
  PumpStateChanged,
  UptimeChanged,
  ValveStateChanged,
)

logger = logging.getLogger("pyfluidics")

T = TypeVar("T")


@dataclass(frozen=True)
class Message:
  command: Command
  parameters: List[bytes]


def parse_message(raw: bytes) -> Message:
  """Split a decoded message into its command and parameters.

  Messages have the format `command param_size param_data [param_size param_data] ...`.

  Raises:
    MessageError: if the message is empty, has an unknown command, or a parameter size that
      overruns the message.
  """

  if len(raw) == 0:
    raise MessageError("Empty message", raw)

  if raw[0] >= NUM_COMMANDS:
    raise MessageError(f"Unknown command received: {raw[0]}", raw)
  command = Command(raw[0])

  parameters: List[bytes] = []
  i = 1
  while i < len(raw):
    size = raw[i]
    i += 1
    if i + size > len(raw):
      raise MessageError(f"Parameter of {command.name} command incomplete: declared {size} "
                         f"bytes, {len(raw) - i} remaining", raw)
    parameters.append(raw[i:i + size])
    i += size

  return Message(command=command, parameters=parameters)


def _check_shape(command: Command, parameters: Sequence[bytes], sizes: Sequence[Optional[int]]):
  """ Check the arity and the parameter sizes of a message. `None` accepts any size. """
  if len(parameters) != len(sizes):
    raise MessageError(f"Invalid number of parameters for {command.name} command: "
                       f"{len(parameters)}")
  for parameter, size in zip(parameters, sizes):
    if size is not None and len(parameter) != size:
      raise MessageError(f"Invalid parameter sizes for {command.name} command")


def _component(lookup: Callable[[int], T], number: int) -> T:
  """ Look up a component reported on the wire; unknown numbers make the message invalid. """
  try:
    return lookup(number)
  except ValueError as e:
    raise MessageError(str(e)) from e


def log_microcontroller_message(level: Optional[LogLevel], message: str):
  """ Re-emit a log message from the microcontroller on the pyfluidics logger. """
  if level == LogLevel.FATAL:
    logger.critical("Microcontroller: %s", message)
  elif level == LogLevel.ERROR:
    logger.error("Microcontroller: %s", message)
  elif level == LogLevel.WARNING:
    logger.warning("Microcontroller: %s", message)
  elif level == LogLevel.INFO:
    logger.info("Microcontroller: %s", message)
  elif level == LogLevel.DEBUG:
    logger.debug("Microcontroller: %s", message)
  else:
    logger.debug("Message from microcontroller with unknown level: %s", message)


class CommandDispatcher:
  """ Turns decoded messages into `DeviceEvent`s.

  Malformed messages are logged and dropped as a whole: `dispatch` never returns a partial set
  of events for a message. Reports for components that `components` does not have are
  malformed too.
  """

  def __init__(self, components: Optional[ComponentRegistry] = None):
    self.components = components or ComponentRegistry()

  def dispatch(self, raw: bytes) -> List[DeviceEvent]:
    try:
      message = parse_message(raw)
      return self.handle(message)
    except MessageError as e:
      logger.warning("%s; ignoring message %s", e, raw.hex())
      return []

  def handle(self, message: Message) -> List[DeviceEvent]:
    """ Validate a parsed message and create its events.

    Raises:
      MessageError: if the message doesn't have the parameters its command requires.
    """

    command, parameters = message.command, message.parameters

    if command == Command.VALVE:
      # valve number, state (0 closed, nonzero open)
      _check_shape(command, parameters, (1, 1))
      valve = _component(self.components.valve, parameters[0][0])
      return [ValveStateChanged(valve=valve, open=parameters[1][0] != 0)]

    if command == Command.PUMP:
      _check_shape(command, parameters, (1, 1))
      pump = _component(self.components.pump, parameters[0][0])
      return [PumpStateChanged(pump=pump, on=parameters[1][0] != 0)]

    if command == Command.PRESSURE:
      # controller number, setpoint, measured value
      _check_shape(command, parameters, (1, 1, 1))
      controller = _component(self.components.pressure_controller, parameters[0][0])
      return [
        PressureSetpointChanged(controller=controller, setpoint=parameters[1][0] / PR_MAX_VALUE),
        PressureChanged(controller=controller, pressure=parameters[2][0] / PR_MAX_VALUE),
      ]

    if command == Command.UPTIME:
      _check_shape(command, parameters, (4,))
      (seconds,) = struct.unpack(">I", parameters[0])
      return [UptimeChanged(seconds=seconds)]

    if command == Command.LOG:
      _check_shape(command, parameters, (1, None))
      level: Optional[LogLevel]
      try:
        level = LogLevel(parameters[0][0])
      except ValueError:
        level = None
      text = parameters[1].decode("utf-8", errors="replace")
      log_microcontroller_message(level, text)
      return [DeviceLog(level=level, message=text)]

    if command == Command.ERROR:
      logger.warning("Error received from microcontroller")
      return []

    # STATUS is only ever sent to the microcontroller
    raise MessageError(f"Unexpected {command.name} command received")
