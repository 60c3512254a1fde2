"""Events raised by the communicator when the microcontroller reports component states."""

from dataclasses import dataclass
from typing import Callable, Union

from pyfluidics.fluidics.components import PressureController, Pump, Valve
from pyfluidics.fluidics.enums import LogLevel


@dataclass(frozen=True)
class ValveStateChanged:
  valve: Valve
  open: bool


@dataclass(frozen=True)
class PumpStateChanged:
  pump: Pump
  on: bool


@dataclass(frozen=True)
class PressureSetpointChanged:
  """ `setpoint` is normalized to [0, 1] of the controller's range. """
  controller: PressureController
  setpoint: float


@dataclass(frozen=True)
class PressureChanged:
  """ `pressure` is the measured value, normalized to [0, 1] of the controller's range. """
  controller: PressureController
  pressure: float


@dataclass(frozen=True)
class UptimeChanged:
  seconds: int


@dataclass(frozen=True)
class DeviceLog:
  """ A log message sent by the microcontroller. `level` is `None` for unknown levels. """
  level: Union[LogLevel, None]
  message: str


DeviceEvent = Union[
  ValveStateChanged,
  PumpStateChanged,
  PressureSetpointChanged,
  PressureChanged,
  UptimeChanged,
  DeviceLog,
]

DeviceEventCallback = Callable[[DeviceEvent], None]
