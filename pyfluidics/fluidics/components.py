"""Addressable hardware components.

Valves, pumps and pressure controllers each have their own 1-indexed identifier type, so a
valve number can never be passed where a controller number is expected.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from pyfluidics.fluidics.constants import (
  DEFAULT_NUM_PRESSURE_CONTROLLERS,
  DEFAULT_NUM_PUMPS,
  DEFAULT_NUM_VALVES,
  DEFAULT_PRESSURE_RANGES,
)


def _check_number(kind: str, number: int):
  if isinstance(number, bool) or not isinstance(number, int):
    raise TypeError(f"{kind} number must be an int, got {number!r}")
  if not 1 <= number <= 0xFF:
    raise ValueError(f"{kind} number must be between 1 and 255, got {number}")


@dataclass(frozen=True)
class Valve:
  number: int

  def __post_init__(self):
    _check_number("Valve", self.number)

  def __str__(self) -> str:
    return f"valve {self.number}"


@dataclass(frozen=True)
class Pump:
  number: int

  def __post_init__(self):
    _check_number("Pump", self.number)

  def __str__(self) -> str:
    return f"pump {self.number}"


@dataclass(frozen=True)
class PressureController:
  number: int

  def __post_init__(self):
    _check_number("Pressure controller", self.number)

  def __str__(self) -> str:
    return f"pressure controller {self.number}"


@dataclass(frozen=True)
class AllValves:
  """Sentinel addressing every valve at once."""

  def __str__(self) -> str:
    return "all valves"


ALL_VALVES = AllValves()

ValveTarget = Union[Valve, AllValves]


class ComponentRegistry:
  """ The components available on the connected hardware, and the pressure range of each
  pressure controller.

  Args:
    num_valves: number of valves, addressed 1 to `num_valves`.
    num_pressure_controllers: number of pressure controllers.
    num_pumps: number of pumps.
    pressure_ranges: `(min, max)` per controller number. Controllers without an entry use
      `(0, 1)`.
  """

  def __init__(
    self,
    num_valves: int = DEFAULT_NUM_VALVES,
    num_pressure_controllers: int = DEFAULT_NUM_PRESSURE_CONTROLLERS,
    num_pumps: int = DEFAULT_NUM_PUMPS,
    pressure_ranges: Optional[Dict[int, Tuple[float, float]]] = None,
  ):
    for name, count in (("num_valves", num_valves), ("num_pumps", num_pumps),
                        ("num_pressure_controllers", num_pressure_controllers)):
      if not 0 <= count <= 0xFF:
        raise ValueError(f"{name} must be between 0 and 255, got {count}")
    self._num_valves = num_valves
    self._num_pressure_controllers = num_pressure_controllers
    self._num_pumps = num_pumps

    if pressure_ranges is None:
      pressure_ranges = DEFAULT_PRESSURE_RANGES
    self._pressure_ranges: Dict[int, Tuple[float, float]] = {}
    for number in range(1, num_pressure_controllers + 1):
      low, high = pressure_ranges.get(number, (0.0, 1.0))
      if low > high:
        raise ValueError(f"Invalid pressure range for controller {number}: ({low}, {high})")
      self._pressure_ranges[number] = (float(low), float(high))

  @property
  def num_valves(self) -> int:
    return self._num_valves

  @property
  def num_pressure_controllers(self) -> int:
    return self._num_pressure_controllers

  @property
  def num_pumps(self) -> int:
    return self._num_pumps

  def valve(self, number: int) -> Valve:
    """ Return the valve with the given number.

    Raises:
      ValueError: if there is no such valve.
    """
    if not 1 <= number <= self._num_valves:
      raise ValueError(f"Invalid valve number {number}. Must be between 1 and {self._num_valves}")
    return Valve(number)

  def pump(self, number: int) -> Pump:
    if not 1 <= number <= self._num_pumps:
      raise ValueError(f"Invalid pump number {number}. Must be between 1 and {self._num_pumps}")
    return Pump(number)

  def pressure_controller(self, number: int) -> PressureController:
    if not 1 <= number <= self._num_pressure_controllers:
      raise ValueError(f"Invalid pressure controller number {number}. Must be between 1 and "
                       f"{self._num_pressure_controllers}")
    return PressureController(number)

  def valves(self) -> List[Valve]:
    return [Valve(n) for n in range(1, self._num_valves + 1)]

  def resolve(self, target: ValveTarget) -> List[Valve]:
    """ Expand a valve target to the list of valves it addresses. """
    if isinstance(target, AllValves):
      return self.valves()
    return [self.valve(target.number)]

  def min_pressure(self, controller: Union[PressureController, int]) -> float:
    number = controller.number if isinstance(controller, PressureController) else controller
    return self._pressure_ranges[self.pressure_controller(number).number][0]

  def max_pressure(self, controller: Union[PressureController, int]) -> float:
    number = controller.number if isinstance(controller, PressureController) else controller
    return self._pressure_ranges[self.pressure_controller(number).number][1]
