"""Routines: plain-text sequences of valve, pressure, wait and multiplexer commands.

A routine file has one command per line. `#` starts a comment, blank lines are ignored and
tokens are separated by any amount of whitespace::

  valve <number|all> <open|close>     valve 12 open
  pressure <controller> <value>       pressure 1 6.3
  wait <time> [unit]                  wait 2 min   (unit defaults to seconds)
  multiplexer <channel>               multiplexer 4
  input <channel>                     input 2

`RoutineController.validate` checks every line without touching the hardware.
`RoutineController.begin` runs the routine on a separate thread; the valve and pressure
commands are posted as `ControlIntent`s to the sink given to the controller, typically
`Communicator.intents.post`, so that the writes happen on the communicator's event loop.
"""

from __future__ import annotations

import logging
import math
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union
from urllib.parse import unquote, urlparse

from pyfluidics.fluidics.components import (
  ALL_VALVES,
  ComponentRegistry,
  PressureController,
  Valve,
  ValveTarget,
)
from pyfluidics.fluidics.enums import RunStatus
from pyfluidics.fluidics.errors import RoutineSyntaxError
from pyfluidics.fluidics.intents import (
  ControlIntent,
  SetInputMultiplexer,
  SetMultiplexer,
  SetPressure,
  SetValve,
)

logger = logging.getLogger("pyfluidics")

_UNSIGNED_RE = re.compile(r"^\+?\d+$", re.ASCII)

WAIT_UNIT_MULTIPLIERS = {
  "ms": 0.001,
  "millisecond": 0.001,
  "milliseconds": 0.001,
  "msec": 0.001,
  "min": 60.0,
  "mins": 60.0,
  "minute": 60.0,
  "minutes": 60.0,
  "h": 3600.0,
  "hr": 3600.0,
  "hrs": 3600.0,
  "hour": 3600.0,
  "hours": 3600.0,
}


@dataclass(frozen=True)
class ValveStep:
  target: ValveTarget
  open: bool


@dataclass(frozen=True)
class PressureStep:
  """ `value` is the pressure written in the routine; `setpoint` the fraction of the
  controller's range sent to the microcontroller. """
  controller: PressureController
  value: float
  setpoint: float


@dataclass(frozen=True)
class WaitStep:
  seconds: float


@dataclass(frozen=True)
class MultiplexerStep:
  channel: str


@dataclass(frozen=True)
class InputMultiplexerStep:
  channel: str


RoutineStep = Union[ValveStep, PressureStep, WaitStep, MultiplexerStep, InputMultiplexerStep]


def normalize_line(line: str) -> str:
  """ Remove the comment and collapse whitespace. """
  return " ".join(line.split("#", 1)[0].split())


def _parse_unsigned(token: str) -> Optional[int]:
  if _UNSIGNED_RE.match(token) is None:
    return None
  return int(token)


def _parse_number(token: str) -> Optional[float]:
  try:
    value = float(token)
  except ValueError:
    return None
  return value if math.isfinite(value) else None


def parse_line(line_number: int, line: str, components: ComponentRegistry) -> RoutineStep:
  """ Parse a single, normalized, non-empty routine line.

  Args:
    line_number: 1-based line number, used in error messages.
    line: the line, as returned by `normalize_line`.
    components: used to check component numbers and pressure ranges.

  Raises:
    RoutineSyntaxError: if the line is invalid.
  """

  tokens = line.split(" ")
  keyword, n = tokens[0], len(tokens)

  def error(reason: str) -> RoutineSyntaxError:
    return RoutineSyntaxError(line_number, reason)

  if keyword == "valve":
    if n != 3:
      raise error("line starting with \"valve\" should contain 3 arguments. "
                  "For example, \"valve 12 open\"")

    target: ValveTarget
    if tokens[1] == "all":
      target = ALL_VALVES
    else:
      number = _parse_unsigned(tokens[1])
      if number is None or not 1 <= number <= components.num_valves:
        raise error(f"invalid valve ID: {tokens[1]}. Must be 'all' or an integer between 1 and "
                    f"{components.num_valves}")
      target = Valve(number)

    if tokens[2] not in ("open", "close"):
      raise error(f"valve status not recognized: {tokens[2]}")
    return ValveStep(target=target, open=tokens[2] == "open")

  if keyword == "pressure":
    if n != 3:
      raise error("line starting with \"pressure\" should contain 3 arguments. "
                  "For example, \"pressure 2 6.3\"")

    number = _parse_unsigned(tokens[1])
    if number is None or not 1 <= number <= components.num_pressure_controllers:
      raise error(f"invalid pressure controller ID: {tokens[1]}. Must be an integer between 1 "
                  f"and {components.num_pressure_controllers}")
    controller = PressureController(number)

    value = _parse_number(tokens[2])
    if value is None or value < 0:
      raise error(f"Pressure value invalid: {tokens[2]}")
    low, high = components.min_pressure(controller), components.max_pressure(controller)
    if not low <= value <= high:
      raise error(f"Pressure value out of bounds for this controller: {tokens[2]}")

    # TODO: this is only correct for controllers with a minimum of 0, revisit for vacuum
    # controllers with a negative minimum.
    setpoint = low + (value / high) if high != 0 else low
    return PressureStep(controller=controller, value=value, setpoint=setpoint)

  if keyword == "wait":
    if n not in (2, 3):
      raise error("line starting with \"wait\" should contain 2 or 3 arguments. "
                  "For example, \"wait 2 min\"")

    seconds = _parse_number(tokens[1])
    if seconds is None or seconds < 0:
      raise error(f"could not parse wait time argument: {tokens[1]}")
    if n == 3:
      # unknown units are read as seconds
      seconds *= WAIT_UNIT_MULTIPLIERS.get(tokens[2], 1.0)
    if seconds > threading.TIMEOUT_MAX:
      raise error(f"wait time too long: {line[5:]}. "
                  f"Must be at most {threading.TIMEOUT_MAX:.0f} s")
    return WaitStep(seconds=seconds)

  if keyword == "multiplexer":
    if n != 2:
      raise error("line starting with \"multiplexer\" should contain 2 arguments. "
                  "For example, \"multiplexer 4\"")
    return MultiplexerStep(channel=tokens[1])

  if keyword == "input":
    if n != 2:
      raise error("line starting with \"input\" should contain 2 arguments. "
                  "For example, \"input 4\"")
    return InputMultiplexerStep(channel=tokens[1])

  raise error(f"unknown command: {keyword}")


@dataclass(frozen=True)
class RunStatusChanged:
  status: RunStatus


@dataclass(frozen=True)
class CurrentStepChanged:
  step: int


@dataclass(frozen=True)
class ElapsedTimeChanged:
  seconds: float


@dataclass(frozen=True)
class TotalWaitTimeChanged:
  seconds: float


@dataclass(frozen=True)
class StepsChanged:
  steps: List[str]


@dataclass(frozen=True)
class RoutineError:
  message: str


@dataclass(frozen=True)
class RoutinePaused:
  pass


@dataclass(frozen=True)
class RoutineResumed:
  pass


@dataclass(frozen=True)
class RoutineFinished:
  pass


RoutineEvent = Union[
  RunStatusChanged,
  CurrentStepChanged,
  ElapsedTimeChanged,
  TotalWaitTimeChanged,
  StepsChanged,
  RoutineError,
  RoutinePaused,
  RoutineResumed,
  RoutineFinished,
]

RoutineEventCallback = Callable[[RoutineEvent], None]


@dataclass
class RoutineReport:
  errors: List[str] = field(default_factory=list)
  current_step: int = -1
  total_steps: int = 0
  elapsed_wait_time: float = 0.0
  total_wait_time: float = 0.0


class RoutineController:
  """ Loads, checks and runs routines.

  Typical use::

    routine = RoutineController(components, sink=communicator.intents.post)
    routine.load_file("rinse.txt")
    if routine.validate() == 0:
      routine.begin()
    ...
    routine.pause()
    routine.resume()
    routine.stop()

  Everything the controller reports (status changes, progress, errors) is passed to the
  callbacks registered with `register_callback`. During a run these are called from the
  routine's thread.

  Args:
    components: the available components and pressure ranges.
    sink: receives the control intents of a running routine. Called from the routine's thread.
  """

  def __init__(self, components: ComponentRegistry, sink: Callable[[ControlIntent], None]):
    self.components = components
    self.sink = sink

    self._lines: List[str] = []
    self._steps: List[RoutineStep] = []
    self._step_lines: List[str] = []
    self._errors: List[str] = []
    self._routine_name = ""

    self._run_status = RunStatus.NOT_READY
    self._current_step = -1
    self._number_of_steps = 0
    self._total_wait_time = 0.0
    self._elapsed_time = 0.0

    self._stop_requested = False
    self._pause_requested = False
    self._wake_requested = False
    self._waiting = False
    self._pause_condition = threading.Condition()
    self._wake_condition = threading.Condition()

    self._thread: Optional[threading.Thread] = None
    self._callbacks: List[RoutineEventCallback] = []

  def register_callback(self, callback: RoutineEventCallback) -> None:
    self._callbacks.append(callback)

  def deregister_callback(self, callback: RoutineEventCallback) -> None:
    self._callbacks.remove(callback)

  def _notify(self, event: RoutineEvent):
    for callback in self._callbacks:
      callback(event)

  @property
  def status(self) -> RunStatus:
    return self._run_status

  @property
  def current_step(self) -> int:
    """ Index of the step being executed, or -1 when no step has been executed yet. """
    return self._current_step

  @property
  def number_of_steps(self) -> int:
    """ Number of valid steps, as found by the last `validate`. """
    return self._number_of_steps

  @property
  def number_of_errors(self) -> int:
    return len(self._errors)

  @property
  def errors(self) -> List[str]:
    return list(self._errors)

  @property
  def steps(self) -> List[RoutineStep]:
    return list(self._steps)

  @property
  def step_lines(self) -> List[str]:
    """ The valid lines of the routine, without comments. """
    return list(self._step_lines)

  @property
  def file_contents(self) -> List[str]:
    return list(self._lines)

  @property
  def routine_name(self) -> str:
    return self._routine_name

  @property
  def total_wait_time(self) -> float:
    return self._total_wait_time

  @property
  def elapsed_time(self) -> float:
    return self._elapsed_time

  @property
  def report(self) -> RoutineReport:
    return RoutineReport(
      errors=list(self._errors),
      current_step=self._current_step,
      total_steps=self._number_of_steps,
      elapsed_wait_time=self._elapsed_time,
      total_wait_time=self._total_wait_time,
    )

  def reset(self):
    """ Reset the controller, deleting any stored routine and other information. """
    self._lines = []
    self._steps = []
    self._step_lines = []
    self._errors = []
    self._routine_name = ""

    self._number_of_steps = 0
    self._current_step = -1
    self._run_status = RunStatus.NOT_READY
    self._total_wait_time = 0.0
    self._elapsed_time = 0.0
    with self._pause_condition:
      self._pause_requested = False

  def load(self, lines: Iterable[str], name: str = "routine"):
    """ Load a routine. The lines are only stored; use `validate` to check them. """
    self.reset()
    self._lines = [line.rstrip("\r\n") for line in lines]
    self._routine_name = name
    self._set_run_status(RunStatus.READY)

  def load_file(self, path: Union[str, Path]) -> bool:
    """ Load the routine stored in a text file.

    Args:
      path: path of the file, or a `file://` URL.

    Returns:
      `True` if the file was read, `False` otherwise. In that case the controller is left reset.
    """

    if isinstance(path, str) and path.startswith("file:"):
      path = unquote(urlparse(path).path)
    path = Path(path)

    self.reset()
    try:
      with open(path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
      logger.warning("Could not load file %s: %s", path, e)
      return False

    self.load(lines, name=path.stem)
    return True

  def validate(self) -> int:
    """ Check the routine for errors, without executing it.

    Errors are passed to the callbacks as `RoutineError`s and can be read from `errors`
    afterwards.

    Returns:
      The number of errors found in the routine.
    """
    self._run(dry_run=True)
    return self.number_of_errors

  def begin(self) -> threading.Thread:
    """ Start the routine. Returns immediately; the routine runs on a separate thread.

    Only one run may be active at a time. Callers must wait for the previous run to end (see
    `join`) before calling `begin` again.

    Returns:
      The thread executing the routine.
    """

    with self._pause_condition:
      self._stop_requested = False
      self._pause_requested = False

    self._thread = threading.Thread(
      target=self._run_thread, name=f"routine-{self._routine_name}", daemon=True)
    self._thread.start()
    return self._thread

  def join(self, timeout: Optional[float] = None) -> bool:
    """ Wait for the current run to end.

    Returns:
      `True` if no run is active anymore.
    """
    if self._thread is None:
      return True
    self._thread.join(timeout)
    return not self._thread.is_alive()

  def stop(self):
    """ Stop execution of the routine after the current step. Interrupts a wait, and ends a
    pause without resuming execution. """
    with self._pause_condition:
      self._stop_requested = True
      if self._run_status == RunStatus.PAUSED:
        self._pause_requested = False
      self._pause_condition.notify()
    self._interrupt_wait()

  def pause(self):
    """ Pause execution of the routine after the current step. Interrupts a wait. """
    with self._pause_condition:
      self._pause_requested = True
    self._interrupt_wait()

  def resume(self):
    """ Resume execution of a paused routine. """
    with self._pause_condition:
      self._pause_requested = False
      self._pause_condition.notify()

  def wake(self):
    """ End the `wait` step currently being executed, if any. """
    with self._wake_condition:
      if self._waiting:
        self._wake_requested = True
        self._wake_condition.notify()

  def _interrupt_wait(self):
    # stop and pause requests are part of the wait predicate; a notify is enough
    with self._wake_condition:
      self._wake_condition.notify()

  def _wait(self, seconds: float):
    with self._wake_condition:
      self._waiting = True
      self._wake_requested = False
      try:
        self._wake_condition.wait_for(
          lambda: self._wake_requested or self._stop_requested or self._pause_requested,
          timeout=seconds)
      finally:
        self._waiting = False
        self._wake_requested = False

  def _set_run_status(self, status: RunStatus):
    self._run_status = status
    self._notify(RunStatusChanged(status))

  def _set_current_step(self, step: int):
    self._current_step = step
    self._notify(CurrentStepChanged(step))

  def _report_error(self, message: str):
    self._errors.append(message)
    self._notify(RoutineError(message))

  def _run_thread(self):
    try:
      self._run(dry_run=False)
    except Exception: # pylint: disable=broad-except
      logger.exception("Routine %s aborted", self._routine_name)
      self._set_run_status(RunStatus.STOPPED)

  def _execute(self, step: RoutineStep):
    if isinstance(step, ValveStep):
      for valve in self.components.resolve(step.target):
        self.sink(SetValve(valve=valve, open=step.open))
    elif isinstance(step, PressureStep):
      self.sink(SetPressure(controller=step.controller, pressure=step.setpoint))
    elif isinstance(step, WaitStep):
      self._wait(step.seconds)
      self._elapsed_time += step.seconds
      self._notify(ElapsedTimeChanged(self._elapsed_time))
    elif isinstance(step, MultiplexerStep):
      self.sink(SetMultiplexer(channel=step.channel))
    elif isinstance(step, InputMultiplexerStep):
      self.sink(SetInputMultiplexer(channel=step.channel))

  def _run(self, dry_run: bool):
    """ Go through the routine.

    Args:
      dry_run: if `True`, every line is checked and the list of valid steps is rebuilt, but
        nothing is executed.
    """

    self._errors = []
    self._current_step = -1
    self._elapsed_time = 0.0

    steps: List[RoutineStep] = []
    step_lines: List[str] = []
    total_wait_time = 0.0

    if not dry_run:
      logger.info("Starting routine %s", self._routine_name)
      self._set_run_status(RunStatus.RUNNING)

    stopped = False
    for i, raw_line in enumerate(self._lines):
      line = normalize_line(raw_line)
      if not line:
        continue

      try:
        step = parse_line(i + 1, line, self.components)
      except RoutineSyntaxError as e:
        self._report_error(str(e))
        step = None

      if step is not None:
        if dry_run:
          steps.append(step)
          step_lines.append(line)
          if isinstance(step, WaitStep):
            total_wait_time += step.seconds
            self._notify(TotalWaitTimeChanged(total_wait_time))
        else:
          self._set_current_step(self._current_step + 1)
          self._execute(step)

      if dry_run:
        continue

      if self._stop_requested:
        stopped = True
        break

      if self._pause_requested:
        logger.debug("Pause requested; routine %s is pausing", self._routine_name)
        self._set_run_status(RunStatus.PAUSED)
        self._notify(RoutinePaused())
        with self._pause_condition:
          self._pause_condition.wait_for(
            lambda: not self._pause_requested or self._stop_requested)
        if self._stop_requested:
          stopped = True
          break
        logger.debug("Routine %s is resuming", self._routine_name)
        self._set_run_status(RunStatus.RUNNING)
        self._notify(RoutineResumed())

    if dry_run:
      self._steps = steps
      self._step_lines = step_lines
      self._total_wait_time = total_wait_time
      self._number_of_steps = len(steps)
      if len(steps) > 0:
        self._notify(StepsChanged(list(step_lines)))
    elif stopped:
      logger.info("Routine %s stopped", self._routine_name)
      self._set_run_status(RunStatus.STOPPED)
    else:
      logger.info("Routine %s finished", self._routine_name)
      self._set_run_status(RunStatus.FINISHED)
      self._notify(RoutineFinished())
