import os
import tempfile
import threading
import time
import unittest
from pathlib import Path

from pyfluidics.fluidics.components import (
  ALL_VALVES,
  ComponentRegistry,
  PressureController,
  Valve,
)
from pyfluidics.fluidics.enums import RunStatus
from pyfluidics.fluidics.errors import RoutineSyntaxError
from pyfluidics.fluidics.intents import (
  SetInputMultiplexer,
  SetMultiplexer,
  SetPressure,
  SetValve,
)
from pyfluidics.fluidics.routine import (
  ElapsedTimeChanged,
  InputMultiplexerStep,
  MultiplexerStep,
  PressureStep,
  RoutineController,
  RoutineError,
  RoutineFinished,
  RoutinePaused,
  RoutineResumed,
  RunStatusChanged,
  StepsChanged,
  TotalWaitTimeChanged,
  ValveStep,
  WaitStep,
  normalize_line,
  parse_line,
)


def wait_until(predicate, timeout: float = 2.0):
  deadline = time.monotonic() + timeout
  while not predicate():
    if time.monotonic() > deadline:
      raise AssertionError("condition not reached in time")
    time.sleep(0.005)


class TestParseLine(unittest.TestCase):
  """ Tests for parsing single routine lines. """

  def setUp(self):
    self.components = ComponentRegistry()

  def parse(self, line: str):
    return parse_line(1, normalize_line(line), self.components)

  def test_normalize_line(self):
    self.assertEqual(normalize_line("  valve   3\topen  # flush"), "valve 3 open")
    self.assertEqual(normalize_line("# only a comment"), "")
    self.assertEqual(normalize_line("   "), "")

  def test_valve(self):
    self.assertEqual(self.parse("valve 12 open"), ValveStep(target=Valve(12), open=True))
    self.assertEqual(self.parse("valve all close"), ValveStep(target=ALL_VALVES, open=False))

  def test_valve_errors(self):
    for line in ("valve 33 open", "valve 0 open", "valve -1 open", "valve x open",
                 "valve 1 toggle", "valve 1", "valve 1 open now"):
      with self.subTest(line=line):
        with self.assertRaises(RoutineSyntaxError):
          self.parse(line)

  def test_valve_error_message(self):
    with self.assertRaises(RoutineSyntaxError) as ctx:
      parse_line(7, "valve 33 open", self.components)
    self.assertEqual(ctx.exception.line_number, 7)
    self.assertEqual(
      str(ctx.exception),
      "Line 7: invalid valve ID: 33. Must be 'all' or an integer between 1 and 32")

  def test_pressure(self):
    step = self.parse("pressure 1 5")
    self.assertEqual(step, PressureStep(controller=PressureController(1), value=5.0, setpoint=0.5))
    step = self.parse("pressure 3 1")
    assert isinstance(step, PressureStep)
    self.assertEqual(step.setpoint, 1.0)

  def test_pressure_errors(self):
    for line in ("pressure 4 1", "pressure 0 1", "pressure 1 11", "pressure 1 -1",
                 "pressure 1 abc", "pressure 1 nan", "pressure 1", "pressure x 1"):
      with self.subTest(line=line):
        with self.assertRaises(RoutineSyntaxError):
          self.parse(line)

  def test_wait(self):
    self.assertEqual(self.parse("wait 2"), WaitStep(seconds=2.0))
    self.assertEqual(self.parse("wait 2.5 s"), WaitStep(seconds=2.5))
    self.assertEqual(self.parse("wait 500 ms"), WaitStep(seconds=0.5))
    self.assertEqual(self.parse("wait 500 msec"), WaitStep(seconds=0.5))
    self.assertEqual(self.parse("wait 2 min"), WaitStep(seconds=120.0))
    self.assertEqual(self.parse("wait 1 minutes"), WaitStep(seconds=60.0))
    self.assertEqual(self.parse("wait 1 h"), WaitStep(seconds=3600.0))
    self.assertEqual(self.parse("wait 2 hours"), WaitStep(seconds=7200.0))
    # unknown units are seconds
    self.assertEqual(self.parse("wait 3 fortnights"), WaitStep(seconds=3.0))

  def test_wait_errors(self):
    for line in ("wait", "wait abc", "wait -1", "wait 1 s extra"):
      with self.subTest(line=line):
        with self.assertRaises(RoutineSyntaxError):
          self.parse(line)

  def test_wait_too_long(self):
    with self.assertRaises(RoutineSyntaxError) as ctx:
      self.parse("wait 1e7 hours")
    self.assertIn("wait time too long", str(ctx.exception))
    with self.assertRaises(RoutineSyntaxError):
      self.parse(f"wait {threading.TIMEOUT_MAX * 2}")
    self.assertEqual(self.parse("wait 100 hours"), WaitStep(seconds=360000.0))

  def test_multiplexers(self):
    self.assertEqual(self.parse("multiplexer 4"), MultiplexerStep(channel="4"))
    self.assertEqual(self.parse("input A"), InputMultiplexerStep(channel="A"))
    with self.assertRaises(RoutineSyntaxError):
      self.parse("multiplexer")
    with self.assertRaises(RoutineSyntaxError):
      self.parse("input 1 2")

  def test_unknown_command(self):
    with self.assertRaises(RoutineSyntaxError) as ctx:
      self.parse("pump 1 on")
    self.assertIn("unknown command: pump", str(ctx.exception))


class TestRoutineValidation(unittest.TestCase):
  """ Tests for dry runs of routines. """

  def setUp(self):
    self.components = ComponentRegistry(
      num_valves=32, num_pressure_controllers=3, pressure_ranges={1: (0, 10)})
    self.intents = []
    self.events = []
    self.routine = RoutineController(self.components, sink=self.intents.append)
    self.routine.register_callback(self.events.append)

  def test_validate(self):
    self.routine.load(["valve 1 open", "wait 2", "pressure 1 5", "garbage line"])
    self.assertEqual(self.routine.validate(), 1)
    self.assertEqual(self.routine.number_of_errors, 1)
    self.assertTrue(self.routine.errors[0].startswith("Line 4:"))
    self.assertEqual(self.routine.number_of_steps, 3)
    self.assertEqual(self.routine.total_wait_time, 2.0)
    self.assertEqual(self.routine.step_lines, ["valve 1 open", "wait 2", "pressure 1 5"])
    self.assertEqual(self.intents, [])
    self.assertEqual(self.routine.status, RunStatus.READY)

  def test_validate_events(self):
    self.routine.load(["valve 1 open  # first", "", "wait 2", "garbage line"])
    self.events.clear()
    self.routine.validate()
    self.assertEqual(self.events, [
      TotalWaitTimeChanged(2.0),
      RoutineError("Line 4: unknown command: garbage"),
      StepsChanged(["valve 1 open", "wait 2"]),
    ])

  def test_validate_idempotent(self):
    self.routine.load(["valve all open", "wait 1 min", "wait 30", "pressure 9 1", "input 2"])
    first = (self.routine.validate(), self.routine.errors, self.routine.steps,
             self.routine.total_wait_time)
    second = (self.routine.validate(), self.routine.errors, self.routine.steps,
              self.routine.total_wait_time)
    self.assertEqual(first, second)
    self.assertEqual(first[0], 1)
    self.assertEqual(self.routine.total_wait_time, 90.0)

  def test_validate_rejects_waits_that_cannot_run(self):
    self.routine.load(["wait 1e7 hours", "valve 1 open"])
    self.assertEqual(self.routine.validate(), 1)
    self.assertTrue(self.routine.errors[0].startswith("Line 1: wait time too long"))
    self.assertEqual(self.routine.step_lines, ["valve 1 open"])

  def test_no_steps_changed_without_valid_steps(self):
    self.routine.load(["# nothing", "nonsense"])
    self.events.clear()
    self.assertEqual(self.routine.validate(), 1)
    self.assertFalse(any(isinstance(e, StepsChanged) for e in self.events))
    self.assertEqual(self.routine.number_of_steps, 0)

  def test_reset(self):
    self.routine.load(["valve 1 open"], name="flush")
    self.routine.validate()
    self.routine.reset()
    self.assertEqual(self.routine.status, RunStatus.NOT_READY)
    self.assertEqual(self.routine.number_of_steps, 0)
    self.assertEqual(self.routine.file_contents, [])
    self.assertEqual(self.routine.routine_name, "")

  def test_report(self):
    self.routine.load(["wait 2", "garbage"])
    self.routine.validate()
    report = self.routine.report
    self.assertEqual(report.total_steps, 1)
    self.assertEqual(report.total_wait_time, 2.0)
    self.assertEqual(report.elapsed_wait_time, 0.0)
    self.assertEqual(report.current_step, -1)
    self.assertEqual(len(report.errors), 1)

  def test_load_file(self):
    with tempfile.TemporaryDirectory() as tmp:
      path = Path(tmp) / "rinse.txt"
      path.write_text("valve 1 open\r\nwait 1\r\n", encoding="utf-8")

      self.assertTrue(self.routine.load_file(str(path)))
      self.assertEqual(self.routine.routine_name, "rinse")
      self.assertEqual(self.routine.file_contents, ["valve 1 open", "wait 1"])
      self.assertEqual(self.routine.status, RunStatus.READY)

      self.assertTrue(self.routine.load_file(path.as_uri()))
      self.assertEqual(self.routine.routine_name, "rinse")

  def test_load_missing_file(self):
    with tempfile.TemporaryDirectory() as tmp:
      with self.assertLogs("pyfluidics"):
        self.assertFalse(self.routine.load_file(os.path.join(tmp, "missing.txt")))
    self.assertEqual(self.routine.status, RunStatus.NOT_READY)


class TestRoutineExecution(unittest.TestCase):
  """ Tests for live runs of routines. """

  def setUp(self):
    self.components = ComponentRegistry(
      num_valves=4, num_pressure_controllers=1, pressure_ranges={1: (0, 10)})
    self.intents = []
    self.events = []
    self.routine = RoutineController(self.components, sink=self.intents.append)
    self.routine.register_callback(self.events.append)

  def tearDown(self):
    self.routine.stop()
    self.assertTrue(self.routine.join(timeout=2))

  def statuses(self):
    return [e.status for e in self.events if isinstance(e, RunStatusChanged)]

  def test_run(self):
    self.routine.load([
      "valve all close",
      "valve 3 open  # sample",
      "pressure 1 5",
      "multiplexer 4",
      "not a command",
      "input A",
    ])
    thread = self.routine.begin()
    self.assertIsInstance(thread, threading.Thread)
    self.assertTrue(self.routine.join(timeout=2))

    self.assertEqual(self.intents, [
      SetValve(Valve(1), False),
      SetValve(Valve(2), False),
      SetValve(Valve(3), False),
      SetValve(Valve(4), False),
      SetValve(Valve(3), True),
      SetPressure(PressureController(1), 0.5),
      SetMultiplexer("4"),
      SetInputMultiplexer("A"),
    ])
    self.assertEqual(self.routine.status, RunStatus.FINISHED)
    self.assertEqual(self.statuses(), [RunStatus.READY, RunStatus.RUNNING, RunStatus.FINISHED])
    self.assertEqual(self.routine.current_step, 4)
    self.assertEqual(self.routine.number_of_errors, 1)
    self.assertIn(RoutineFinished(), self.events)

  def test_wait(self):
    self.routine.load(["wait 500 ms"])
    start = time.monotonic()
    self.routine.begin()
    self.assertTrue(self.routine.join(timeout=5))
    duration = time.monotonic() - start

    self.assertGreaterEqual(duration, 0.45)
    self.assertLess(duration, 3)
    self.assertEqual(self.routine.elapsed_time, 0.5)
    self.assertIn(ElapsedTimeChanged(0.5), self.events)

  def test_wake(self):
    self.routine.load(["wait 10", "valve 1 open"])
    start = time.monotonic()
    self.routine.begin()
    wait_until(lambda: self.routine._waiting) # pylint: disable=protected-access
    self.routine.wake()
    self.assertTrue(self.routine.join(timeout=2))

    self.assertLess(time.monotonic() - start, 5)
    self.assertEqual(self.routine.elapsed_time, 10.0)
    self.assertEqual(self.intents, [SetValve(Valve(1), True)])
    self.assertEqual(self.routine.status, RunStatus.FINISHED)

  def test_wake_without_wait(self):
    self.routine.load(["valve 1 open"])
    self.routine.wake()
    self.routine.begin()
    self.assertTrue(self.routine.join(timeout=2))
    self.assertEqual(self.routine.status, RunStatus.FINISHED)

  def test_pause_and_resume(self):
    self.routine.load(["wait 10", "valve 1 open"])
    self.routine.begin()
    self.routine.pause()
    wait_until(lambda: self.routine.status == RunStatus.PAUSED)
    self.assertEqual(self.intents, [])

    self.routine.resume()
    self.assertTrue(self.routine.join(timeout=2))
    self.assertEqual(self.intents, [SetValve(Valve(1), True)])
    self.assertEqual(self.statuses(), [RunStatus.READY, RunStatus.RUNNING, RunStatus.PAUSED,
                                       RunStatus.RUNNING, RunStatus.FINISHED])
    self.assertIn(RoutinePaused(), self.events)
    self.assertIn(RoutineResumed(), self.events)

  def test_stop_while_paused(self):
    self.routine.load(["wait 10", "valve 1 open"])
    self.routine.begin()
    self.routine.pause()
    wait_until(lambda: self.routine.status == RunStatus.PAUSED)

    self.routine.stop()
    self.assertTrue(self.routine.join(timeout=2))
    self.assertEqual(self.routine.status, RunStatus.STOPPED)
    self.assertEqual(self.intents, [])
    self.assertEqual(self.statuses()[-2:], [RunStatus.PAUSED, RunStatus.STOPPED])
    self.assertNotIn(RoutineFinished(), self.events)
    self.assertNotIn(RoutineResumed(), self.events)

  def test_overlong_wait_is_skipped(self):
    self.routine.load(["wait 1e7 hours", "valve 1 open"])
    self.routine.begin()
    self.assertTrue(self.routine.join(timeout=2))
    self.assertEqual(self.routine.status, RunStatus.FINISHED)
    self.assertEqual(self.routine.number_of_errors, 1)
    self.assertEqual(self.intents, [SetValve(Valve(1), True)])
    self.assertEqual(self.routine.elapsed_time, 0.0)

  def test_stop_during_wait(self):
    self.routine.load(["wait 10", "valve 1 open"])
    start = time.monotonic()
    self.routine.begin()
    self.routine.stop()
    self.assertTrue(self.routine.join(timeout=2))

    self.assertLess(time.monotonic() - start, 5)
    self.assertEqual(self.routine.status, RunStatus.STOPPED)
    self.assertEqual(self.intents, [])
    self.assertNotIn(RoutineFinished(), self.events)

  def test_run_again(self):
    self.routine.load(["valve 2 open"])
    self.routine.begin()
    self.assertTrue(self.routine.join(timeout=2))
    self.routine.begin()
    self.assertTrue(self.routine.join(timeout=2))
    self.assertEqual(self.intents, [SetValve(Valve(2), True)] * 2)
    self.assertEqual(self.routine.status, RunStatus.FINISHED)

  def test_sink_error_stops_routine(self):
    def failing_sink(intent):
      raise RuntimeError(f"cannot send {intent}")

    routine = RoutineController(self.components, sink=failing_sink)
    routine.load(["valve 1 open", "valve 2 open"])
    with self.assertLogs("pyfluidics"):
      routine.begin()
      self.assertTrue(routine.join(timeout=2))
    self.assertEqual(routine.status, RunStatus.STOPPED)


if __name__ == "__main__":
  unittest.main()
