"""Enumeration types shared by the link protocol and the routine interpreter."""

from __future__ import annotations

import enum


class Command(enum.IntEnum):
  """Command tags. The same values are used in both directions.

  The tags are contiguous from 0; any tag byte >= NUM_COMMANDS marks a frame as invalid.
  """

  VALVE = 0
  PUMP = 1
  PRESSURE = 2
  STATUS = 3
  UPTIME = 4
  ERROR = 5
  LOG = 6


NUM_COMMANDS = len(Command)


class LogLevel(enum.IntEnum):
  """Severity of a log message sent by the microcontroller."""

  FATAL = 0
  ERROR = 1
  WARNING = 2
  INFO = 3
  DEBUG = 4


class ConnectionStatus(enum.Enum):
  DISCONNECTED = "Disconnected"
  CONNECTING = "Connecting"
  CONNECTED = "Connected"


class RunStatus(enum.Enum):
  """Run status of a routine.

  NOT_READY -> READY -> RUNNING <-> PAUSED -> FINISHED, or STOPPED when the run was stopped
  before reaching the end of the routine.
  """

  NOT_READY = "not ready"
  READY = "ready"
  RUNNING = "running"
  PAUSED = "paused"
  FINISHED = "finished"
  STOPPED = "stopped"
