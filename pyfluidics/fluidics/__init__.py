from .backend import CommunicatorBackend
from .bluetooth_backend import BluetoothBackend
from .chatterbox import CommunicatorChatterboxBackend
from .communicator import Communicator
from .components import (
  ALL_VALVES,
  AllValves,
  ComponentRegistry,
  PressureController,
  Pump,
  Valve,
)
from .connection import ConnectionState
from .dispatcher import CommandDispatcher, Message, parse_message
from .enums import NUM_COMMANDS, Command, ConnectionStatus, LogLevel, RunStatus
from .errors import FluidicsError, MessageError, RoutineSyntaxError
from .events import (
  DeviceEvent,
  DeviceLog,
  PressureChanged,
  PressureSetpointChanged,
  PumpStateChanged,
  UptimeChanged,
  ValveStateChanged,
)
from .intents import (
  ControlIntent,
  IntentChannel,
  SetInputMultiplexer,
  SetMultiplexer,
  SetPressure,
  SetPump,
  SetValve,
)
from .protocol import FrameDecoder, build_message, encode, frame_message
from .routine import RoutineController, RoutineReport
from .serial_backend import SerialBackend
