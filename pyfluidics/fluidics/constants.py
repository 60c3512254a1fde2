"""Link protocol constants.

Frames exchanged with the microcontroller have the layout

  START_BYTE | command [1B] | param size [1B] | param data [nB] | [...] | STOP_BYTE

with ESCAPE_BYTE inserted before any STOP_BYTE or ESCAPE_BYTE value inside the frame.
"""

START_BYTE = 0xF0
STOP_BYTE = 0xF1
ESCAPE_BYTE = 0xF2

# Pressure setpoints and readings travel as a single byte, 0 to PR_MAX_VALUE.
PR_MAX_VALUE = 0xFF

# Largest parameter a single length byte can describe.
MAX_PARAMETER_SIZE = 0xFF

# Component counts of the reference hardware.
DEFAULT_NUM_VALVES = 32
DEFAULT_NUM_PRESSURE_CONTROLLERS = 3
DEFAULT_NUM_PUMPS = 2

# (min, max) range of each pressure controller, in the controller's unit (bar). 1-indexed.
DEFAULT_PRESSURE_RANGES = {
  1: (0.0, 10.0),
  2: (0.0, 10.0),
  3: (0.0, 1.0),
}
