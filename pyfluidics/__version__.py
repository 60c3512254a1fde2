"""Definition file for various version numbers."""

import os

# Version number for pyfluidics
_version_file = os.path.join(os.path.dirname(__file__), "version.txt")
with open(_version_file, "r", encoding="utf-8") as f:
  __version__ = f.read().strip()

# Version of the framing protocol spoken with the microcontroller.
LINK_PROTOCOL_VERSION = "1"
