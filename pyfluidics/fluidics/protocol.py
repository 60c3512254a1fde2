"""Framing for the microcontroller link.

Outgoing messages are built with `build_message` and framed with `frame_message`. Incoming bytes
are fed to a `FrameDecoder`, which strips the framing and returns raw message bodies one at a
time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

from pyfluidics.fluidics.constants import (
  ESCAPE_BYTE,
  MAX_PARAMETER_SIZE,
  START_BYTE,
  STOP_BYTE,
)
from pyfluidics.fluidics.enums import NUM_COMMANDS, Command

logger = logging.getLogger("pyfluidics")


def build_message(command: Command, parameters: Sequence[bytes] = ()) -> bytes:
  """Build an unframed message: the command byte followed by a length byte and the data of each
  parameter.

  Raises:
    ValueError: if a parameter is longer than 255 bytes.
  """
  message = bytearray([int(command)])
  for parameter in parameters:
    if len(parameter) > MAX_PARAMETER_SIZE:
      raise ValueError(f"Parameter too long: {len(parameter)} bytes (max {MAX_PARAMETER_SIZE})")
    message.append(len(parameter))
    message.extend(parameter)
  return bytes(message)


def frame_message(message: bytes) -> bytes:
  """Add start and stop bytes, and escape any stop or escape byte inside the message.

  Start bytes inside the message are not escaped: the decoder only looks for a start byte while
  it is not recording.
  """
  framed = bytearray([START_BYTE])
  for c in message:
    if c in (STOP_BYTE, ESCAPE_BYTE):
      framed.append(ESCAPE_BYTE)
    framed.append(c)
  framed.append(STOP_BYTE)
  return bytes(framed)


def encode(command: Command, parameters: Sequence[bytes] = ()) -> bytes:
  """Build and frame a message, ready to be written to the link."""
  return frame_message(build_message(command, parameters))


@dataclass
class DecoderState:
  recording: bool = False
  escaped: bool = False
  just_saw_start: bool = False
  accumulator: bytearray = field(default_factory=bytearray)


class FrameDecoder:
  """Incremental decoder for framed messages.

  Bytes are added with `decode`; they stay in the pending buffer until they are scanned. The
  decoder state carries over between calls, so a frame split over several chunks is decoded
  once its stop byte arrives. Any data preceding a start byte is discarded.

  Example:
    >>> decoder = FrameDecoder()
    >>> decoder.decode(b"junk\\xf0\\x00\\x01")
    >>> decoder.decode(b"\\x05\\x01\\x01\\xf1")
    b'\\x00\\x01\\x05\\x01\\x01'
  """

  def __init__(self):
    self._pending = bytearray()
    self.state = DecoderState()

  @property
  def pending(self) -> bytes:
    """ Bytes received but not scanned yet. """
    return bytes(self._pending)

  def reset(self):
    """ Drop all pending bytes and any partially decoded message. """
    self._pending.clear()
    self.state = DecoderState()

  def decode(self, chunk: bytes = b"") -> Optional[bytes]:
    """Add `chunk` to the pending bytes and scan them for the next complete message.

    At most one message is returned per call. Scanning stops right after its stop byte; call
    `decode` again (without data) to get any following message.

    Returns:
      The message body, without framing and escape bytes, or `None` if no complete message is
      available yet.
    """

    self._pending.extend(chunk)
    state = self.state
    complete = False
    consumed = 0

    for c in self._pending:
      consumed += 1

      if not state.recording:
        if c == START_BYTE:
          state.recording = True
          state.just_saw_start = True
          state.accumulator.clear()
        continue

      if state.escaped:
        state.accumulator.append(c)
        state.escaped = False
      elif c == ESCAPE_BYTE:
        state.escaped = True
      elif c == STOP_BYTE:
        state.recording = False
        state.just_saw_start = False
        complete = True
        break
      elif state.just_saw_start and c >= NUM_COMMANDS:
        logger.debug("Invalid command byte 0x%02x after start byte; dropping frame", c)
        state.recording = False
        state.accumulator.clear()
        # the offending byte may itself be the start of the next frame
        if c == START_BYTE:
          state.recording = True
          state.just_saw_start = True
          continue
      else:
        state.accumulator.append(c)
      state.just_saw_start = False

    del self._pending[:consumed]

    if complete:
      message = bytes(state.accumulator)
      state.accumulator.clear()
      return message
    return None

  def messages(self, chunk: bytes = b"") -> Iterator[bytes]:
    """Add `chunk` and yield every complete message in the pending bytes, in order."""
    message = self.decode(chunk)
    while message is not None:
      yield message
      message = self.decode()
