"""Exception classes for the fluidics link and routine interpreter.

These are raised while decoding messages and parsing routine lines, and handled where they are
detected: the offending message or line is dropped and the problem is reported.
"""

from __future__ import annotations


class FluidicsError(Exception):
  """Base class for fluidics errors."""


class MessageError(FluidicsError):
  """A decoded message has the wrong shape (unknown command, arity, parameter sizes, or a
  declared parameter length that overruns the message)."""

  def __init__(self, message: str, raw: bytes = b"") -> None:
    super().__init__(message)
    self.raw = raw


class RoutineSyntaxError(FluidicsError):
  """A routine line could not be parsed or failed validation.

  Attributes:
    line_number: 1-based number of the offending line.
    reason: Human-readable description of the problem.
  """

  def __init__(self, line_number: int, reason: str) -> None:
    self.line_number = line_number
    self.reason = reason
    super().__init__(f"Line {line_number}: {reason}")
