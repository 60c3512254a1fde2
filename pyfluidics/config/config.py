import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

LOG_FROM_STRING = {
  "DEBUG": logging.DEBUG,
  "INFO": logging.INFO,
  "WARNING": logging.WARNING,
  "ERROR": logging.ERROR,
  "CRITICAL": logging.CRITICAL,
}

LOG_TO_STRING = {v: k for k, v in LOG_FROM_STRING.items()}


@dataclass
class Config:
  """The configuration object for PyFluidics."""

  @dataclass
  class Logging:
    """The logging configuration."""

    level: int = logging.INFO
    log_dir: Optional[Path] = None

  @dataclass
  class Link:
    """Defaults for the link to the microcontroller."""

    port: Optional[str] = None
    baudrate: int = 115200
    read_size: int = 64

  logging: Logging = field(default_factory=Logging)
  link: Link = field(default_factory=Link)

  @classmethod
  def from_dict(cls, d: dict) -> "Config":
    """ Build a Config from nested dicts. Missing sections and keys keep their defaults. """
    log = d.get("logging", {})
    link = d.get("link", {})
    return cls(
      logging=cls.Logging(
        level=LOG_FROM_STRING[log.get("level", "INFO")],
        log_dir=Path(log["log_dir"]) if log.get("log_dir") else None,
      ),
      link=cls.Link(
        port=link.get("port"),
        baudrate=int(link.get("baudrate", 115200)),
        read_size=int(link.get("read_size", 64)),
      ),
    )

  @property
  def as_dict(self) -> dict:
    return {
      "logging": {
        "level": LOG_TO_STRING[self.logging.level],
        "log_dir": str(self.logging.log_dir) if self.logging.log_dir is not None else None,
      },
      "link": {
        "port": self.link.port,
        "baudrate": self.link.baudrate,
        "read_size": self.link.read_size,
      },
    }
