import configparser
from pathlib import Path
from typing import IO

from pyfluidics.config.config import LOG_FROM_STRING, Config
from pyfluidics.config.formats import ConfigLoader, ConfigSaver


class IniLoader(ConfigLoader):
  """A ConfigLoader that loads from an IO stream that INI formatted."""

  extension = "ini"

  def load(self, r: IO) -> Config:
    """Load a Config object from an opened IO stream that is INI formatted."""
    config = configparser.ConfigParser()
    config.read_file(r)
    log_config_data = config["logging"]
    log_dir = Path(log_config_data["log_dir"]) if "log_dir" in log_config_data else None
    level = LOG_FROM_STRING[log_config_data.get("level", "INFO")]
    logging_config = Config.Logging(level=level, log_dir=log_dir)

    link_config = Config.Link()
    if config.has_section("link"):
      link_data = config["link"]
      link_config = Config.Link(
        port=link_data.get("port"),
        baudrate=link_data.getint("baudrate", fallback=link_config.baudrate),
        read_size=link_data.getint("read_size", fallback=link_config.read_size),
      )
    return Config(logging=logging_config, link=link_config)


class IniSaver(ConfigSaver):
  """A ConfigSaver that saves to an IO stream in INI format."""

  extension = "ini"

  def save(self, w: IO, cfg: Config):
    """Save a Config object to an IO stream in INI format."""
    config = configparser.ConfigParser()
    for k, v in cfg.as_dict.items():
      v = {k_: str(v_) for k_, v_ in v.items() if v_ is not None}
      config[k] = v

    config.write(w)
    return w
