import json
from typing import IO

from pyfluidics.config.config import Config
from pyfluidics.config.formats import ConfigLoader, ConfigSaver


class JsonLoader(ConfigLoader):
  """ Loads `pyfluidics.json`. Sections and keys that are left out keep their defaults. """

  extension = "json"

  def load(self, r: IO) -> Config:
    config_dict = json.load(r)
    if not isinstance(config_dict, dict):
      raise ValueError("JSON config must be an object")
    return Config.from_dict(config_dict)


class JsonSaver(ConfigSaver):
  """ Saves a Config as indented JSON. Unset values (no log directory, no port) are left out,
  as in the INI format. """

  extension = "json"

  def save(self, w: IO, cfg: Config):
    sections = {
      name: {k: v for k, v in values.items() if v is not None}
      for name, values in cfg.as_dict.items()
    }
    json.dump(sections, w, indent=2)
    w.write("\n")
