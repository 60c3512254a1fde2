import os
import tempfile
from pathlib import Path
from typing import Union

from pyfluidics.config.config import Config
from pyfluidics.config.formats import ConfigLoader, ConfigSaver


class FileReader:
  """ Reads a Config from a file in the format of `format_loader`. """

  encoding = "utf-8"

  def __init__(self, format_loader: ConfigLoader):
    self.format_loader = format_loader

  def read(self, path: Union[str, Path]) -> Config:
    with open(path, "r", encoding=self.encoding) as f:
      return self.format_loader.load(f)


class FileWriter:
  """ Writes a Config to a file in the format of `format_saver`.

  Missing parent directories are created. The file is written next to its destination first and
  then moved in place, so a config file is never left half written.
  """

  encoding = "utf-8"

  def __init__(self, format_saver: ConfigSaver):
    self.format_saver = format_saver

  def write(self, path: Union[str, Path], cfg: Config):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
      with os.fdopen(fd, "w", encoding=self.encoding) as f:
        self.format_saver.save(f, cfg)
      os.replace(tmp, path)
    except BaseException:
      os.unlink(tmp)
      raise
