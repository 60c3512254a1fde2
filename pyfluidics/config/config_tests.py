import json
import logging
import tempfile
import unittest
from pathlib import Path

from pyfluidics import load_config
from pyfluidics.config import get_config_file
from pyfluidics.config.config import Config
from pyfluidics.config.formats import ConfigLoader, ConfigSaver
from pyfluidics.config.formats.ini_config import IniLoader, IniSaver
from pyfluidics.config.formats.json_config import JsonLoader, JsonSaver
from pyfluidics.config.file import FileReader, FileWriter


class ConfigTests(unittest.TestCase):
  """ Tests for pyfluidics.config """

  def run_file_reader_writer_test(
    self,
    format_loader: ConfigLoader,
    format_saver: ConfigSaver,
    write_to: Path,
    should_be: Config,
  ):
    writer = FileWriter(format_saver=format_saver)
    writer.write(write_to, should_be)
    reader = FileReader(format_loader=format_loader)
    cfg = reader.read(write_to)
    self.assertEqual(cfg, should_be)

  def test_file_reader_writer(self):
    tmp_path = Path(tempfile.mkdtemp())
    fake_config = Config(
      logging=Config.Logging(level=logging.DEBUG, log_dir=tmp_path / "logs"),
      link=Config.Link(port="/dev/ttyACM0", baudrate=9600, read_size=16),
    )
    cases = (
      (IniLoader(), IniSaver(), "fake_config.ini"),
      (JsonLoader(), JsonSaver(), "fake_config.json"),
    )
    for rdr, wr, fp in cases:
      self.run_file_reader_writer_test(rdr, wr, tmp_path / fp, fake_config)

  def test_json_without_link_section(self):
    tmp_path = Path(tempfile.mkdtemp())
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"logging": {"level": "WARNING"}}), encoding="utf-8")
    cfg = FileReader(format_loader=JsonLoader()).read(path)
    self.assertEqual(cfg.logging.level, logging.WARNING)
    self.assertIsNone(cfg.logging.log_dir)
    self.assertEqual(cfg.link, Config.Link())

  def test_json_saver_leaves_out_unset_values(self):
    tmp_path = Path(tempfile.mkdtemp())
    path = tmp_path / "config.json"
    FileWriter(format_saver=JsonSaver()).write(path, Config())
    self.assertEqual(json.loads(path.read_text(encoding="utf-8")), {
      "logging": {"level": "INFO"},
      "link": {"baudrate": 115200, "read_size": 64},
    })
    self.assertEqual(FileReader(format_loader=JsonLoader()).read(path), Config())

  def test_json_without_any_section(self):
    tmp_path = Path(tempfile.mkdtemp())
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"link": {"port": "COM4"}}), encoding="utf-8")
    cfg = FileReader(format_loader=JsonLoader()).read(path)
    self.assertEqual(cfg.logging, Config.Logging())
    self.assertEqual(cfg.link.port, "COM4")

  def test_writer_creates_directories(self):
    tmp_path = Path(tempfile.mkdtemp())
    path = tmp_path / "nested" / "dir" / "pyfluidics.ini"
    FileWriter(format_saver=IniSaver()).write(path, Config())
    self.assertTrue(path.exists())
    self.assertEqual(sorted(p.name for p in path.parent.iterdir()), ["pyfluidics.ini"])

  def test_get_config_file_searches_parents(self):
    root = Path(tempfile.mkdtemp())
    nested = root / "a" / "b"
    nested.mkdir(parents=True)
    (root / "fluidics_test.json").write_text("{}", encoding="utf-8")
    self.assertEqual(get_config_file("fluidics_test", nested), root / "fluidics_test.json")

  def test_load_config_creates_default(self):
    cwd = Path.cwd()
    test_path = cwd / "test_config.ini"
    if test_path.exists():
      test_path.unlink()
    self.assertFalse(test_path.exists())
    cfg = load_config("test_config", create_default=True, create_module_level=False)
    self.assertTrue(test_path.exists())
    self.assertEqual(cfg, Config())

    test_path.unlink()
