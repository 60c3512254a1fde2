import pytest

from pyfluidics import CONFIG, Config, configure
from pyfluidics.io import LOG_LEVEL_IO


@pytest.fixture(scope="session", autouse=True)
def test_logging(tmp_path_factory):
  """ Log everything the test session does, down to raw link traffic, to a temporary directory.
  The configuration loaded on import is restored afterwards. """
  log_dir = tmp_path_factory.mktemp("logs")
  configure(Config(logging=Config.Logging(level=LOG_LEVEL_IO, log_dir=log_dir)))
  yield log_dir
  configure(CONFIG)
