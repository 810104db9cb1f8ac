"""Runtime configuration: ``.env``, optional ``config.toml`` and logging setup."""

import logging
import os
from dotenv import load_dotenv

from .loader import load_raw_config
from .core import Core
from .cache import Cache
from .stream import Stream
from .sync import Sync

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(
    format=LOG_FORMAT,
    datefmt=DATE_FORMAT,
    level=os.getenv("GURULO_LOG_LEVEL", "INFO").upper(),
)
for _noisy in ("httpx", "openai"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

_RAW_CONFIG = load_raw_config()

# reload() updates these objects in place; modules hold references to them.
core = Core(_RAW_CONFIG)
cache = Cache(_RAW_CONFIG)
stream = Stream(_RAW_CONFIG)
sync = Sync(_RAW_CONFIG)


def reload(path=None) -> None:
    """Re-read the TOML file and environment into the existing section objects."""

    raw = load_raw_config(path)
    core.__init__(raw)
    cache.__init__(raw)
    stream.__init__(raw)
    sync.__init__(raw)


class Config:
    core = core
    cache = cache
    stream = stream
    sync = sync


__all__ = ["core", "cache", "stream", "sync", "Config", "reload"]
