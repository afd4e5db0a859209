"""Application configuration"""

import logging
from dotenv import load_dotenv

from .loader import load_raw_config
from .cache import Cache
from .storage import Storage
from .backend import Backend

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)
logging.getLogger("aiohttp").setLevel(logging.WARNING)

_RAW_CONFIG = load_raw_config()

cache = Cache(_RAW_CONFIG)
storage = Storage(_RAW_CONFIG)
backend = Backend(_RAW_CONFIG)


class Config:
    cache = cache
    storage = storage
    backend = backend


__all__ = ["cache", "storage", "backend", "Config"]
