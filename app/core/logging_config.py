import logging
import sys

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = None) -> None:
    """Configure the root logger once for the whole application"""
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not any(getattr(h, "_mentorsync", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._mentorsync = True
        root.addHandler(handler)
