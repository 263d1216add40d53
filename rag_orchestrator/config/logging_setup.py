"""Logging configuration: one stdout handler with a timestamped format."""

import logging
import sys

_NOISY = ("httpx", "httpcore", "chromadb", "urllib3", "openai")


def configure_logging(level: str | int = "INFO") -> None:
    root_logger = logging.getLogger()
    # Remove existing handlers to avoid duplicates on re-configuration
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
