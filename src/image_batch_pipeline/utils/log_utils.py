import logging
from typing import Union

from rich.logging import RichHandler


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure the root logger with a rich handler.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger (after logging is configured).
    """
    return logging.getLogger(name)
