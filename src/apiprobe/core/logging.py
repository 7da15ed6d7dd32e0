"""Logging configuration for apiprobe.

Everything logs under the ``apiprobe`` namespace. Console output goes to
stderr through rich so that reports printed on stdout stay clean.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "apiprobe"

# One line per request from these is noise during a probe burst
CHATTY_LIBRARIES = ("httpx", "httpcore")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
) -> logging.Logger:
    """
    Configure the apiprobe logger.

    Args:
        level: Log level of the logger itself (DEBUG, INFO, WARNING, ...)
        log_file: Optional file receiving every record at DEBUG
        verbose: Show DEBUG records on the console, including HTTP client logs

    Returns:
        The ``apiprobe`` logger
    """
    if verbose:
        level = "DEBUG"

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_path=False,
        markup=False,
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    for name in CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger ``apiprobe.<name>``, or the root apiprobe logger."""
    if name == ROOT_LOGGER:
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class EndpointLogAdapter(logging.LoggerAdapter):
    """Prefixes records with the probe and endpoint they concern."""

    def process(self, msg, kwargs):
        return f"[{self.extra['probe']} {self.extra['endpoint']}] {msg}", kwargs


def endpoint_logger(logger: logging.Logger, probe: str, endpoint_ref: str) -> EndpointLogAdapter:
    return EndpointLogAdapter(logger, {"probe": probe, "endpoint": endpoint_ref})
