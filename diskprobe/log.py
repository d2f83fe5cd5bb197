from __future__ import annotations
import logging
import sys

LOGGER_NAME = "diskprobe"


class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, "")
        message = super().format(record)
        if color:
            message = f"{color}{message}{self.RESET}"
        return message


def use_color(mode: str, stream=None) -> bool:
    stream = stream or sys.stderr
    if mode == "always":
        return True
    if mode == "never":
        return False
    return bool(getattr(stream, "isatty", None) and stream.isatty())


def setup_logging(verbose: bool = False, color: str = "auto", stream=None) -> logging.Logger:
    """Attach one stderr handler to the package logger; safe to call twice."""
    stream = stream or sys.stderr
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    handler = logging.StreamHandler(stream)
    fmt = "%(levelname)s: %(message)s"
    handler.setFormatter(ColorFormatter(fmt) if use_color(color, stream) else logging.Formatter(fmt))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    return logger
