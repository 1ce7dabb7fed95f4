"""Logging setup shared by the CLI and the API."""
import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a console handler to the ``fieldops`` logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level name, e.g. "DEBUG" or "INFO"

    Returns:
        The package logger
    """
    logger = logging.getLogger("fieldops")
    logger.setLevel(level)

    if not any(getattr(h, "_fieldops", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._fieldops = True
        logger.addHandler(handler)

    return logger
