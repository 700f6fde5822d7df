import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO during ingestion and chat.
NOISY_LOGGERS = ("httpx", "httpcore", "fastembed", "celery.app.trace")


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Configures the shared "docassist" logger with a single stdout handler.

    The level comes from the argument, then the LOG_LEVEL environment
    variable, then INFO. Calling it again returns the already configured logger.
    """
    logger = logging.getLogger("docassist")
    if logger.handlers:
        return logger

    resolved_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logger.setLevel(resolved_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


logger = setup_logging()
