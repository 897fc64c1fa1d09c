"""Utility for consistent logging across spurchat modules."""
import logging
import os


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger with basic configuration.

    Log level can be controlled via SPURCHAT_LOG_LEVEL env var. Default INFO.
    """
    level_str = os.getenv("SPURCHAT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_str, logging.INFO)
    # Configure root logger only once.
    if not logging.getLogger().handlers:
        logging.basicConfig(
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            level=level,
        )
    logger = logging.getLogger(name or "spurchat")
    logger.setLevel(level)
    return logger
