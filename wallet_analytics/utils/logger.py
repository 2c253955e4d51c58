"""Logging configuration for wallet-analytics."""

import logging
import sys

from wallet_analytics.config import LOG_LEVEL


def setup_logger(name: str = "wallet_analytics", level: str | None = None) -> logging.Logger:
    """Create and configure a logger under the wallet_analytics namespace."""
    if name != "wallet_analytics" and not name.startswith("wallet_analytics."):
        name = f"wallet_analytics.{name}"
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        fmt = logging.Formatter(
            "%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    level = level or LOG_LEVEL
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
