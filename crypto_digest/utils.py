"""Utility functions for the daily digest."""
import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from crypto_digest.config import LOG_DIR

NEW_YORK = ZoneInfo("America/New_York")


def setup_logger(name: str = __name__) -> logging.Logger:
    """Set up and return a logger instance."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / f"digest_{datetime.now().strftime('%Y%m%d')}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    # File handler
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    # Formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def format_number(num: float, decimals: int = 2) -> str:
    """Format a large number with a T/B/M/K suffix."""
    if num >= 1e12:
        return f"{num / 1e12:.{decimals}f}T"
    if num >= 1e9:
        return f"{num / 1e9:.{decimals}f}B"
    if num >= 1e6:
        return f"{num / 1e6:.{decimals}f}M"
    if num >= 1e3:
        return f"{num / 1e3:.{decimals}f}K"
    return f"{num:.{decimals}f}"


def date_key_ny(now: Optional[datetime] = None) -> str:
    """Calendar date (YYYY-MM-DD) in New York for ``now`` (defaults to the current time)."""
    now = now or datetime.now(NEW_YORK)
    if now.tzinfo is None:
        raise ValueError("date_key_ny requires a timezone-aware datetime")
    return now.astimezone(NEW_YORK).strftime("%Y-%m-%d")
