"""Shared utility functions."""

import logging
from datetime import datetime, UTC


def now_utc() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def from_timestamp(value: int | None) -> datetime | None:
    """Convert a Unix timestamp (seconds) to an aware UTC datetime."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
