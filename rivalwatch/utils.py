"""Shared utility functions for RivalWatch."""

import logging
from datetime import datetime, UTC

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_timestamp(timestamp_str: str | None) -> datetime | None:
    """
    Parse an ISO timestamp string to a timezone-aware datetime.

    Args:
        timestamp_str: ISO format timestamp string.

    Returns:
        Parsed datetime or None if parsing fails.
    """
    if not timestamp_str:
        return None

    try:
        return ensure_utc(datetime.fromisoformat(timestamp_str.replace("Z", "+00:00")))
    except ValueError as e:
        logger.debug(f"Failed to parse timestamp '{timestamp_str}': {e}")
        return None


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
