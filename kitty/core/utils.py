"""
Utility functions for the application.
"""
from typing import Any, Optional
from datetime import date, datetime
import logging

from kitty.core.config import settings


def serialize_date(obj: Any) -> str:
    """Serialize date objects to ISO format strings."""
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


def parse_amount(value: Any) -> Optional[float]:
    """
    Leniently parse a money amount from a number or numeric string.

    Returns None for anything that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if amount != amount or amount in (float("inf"), float("-inf")):
        return None
    return amount


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
