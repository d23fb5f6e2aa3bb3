"""Small shared helpers."""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC time as ISO 8601 with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_after(hours: float) -> str:
    """ISO timestamp ``hours`` from now."""
    return iso_timestamp(datetime.now(timezone.utc) + timedelta(hours=hours))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def round_half_up(value: float, digits: int = 1) -> float:
    """Round to ``digits`` decimals with halves going up, unlike round()."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor
