"""Base models and shared types."""
from datetime import datetime, timezone

from pydantic import BaseModel


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime.

    This function should be used instead of datetime.utcnow() or datetime.now()
    so every timestamp in the pipeline is timezone-aware.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware UTC.

    MongoDB returns naive datetimes even if stored with timezone info.
    This function makes them timezone-aware for safe comparisons.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# Generic message
class Message(BaseModel):
    message: str
