"""Shared builders for test events."""

from login_metrics.models.event import LogEvent


def login(user_id: str | None = None, device_id: str | None = None, day: str = "2024-01-01", hour: int = 12) -> LogEvent:
    """Build a login event at the given UTC day and hour."""
    return LogEvent(
        event="login",
        user_id=user_id,
        device_id=device_id,
        timestamp=f"{day}T{hour:02d}:00:00.000Z",
    )
