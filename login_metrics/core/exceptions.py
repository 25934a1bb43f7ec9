"""Error kinds raised by the sketch, engine and pipeline."""


class AnalyticsError(Exception):
    """Base class for all login-metrics errors."""


class SourceUnavailable(AnalyticsError):
    """The byte source could not be opened or read."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot read source {source}: {reason}")


class MalformedRecord(AnalyticsError):
    """A single line could not be decoded as a log event."""


class UnparseableTimestamp(AnalyticsError):
    """An event timestamp could not be turned into a calendar day."""

    def __init__(self, timestamp: str):
        self.timestamp = timestamp
        super().__init__(f"Unparseable timestamp: {timestamp!r}")


class PrecisionMismatch(AnalyticsError, ValueError):
    """Two sketches of different precision were combined."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(
            f"Cannot merge HLLs with different precision: {left} vs {right}"
        )


class InvalidRange(AnalyticsError, ValueError):
    """A range query ends before it starts."""


class InvalidDate(AnalyticsError, ValueError):
    """A query date is not a YYYY-MM-DD calendar day."""
