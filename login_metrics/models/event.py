"""Log event and analytics result models using Pydantic."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

LOGIN_EVENT = "login"
KNOWN_EVENTS = frozenset({LOGIN_EVENT, "open_app", "set_role"})


class LogEvent(BaseModel):
    """One line of the login log.

    Only `login` events carrying a user or device id change aggregation
    state; other event types are accepted and counted.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    event: str = Field(..., description="Event type, e.g. login/open_app/set_role")
    user_id: str | None = Field(default=None, description="User identifier")
    device_id: str | None = Field(default=None, description="Device identifier")
    timestamp: str = Field(..., description="When the event occurred (ISO-8601)")
    role_id: str | None = Field(default=None, description="Role chosen by set_role")


class LogBatch(BaseModel):
    """Batch of already-decoded events for direct ingestion."""

    logs: list[LogEvent] = Field(..., description="Events to ingest")


class CamelModel(BaseModel):
    """Result model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessFileRequest(CamelModel):
    """Request to run the ingestion pipeline over a local file."""

    file_path: str = Field(..., min_length=1, description="Path of the log file")
    batch_size: int | None = Field(default=None, ge=1, description="Lines per batch")


class DailyMetrics(CamelModel):
    """Metrics for a single calendar day."""

    date: str
    nru: int = Field(..., description="Newly registered users (exact)")
    nrd: int = Field(..., description="Net-new devices (estimated)")
    rr1: float = Field(..., description="Day-1 retention, percent")


class ProcessingResult(CamelModel):
    """Summary of one pipeline run."""

    total_processed: int
    time_elapsed_seconds: float
    errors: int
    logs_per_second: int


class EngineStats(CamelModel):
    """Snapshot of the aggregation engine's totals."""

    total_users: int
    total_days_tracked: int
    estimated_unique_users: int
    estimated_unique_devices: int
