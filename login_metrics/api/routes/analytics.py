"""Log processing and metrics endpoints."""

from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, status

from login_metrics.api.dependencies import get_app_settings, get_log_processor, get_metrics_engine
from login_metrics.core.config import Settings
from login_metrics.core.exceptions import InvalidRange, SourceUnavailable
from login_metrics.core.logging import get_logger
from login_metrics.models.event import (
    DailyMetrics,
    EngineStats,
    LogBatch,
    ProcessFileRequest,
    ProcessingResult,
)
from login_metrics.services.log_processor import LogProcessor
from login_metrics.services.metrics_engine import MetricsEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.post("/process-file", response_model=ProcessingResult)
async def process_file(
    request: ProcessFileRequest,
    processor: LogProcessor = Depends(get_log_processor),
) -> ProcessingResult:
    """
    Stream a newline-delimited JSON log file into the engine.

    Malformed lines are counted in `errors` and skipped; a file that
    cannot be read fails the whole request.
    """
    try:
        return await processor.process_source(request.file_path, request.batch_size)
    except SourceUnavailable as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/logs", status_code=status.HTTP_202_ACCEPTED)
def ingest_logs(
    batch: LogBatch,
    engine: MetricsEngine = Depends(get_metrics_engine),
) -> dict[str, int]:
    """Ingest already-decoded events directly, bypassing the file pipeline."""
    engine.ingest_batch(batch.logs)
    logger.info("Events ingested", count=len(batch.logs))
    return {"accepted": len(batch.logs)}


@router.get("/metrics", response_model=list[DailyMetrics])
def get_metrics(
    start_date: date = Query(..., alias="startDate", description="Start date (YYYY-MM-DD)"),
    end_date: date = Query(..., alias="endDate", description="End date (YYYY-MM-DD)"),
    engine: MetricsEngine = Depends(get_metrics_engine),
    app_settings: Settings = Depends(get_app_settings),
) -> list[DailyMetrics]:
    """
    Get NRU, NRD and RR1 for every day of a date range, inclusive.

    Spans longer than `max_range_days` are rejected.
    """
    span = (end_date - start_date).days + 1
    if span > app_settings.max_range_days:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Range of {span} days exceeds the limit of {app_settings.max_range_days}",
        )
    try:
        return engine.get_metrics_for_range(start_date, end_date)
    except InvalidRange as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/metrics/daily/{day}", response_model=DailyMetrics)
def get_daily_metrics(
    day: date,
    engine: MetricsEngine = Depends(get_metrics_engine),
) -> DailyMetrics:
    """Get NRU, NRD and RR1 for a single day."""
    return engine.get_daily_metrics(day)


@router.get("/stats", response_model=EngineStats)
def get_stats(engine: MetricsEngine = Depends(get_metrics_engine)) -> EngineStats:
    """Totals across every day ingested so far."""
    return engine.get_stats()


@router.delete("/clear-data", status_code=status.HTTP_204_NO_CONTENT)
def clear_data(engine: MetricsEngine = Depends(get_metrics_engine)) -> None:
    """Drop all sketches and user sets."""
    engine.reset()
