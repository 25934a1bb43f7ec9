#!/usr/bin/env python3
"""
CLI script to run a login log file through the ingestion pipeline.

Usage:
    python -m scripts.process_logs data/logs.jsonl
    python -m scripts.process_logs data/logs.jsonl --batch-size 50000 --start 2024-01-01 --end 2024-01-07
"""

import asyncio
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from login_metrics.core.config import settings
from login_metrics.core.exceptions import AnalyticsError
from login_metrics.core.logging import configure_logging, get_logger
from login_metrics.models.event import ProcessingResult
from login_metrics.services.log_processor import LogProcessor
from login_metrics.services.metrics_engine import MetricsEngine

configure_logging()
logger = get_logger(__name__)

app = typer.Typer()
console = Console()


async def run_pipeline(file_path: Path, batch_size: int) -> tuple[MetricsEngine, ProcessingResult]:
    """
    Process a file into a fresh engine.

    Args:
        file_path: Newline-delimited JSON log file
        batch_size: Lines per batch

    Returns:
        Tuple of (engine, processing result)
    """
    engine = MetricsEngine(precision=settings.sketch_precision)
    processor = LogProcessor(
        engine,
        batch_size=batch_size,
        max_concurrent=settings.max_concurrent_batches,
        chunk_size=settings.read_chunk_size,
        progress_interval=settings.progress_log_interval,
    )
    result = await processor.process_source(file_path)
    return engine, result


def print_metrics(engine: MetricsEngine, start: date | str, end: date | str) -> None:
    table = Table(title=f"Daily metrics {start} .. {end}")
    table.add_column("Date")
    table.add_column("NRU", justify="right")
    table.add_column("NRD", justify="right")
    table.add_column("RR1 %", justify="right")
    for row in engine.get_metrics_for_range(start, end):
        table.add_row(row.date, f"{row.nru:,}", f"{row.nrd:,}", f"{row.rr1:.2f}")
    console.print(table)


@app.command()
def main(
    log_path: str = typer.Argument(..., help="Path to newline-delimited JSON log file"),
    batch_size: int = typer.Option(settings.batch_size, min=1, help="Lines per batch"),
    start: Optional[str] = typer.Option(None, help="First day to report (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, help="Last day to report (YYYY-MM-DD)"),
) -> None:
    """
    Process a log file and print the run summary and engine totals.

    Each line is a JSON object:
    {"event": "login", "user_id": "...", "device_id": "...", "timestamp": "..."}
    """
    console.print("[bold green]Login Log Processor[/bold green]")
    console.print()

    file_path = Path(log_path)

    try:
        engine, result = asyncio.run(run_pipeline(file_path, batch_size))
    except KeyboardInterrupt:
        console.print("[yellow]Processing cancelled by user[/yellow]")
        sys.exit(130)
    except AnalyticsError as e:
        console.print(f"[red]Processing failed: {e}[/red]")
        logger.error("Processing failed", error=str(e))
        sys.exit(1)

    stats = engine.get_stats()

    console.print()
    console.print("[bold green]Processing Complete![/bold green]")
    console.print(f"✓ Processed:   {result.total_processed:,}")
    console.print(f"✗ Errors:      {result.errors:,}")
    console.print(f"⏱ Elapsed:     {result.time_elapsed_seconds:.2f}s")
    console.print(f"⚡ Throughput:  {result.logs_per_second:,} logs/sec")
    console.print()
    console.print(f"Users (exact):       {stats.total_users:,}")
    console.print(f"Users (estimated):   {stats.estimated_unique_users:,}")
    console.print(f"Devices (estimated): {stats.estimated_unique_devices:,}")
    console.print(f"Days tracked:        {stats.total_days_tracked:,}")

    days = engine.tracked_days
    if days:
        try:
            print_metrics(engine, start or days[0], end or days[-1])
        except AnalyticsError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)

    if result.errors > 0:
        console.print("[yellow]Warning: Some lines could not be decoded and were skipped.[/yellow]")


if __name__ == "__main__":
    app()
