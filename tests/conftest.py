"""Pytest configuration and fixtures."""

import json
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from login_metrics.main import create_app
from login_metrics.services.log_processor import LogProcessor
from login_metrics.services.metrics_engine import MetricsEngine


@pytest.fixture
def engine() -> MetricsEngine:
    """Fresh aggregation engine."""
    return MetricsEngine()


@pytest.fixture
def processor(engine: MetricsEngine) -> LogProcessor:
    """Pipeline feeding the engine fixture, with small batches."""
    return LogProcessor(engine, batch_size=1_000, chunk_size=4096)


@pytest.fixture
def write_log(tmp_path: Path) -> Callable[..., Path]:
    """Write records to a newline-delimited log file.

    Dicts are JSON-encoded; strings are written verbatim as a line.
    """

    def _write(records: list[dict[str, Any] | str], name: str = "logs.jsonl", trailing_newline: bool = True) -> Path:
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        content = "\n".join(lines)
        if trailing_newline and lines:
            content += "\n"
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def app() -> FastAPI:
    """Application with its own empty engine."""
    return create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Get async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
