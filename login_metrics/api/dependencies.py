"""FastAPI dependencies."""

from fastapi import Request

from login_metrics.core.config import Settings

from login_metrics.services.log_processor import LogProcessor
from login_metrics.services.metrics_engine import MetricsEngine


def get_metrics_engine(request: Request) -> MetricsEngine:
    """Get the engine owned by this application instance."""
    return request.app.state.engine


def get_log_processor(request: Request) -> LogProcessor:
    """Get the pipeline bound to this application's engine."""
    return request.app.state.processor


def get_app_settings(request: Request) -> Settings:
    """Get the settings this application was built with."""
    return request.app.state.settings
