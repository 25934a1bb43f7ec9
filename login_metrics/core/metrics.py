"""Prometheus metrics configuration."""

from prometheus_client import Counter, Histogram, Gauge

# Pipeline metrics
lines_parsed_total = Counter(
    "lines_parsed_total",
    "Total number of log lines decoded into events",
)

lines_malformed_total = Counter(
    "lines_malformed_total",
    "Total number of log lines that failed to decode",
)

pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total number of source processing runs",
    ["outcome"],
)

batches_in_flight = Gauge(
    "batches_in_flight",
    "Number of batches currently being ingested",
)

# Aggregation metrics
events_ingested_total = Counter(
    "events_ingested_total",
    "Total number of events handed to the aggregation engine",
    ["event_type"],
)

timestamps_skipped_total = Counter(
    "timestamps_skipped_total",
    "Total number of events skipped for an unparseable timestamp",
)

batch_ingest_duration_seconds = Histogram(
    "batch_ingest_duration_seconds",
    "Time spent applying one batch to the aggregation engine",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# API metrics
api_requests_total = Counter(
    "api_requests_total",
    "Total number of API requests",
    ["method", "endpoint", "status_code"],
)

api_request_duration_seconds = Histogram(
    "api_request_duration_seconds",
    "API request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
