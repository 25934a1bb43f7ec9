"""Metrics aggregation engine for login events.

Keeps two kinds of state, both keyed by UTC calendar day:

    * HyperLogLog sketches of user and device ids per day, plus one
      all-time sketch of each. NRD is derived from these by union
      arithmetic, so it is an estimate.
    * Exact sets of user ids seen per day and of user ids first seen per
      day. NRU and RR1 come from these and are exact.

Devices are deliberately tracked only in sketches; there is no exact
device set.

All state lives in memory for the lifetime of the engine. Mutations and
queries go through one lock, so batches may be ingested from several
worker threads at once.
"""

import math
import threading
from collections import Counter, defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone

from login_metrics.core import metrics
from login_metrics.core.config import DEFAULT_PRECISION
from login_metrics.core.exceptions import InvalidDate, InvalidRange, UnparseableTimestamp
from login_metrics.core.logging import get_logger
from login_metrics.models.event import (
    KNOWN_EVENTS,
    LOGIN_EVENT,
    DailyMetrics,
    EngineStats,
    LogEvent,
)
from login_metrics.sketches.hyperloglog import HyperLogLog

logger = get_logger(__name__)


def date_key(timestamp: str) -> str:
    """Truncate an ISO-8601 timestamp to its UTC calendar day (YYYY-MM-DD).

    Naive timestamps are taken to be UTC already.
    """
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            # Shifting to UTC can step outside year 1..9999
            parsed = parsed.astimezone(timezone.utc)
        return parsed.date().isoformat()
    except (AttributeError, TypeError, ValueError, OverflowError) as exc:
        raise UnparseableTimestamp(timestamp) from exc


def parse_day(day: date | str) -> date:
    """Accept a date or a YYYY-MM-DD string and return a date."""
    if isinstance(day, datetime):
        return day.date()
    if isinstance(day, date):
        return day
    try:
        return date.fromisoformat(day)
    except (TypeError, ValueError) as exc:
        raise InvalidDate(f"Invalid date {day!r}, expected YYYY-MM-DD") from exc


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half away from zero for non-negative values (2.5 -> 3)."""
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


class MetricsEngine:
    """Owns every sketch and exact set and answers metric queries."""

    def __init__(self, precision: int = DEFAULT_PRECISION):
        self.precision = precision
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        self._daily_user_sketches: dict[str, HyperLogLog] = {}
        self._daily_device_sketches: dict[str, HyperLogLog] = {}
        self._all_time_users = HyperLogLog(self.precision)
        self._all_time_devices = HyperLogLog(self.precision)

        self._users_by_date: dict[str, set[str]] = {}
        self._new_users_by_date: dict[str, set[str]] = {}
        self._all_users: set[str] = set()

    # Ingestion

    def ingest_batch(self, events: Iterable[LogEvent]) -> None:
        """Apply a batch of events to the engine's state.

        Events whose timestamp cannot be read are skipped; the rest of the
        batch is still applied.
        """
        by_date: dict[str, list[LogEvent]] = defaultdict(list)
        event_types: Counter[str] = Counter()
        skipped = 0

        for event in events:
            event_types[event.event if event.event in KNOWN_EVENTS else "other"] += 1
            try:
                key = date_key(event.timestamp)
            except UnparseableTimestamp as e:
                skipped += 1
                logger.debug("Skipping event", reason=str(e))
                continue
            by_date[key].append(event)

        with self._lock:
            for key, day_events in by_date.items():
                self._apply_day(key, day_events)

        for event_type, count in event_types.items():
            metrics.events_ingested_total.labels(event_type=event_type).inc(count)
        if skipped:
            metrics.timestamps_skipped_total.inc(skipped)
            logger.warning("Skipped events with unparseable timestamps", skipped=skipped)

    def _apply_day(self, key: str, events: list[LogEvent]) -> None:
        # Caller holds the lock
        user_sketch = self._daily_user_sketches.get(key)
        if user_sketch is None:
            user_sketch = self._daily_user_sketches[key] = HyperLogLog(self.precision)
        device_sketch = self._daily_device_sketches.get(key)
        if device_sketch is None:
            device_sketch = self._daily_device_sketches[key] = HyperLogLog(self.precision)

        for event in events:
            if event.event != LOGIN_EVENT:
                continue

            user_id = event.user_id
            if user_id:
                user_sketch.add(user_id)
                self._all_time_users.add(user_id)
                self._users_by_date.setdefault(key, set()).add(user_id)
                if user_id not in self._all_users:
                    self._all_users.add(user_id)
                    self._new_users_by_date.setdefault(key, set()).add(user_id)

            if event.device_id:
                device_sketch.add(event.device_id)
                self._all_time_devices.add(event.device_id)

    # Queries

    def calculate_nru(self, day: date | str) -> int:
        """Exact number of users first seen on `day`."""
        key = parse_day(day).isoformat()
        with self._lock:
            return self._nru(key)

    def calculate_nrd(self, day: date | str) -> int:
        """Estimated number of devices first seen on `day`.

        |prior days U day| - |prior days|, both taken from sketches and
        floored at zero since the two estimates carry independent error.
        """
        key = parse_day(day).isoformat()
        with self._lock:
            prior = self._union_before(key)
            return int(round_half_up(self._net_new(prior, key)))

    def calculate_rr1(self, day: date | str) -> float:
        """Percent of users new on the previous day who logged in on `day`."""
        key = parse_day(day).isoformat()
        with self._lock:
            return self._rr1(key)

    def get_daily_metrics(self, day: date | str) -> DailyMetrics:
        key = parse_day(day).isoformat()
        with self._lock:
            prior = self._union_before(key)
            return self._daily_metrics(key, prior)

    def get_metrics_for_range(
        self, start_date: date | str, end_date: date | str
    ) -> list[DailyMetrics]:
        """Metrics for every day from start_date to end_date inclusive."""
        start = parse_day(start_date)
        end = parse_day(end_date)
        if end < start:
            raise InvalidRange(
                f"end_date {end.isoformat()} is before start_date {start.isoformat()}"
            )

        results: list[DailyMetrics] = []
        with self._lock:
            # One running union, extended by each day once it has been reported
            prior = self._union_before(start.isoformat())
            for offset in range((end - start).days + 1):
                key = (start + timedelta(days=offset)).isoformat()
                results.append(self._daily_metrics(key, prior))
                today = self._daily_device_sketches.get(key)
                if today is not None:
                    prior.update(today)
        return results

    def get_stats(self) -> EngineStats:
        with self._lock:
            return EngineStats(
                total_users=len(self._all_users),
                total_days_tracked=len(self._daily_user_sketches),
                estimated_unique_users=int(round_half_up(self._all_time_users.estimate())),
                estimated_unique_devices=int(round_half_up(self._all_time_devices.estimate())),
            )

    def reset(self) -> None:
        """Drop all state, returning to the freshly constructed engine."""
        with self._lock:
            self._initialize()
        logger.info("All data cleared")

    # Snapshots of exact membership state

    def new_users_on(self, day: date | str) -> frozenset[str]:
        key = parse_day(day).isoformat()
        with self._lock:
            return frozenset(self._new_users_by_date.get(key, ()))

    def users_seen_on(self, day: date | str) -> frozenset[str]:
        key = parse_day(day).isoformat()
        with self._lock:
            return frozenset(self._users_by_date.get(key, ()))

    @property
    def known_users(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._all_users)

    @property
    def tracked_days(self) -> list[str]:
        with self._lock:
            return sorted(self._daily_user_sketches)

    # Lock-free helpers, caller holds the lock

    def _nru(self, key: str) -> int:
        return len(self._new_users_by_date.get(key, ()))

    def _union_before(self, key: str) -> HyperLogLog:
        prior = HyperLogLog(self.precision)
        for day, sketch in self._daily_device_sketches.items():
            if day < key:
                prior.update(sketch)
        return prior

    def _net_new(self, prior: HyperLogLog, key: str) -> float:
        today = self._daily_device_sketches.get(key)
        if today is None:
            return 0.0
        combined = prior.merge(today)
        return max(0.0, combined.estimate() - prior.estimate())

    def _rr1(self, key: str) -> float:
        day = date.fromisoformat(key)
        if day == date.min:
            # No day before 0001-01-01
            return 0.0
        previous = (day - timedelta(days=1)).isoformat()
        cohort = self._new_users_by_date.get(previous)
        if not cohort:
            return 0.0
        returned = cohort & self._users_by_date.get(key, set())
        return 100.0 * len(returned) / len(cohort)

    def _daily_metrics(self, key: str, prior: HyperLogLog) -> DailyMetrics:
        return DailyMetrics(
            date=key,
            nru=self._nru(key),
            nrd=int(round_half_up(self._net_new(prior, key))),
            rr1=round_half_up(self._rr1(key), 2),
        )
