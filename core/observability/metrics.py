"""
Metrics Collection for the Reconciliation Service

Collects and exposes metrics for:
- Source fetches per source (started, completed, failed, timed out, rows)
- Report runs per report (completed, degraded to one source, failed)
- Processing times per stage (average, p95)

Metrics live in memory for the lifetime of the process and are served
as-is by the /metrics endpoint.
"""

from collections import Counter, defaultdict, deque
from threading import Lock
from typing import Any, Deque, Dict, Iterable, Optional
import statistics


MAX_TIMING_SAMPLES = 1000


# =============================================================================
# Building Blocks
# =============================================================================

class CounterGroup:
    """Totals plus the same counters broken down by a key (source, report)."""

    def __init__(self, names: Iterable[str]):
        self.names = tuple(names)
        self.totals: Counter = Counter()
        self.by_key: Dict[str, Counter] = defaultdict(Counter)

    def add(self, key: str, name: str, amount: int = 1):
        self.totals[name] += amount
        self.by_key[key][name] += amount

    def snapshot(self, breakdown: str) -> Dict[str, Any]:
        summary: Dict[str, Any] = {name: self.totals[name] for name in self.names}
        summary[breakdown] = {
            key: {name: counts[name] for name in self.names}
            for key, counts in self.by_key.items()
        }
        return summary


class SampleWindow:
    """Last N duration samples."""

    def __init__(self, size: int = MAX_TIMING_SAMPLES):
        self._samples: Deque[float] = deque(maxlen=size)

    def add(self, duration_ms: float):
        self._samples.append(float(duration_ms))

    def __len__(self) -> int:
        return len(self._samples)

    def average(self) -> float:
        return statistics.mean(self._samples) if self._samples else 0.0

    def p95(self) -> float:
        if not self._samples:
            return 0.0
        ordered = sorted(self._samples)
        return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]

    def stats(self) -> Dict[str, float]:
        return {"average_ms": self.average(), "p95_ms": self.p95()}


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_fetch_started("source_a")
        metrics.record_fetch_completed("source_a", rows=1200, duration_ms=850)
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self.fetches = CounterGroup(("started", "completed", "failed", "timed_out", "rows"))
        self.reports = CounterGroup(("completed", "degraded", "failed"))
        self.overall = SampleWindow()
        self.stages: Dict[str, SampleWindow] = defaultdict(SampleWindow)

    @classmethod
    def instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def _sample(self, stage: str, duration_ms: float):
        # caller holds the lock
        self.overall.add(duration_ms)
        self.stages[stage].add(duration_ms)

    # =========================================================================
    # Fetches
    # =========================================================================

    def record_fetch_started(self, source: str):
        with self._lock:
            self.fetches.add(source, "started")

    def record_fetch_completed(self, source: str, rows: int = 0, duration_ms: float = None):
        with self._lock:
            self.fetches.add(source, "completed")
            self.fetches.add(source, "rows", rows)
            if duration_ms is not None:
                self._sample(f"fetch.{source}", duration_ms)

    def record_fetch_failed(self, source: str, timed_out: bool = False):
        with self._lock:
            self.fetches.add(source, "failed")
            if timed_out:
                self.fetches.add(source, "timed_out")

    # =========================================================================
    # Reports
    # =========================================================================

    def record_report_completed(self, report: str, degraded: bool = False, duration_ms: float = None):
        """A report that returned data, possibly from one source only."""
        with self._lock:
            self.reports.add(report, "completed")
            if degraded:
                self.reports.add(report, "degraded")
            if duration_ms is not None:
                self._sample(f"report.{report}", duration_ms)

    def record_report_failed(self, report: str):
        with self._lock:
            self.reports.add(report, "failed")

    # =========================================================================
    # Timings
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self._sample(stage, duration_ms)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Average, p95 and sample count for one stage, or overall."""
        with self._lock:
            window = self.stages.get(stage, SampleWindow()) if stage else self.overall
            return {**window.stats(), "sample_count": len(window)}

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "fetches": self.fetches.snapshot("by_source"),
                "reports": self.reports.snapshot("by_report"),
                "timings": {
                    "overall": self.overall.stats(),
                    "by_stage": {stage: window.stats() for stage, window in self.stages.items()},
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    return MetricsCollector.instance()


def record_fetch_started(source: str):
    get_metrics().record_fetch_started(source)


def record_fetch_completed(source: str, rows: int = 0, duration_ms: float = None):
    get_metrics().record_fetch_completed(source, rows, duration_ms)


def record_fetch_failed(source: str, timed_out: bool = False):
    get_metrics().record_fetch_failed(source, timed_out)


def record_report_completed(report: str, degraded: bool = False, duration_ms: float = None):
    get_metrics().record_report_completed(report, degraded, duration_ms)


def record_report_failed(report: str):
    get_metrics().record_report_failed(report)


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
