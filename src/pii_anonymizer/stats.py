"""Running aggregates for an engine: call count, latency, error rate, rule usage."""

from __future__ import annotations
import threading
from dataclasses import replace
from typing import Iterable

from .errors import RuleExecutionError
from .types import EngineStats


class StatsCollector:
    """Thread-safe accumulator; every completed ``anonymize`` call is recorded once."""

    __slots__ = ("_stats", "_lock")

    def __init__(self) -> None:
        self._stats = EngineStats()
        self._lock = threading.Lock()

    def record_call(
        self,
        processing_time_ms: float,
        rules_applied: Iterable[str] = (),
        *,
        failed: bool = False,
        total_pseudonyms: int | None = None,
    ) -> None:
        with self._lock:
            s = self._stats
            s.total_processed += 1
            n = s.total_processed
            s.average_processing_time += (processing_time_ms - s.average_processing_time) / n
            s.error_rate += ((1.0 if failed else 0.0) - s.error_rate) / n
            for rule_id in rules_applied:
                s.rules_usage[rule_id] = s.rules_usage.get(rule_id, 0) + 1
            if total_pseudonyms is not None:
                s.total_pseudonyms = total_pseudonyms

    def record_detection(self) -> None:
        with self._lock:
            self._stats.total_detections += 1

    def record_rule_error(self, _error: RuleExecutionError | None = None) -> None:
        with self._lock:
            self._stats.rule_errors += 1

    def set_total_pseudonyms(self, count: int) -> None:
        with self._lock:
            self._stats.total_pseudonyms = count

    def snapshot(self) -> EngineStats:
        with self._lock:
            return replace(self._stats, rules_usage=dict(self._stats.rules_usage))

    def reset(self) -> None:
        with self._lock:
            self._stats = EngineStats()
