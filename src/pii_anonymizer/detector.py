"""Detector — runs every active rule and resolves overlapping matches.

Each rule scans the text independently.  Candidates from all rules are then
ranked by ``(priority desc, span length desc, start asc)`` and accepted
greedily when they do not overlap anything already accepted, so the result
does not depend on the order rules were registered in.

A rule whose matcher raises is skipped for that pass and reported through
``on_rule_error``; the remaining rules still run.
"""

from __future__ import annotations
import bisect
import logging
import time
from typing import Callable, Iterable, Sequence

from .errors import ProcessingTimeoutError, RuleExecutionError
from .rules import Rule
from .types import DetectionResult, Match

logger = logging.getLogger(__name__)


class Deadline:
    """Monotonic wall-clock budget shared by every stage of one call."""

    __slots__ = ("limit_ms", "_started", "_expires")

    def __init__(self, limit_ms: float | None) -> None:
        self.limit_ms = limit_ms
        self._started = time.monotonic()
        self._expires = None if limit_ms is None else self._started + limit_ms / 1000.0

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._started) * 1000.0

    def expired(self) -> bool:
        return self._expires is not None and time.monotonic() > self._expires

    def check(self) -> None:
        if self.expired():
            raise ProcessingTimeoutError(self.limit_ms, self.elapsed_ms)


class Detector:
    """Applies rules to text and returns a conflict-free match set."""

    def __init__(self, on_rule_error: Callable[[RuleExecutionError], None] | None = None) -> None:
        self._on_rule_error = on_rule_error

    def detect(
        self,
        text: str,
        rules: Sequence[Rule],
        deadline: Deadline | None = None,
    ) -> DetectionResult:
        candidates, skipped = self.collect(text, rules, deadline)
        locations = resolve_overlaps(candidates)
        return DetectionResult(
            has_pii=bool(locations),
            confidence=confidence_score(len(text), locations),
            detected_types=frozenset(m.category for m in locations),
            locations=tuple(locations),
            skipped_rules=tuple(skipped),
        )

    def collect(
        self,
        text: str,
        rules: Iterable[Rule],
        deadline: Deadline | None = None,
    ) -> tuple[list[tuple[int, Match]], list[str]]:
        """Raw ``(priority, match)`` candidates from every rule, plus skipped rule ids."""
        candidates: list[tuple[int, Match]] = []
        skipped: list[str] = []
        for rule in rules:
            try:
                matches = self._scan(rule, text, deadline)
            except ProcessingTimeoutError:
                raise
            except RuleExecutionError as exc:
                self._report(exc)
                skipped.append(rule.id)
                continue
            except Exception as exc:
                self._report(RuleExecutionError(rule.id, f"{type(exc).__name__}: {exc}"))
                skipped.append(rule.id)
                continue
            candidates.extend((rule.priority, m) for m in matches)
        return candidates, skipped

    def _scan(self, rule: Rule, text: str, deadline: Deadline | None) -> list[Match]:
        seen: set[tuple[int, int]] = set()
        matches: list[Match] = []
        for start, end, value in rule.scan(text):
            if deadline is not None:
                deadline.check()
            if (start, end) in seen:
                continue
            seen.add((start, end))
            matches.append(Match(
                rule_id=rule.id,
                category=rule.category,
                start=start,
                end=end,
                value=value,
            ))
        return matches

    def _report(self, error: RuleExecutionError) -> None:
        logger.warning("Skipping rule %r for this pass: %s", error.rule_id, error.reason)
        if self._on_rule_error is not None:
            self._on_rule_error(error)


def resolve_overlaps(candidates: Iterable[tuple[int, Match]]) -> list[Match]:
    """Greedy overlap resolution; returns accepted matches ordered by start."""
    ranked = sorted(candidates, key=lambda c: (-c[0], -c[1].length, c[1].start))
    starts: list[int] = []
    accepted: list[Match] = []          # kept sorted by start, never overlapping
    for _, m in ranked:
        i = bisect.bisect_left(starts, m.start)
        if i > 0 and accepted[i - 1].end > m.start:
            continue
        if i < len(accepted) and accepted[i].start < m.end:
            continue
        starts.insert(i, m.start)
        accepted.insert(i, m)
    return accepted


def confidence_score(text_length: int, matches: Sequence[Match]) -> float:
    """0 with no matches; grows with category diversity and text coverage."""
    if not matches:
        return 0.0
    categories = len({m.category for m in matches})
    covered = sum(m.length for m in matches)
    coverage = min(covered / text_length, 1.0) if text_length else 1.0
    diversity = 1.0 - 0.5 ** categories
    return round(diversity + (1.0 - diversity) * coverage, 4)
