"""
Exception hierarchy for the anonymization engine.

All public exceptions inherit from :class:`AnonymizationError`, so callers
can catch a single base class while still telling the specific failure
conditions apart.
"""

from __future__ import annotations


class AnonymizationError(Exception):
    """Base exception for all engine-specific errors."""

    pass


class RuleExecutionError(AnonymizationError):
    """A single rule's matcher failed.  Recovered locally: the rule is skipped."""

    def __init__(self, rule_id: str, reason: str) -> None:
        super().__init__(f"rule {rule_id!r} failed: {reason}")
        self.rule_id = rule_id
        self.reason = reason


class ProcessingTimeoutError(AnonymizationError):
    """A call exceeded ``max_processing_time_ms``.  No partial output is returned."""

    def __init__(self, limit_ms: float, elapsed_ms: float | None = None) -> None:
        detail = f" after {elapsed_ms:.1f} ms" if elapsed_ms is not None else ""
        super().__init__(f"processing exceeded {limit_ms:g} ms{detail}")
        self.limit_ms = limit_ms
        self.elapsed_ms = elapsed_ms


class ConfigurationError(AnonymizationError):
    """Invalid options: unknown rule ids, malformed salt, bad custom rule."""

    pass
