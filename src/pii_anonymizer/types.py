"""Core types."""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Category(str, Enum):
    """What kind of sensitive data a rule detects."""
    PERSONAL = "personal"
    NETWORK = "network"
    INFRASTRUCTURE = "infrastructure"
    SYSTEM = "system"
    CREDENTIAL = "credential"
    FILESYSTEM = "filesystem"


class Strategy(str, Enum):
    """How a matched value is replaced."""
    PSEUDONYM = "pseudonym"
    REDACT = "redact"
    HASH = "hash"
    GENERIC = "generic-placeholder"


@dataclass(frozen=True, slots=True)
class Match:
    """A single detected value.  ``[start, end)`` indexes the original text."""
    rule_id: str
    category: Category
    start: int
    end: int
    value: str

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: Match) -> bool:
        return self.start < other.end and self.end > other.start


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Outcome of a detection pass."""
    has_pii: bool
    confidence: float                                   # 0.0–1.0
    detected_types: frozenset[Category] = frozenset()
    locations: tuple[Match, ...] = ()                   # ordered by start
    skipped_rules: tuple[str, ...] = ()                 # rules that failed this pass

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasPII": self.has_pii,
            "confidence": self.confidence,
            "detectedTypes": sorted(c.value for c in self.detected_types),
            "locations": [
                {
                    "ruleId": m.rule_id,
                    "category": m.category.value,
                    "startIndex": m.start,
                    "endIndex": m.end,
                    "value": m.value,
                }
                for m in self.locations
            ],
            "skippedRules": list(self.skipped_rules),
        }


@dataclass(frozen=True, slots=True)
class PseudonymMapping:
    """One forward mapping held by a PseudonymManager."""
    type: str
    category: str
    original_value: str
    pseudonym: str
    created_at: str


@dataclass(frozen=True, slots=True)
class AnonymizationMetadata:
    rules_applied: tuple[str, ...] = ()
    pseudonyms_used: int = 0
    processing_time_ms: float = 0.0
    is_anonymized: bool = False
    preserved_structure: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "rulesApplied": list(self.rules_applied),
            "pseudonymsUsed": self.pseudonyms_used,
            "processingTimeMs": self.processing_time_ms,
            "isAnonymized": self.is_anonymized,
            "preservedStructure": self.preserved_structure,
        }


@dataclass(frozen=True, slots=True)
class AnonymizationResult:
    """Result of anonymizing text (or a structured payload)."""
    data: Any
    metadata: AnonymizationMetadata

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "metadata": self.metadata.to_dict()}


@dataclass(slots=True)
class EngineStats:
    """Cumulative counters for one engine (a snapshot when returned)."""
    total_processed: int = 0
    total_pseudonyms: int = 0
    average_processing_time: float = 0.0
    error_rate: float = 0.0
    rules_usage: dict[str, int] = field(default_factory=dict)
    total_detections: int = 0
    rule_errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProcessed": self.total_processed,
            "totalPseudonyms": self.total_pseudonyms,
            "averageProcessingTime": self.average_processing_time,
            "errorRate": self.error_rate,
            "rulesUsage": dict(self.rules_usage),
            "totalDetections": self.total_detections,
            "ruleErrors": self.rule_errors,
        }
