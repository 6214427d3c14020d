"""Per-call anonymization options."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .errors import ConfigurationError
from .pseudonyms import normalize_salt
from .rules import RuleRegistry

DEFAULT_MAX_PROCESSING_TIME_MS = 5000.0

# camelCase spellings accepted from callers that pass plain records
_ALIASES = {
    "enablePseudonyms": "enable_pseudonyms",
    "preserveStructure": "preserve_structure",
    "maxProcessingTimeMs": "max_processing_time_ms",
    "maxProcessingTime": "max_processing_time_ms",
    "hashSalt": "hash_salt",
    "enabledRules": "enabled_rules",
}


@dataclass(frozen=True, slots=True)
class AnonymizationOptions:
    """Options for a single ``anonymize``/``detect_pii`` call.

    enable_pseudonyms       pseudonym-strategy rules emit pseudonyms; when
                            False they fall back to redaction
    preserve_structure      walk structured payloads instead of flattening
                            them to JSON text
    max_processing_time_ms  wall-clock budget; ``None`` disables the limit
    hash_salt               salt for ``hash``-strategy tokens in this call
    enabled_rules           restrict matching to these rule ids
    """
    enable_pseudonyms: bool = True
    preserve_structure: bool = True
    max_processing_time_ms: float | None = DEFAULT_MAX_PROCESSING_TIME_MS
    hash_salt: str | None = None
    enabled_rules: frozenset[str] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> AnonymizationOptions:
        """Build options from a plain record; unrecognized keys are ignored."""
        if not data:
            return cls()
        known = {
            "enable_pseudonyms", "preserve_structure", "max_processing_time_ms",
            "hash_salt", "enabled_rules",
        }
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
        if kwargs.get("enabled_rules") is not None:
            kwargs["enabled_rules"] = _as_rule_set(kwargs["enabled_rules"])
        return cls(**kwargs)

    @classmethod
    def coerce(cls, options: AnonymizationOptions | Mapping[str, Any] | None) -> AnonymizationOptions:
        if isinstance(options, cls):
            return options
        return cls.from_mapping(options)

    def validate(self, registry: RuleRegistry) -> None:
        """Check against *registry*; raises ConfigurationError."""
        limit = self.max_processing_time_ms
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit <= 0):
            raise ConfigurationError(f"max_processing_time_ms must be a positive number, got {limit!r}")
        if self.hash_salt is not None:
            normalize_salt(self.hash_salt)
        if self.enabled_rules is not None:
            unknown = sorted(set(self.enabled_rules) - set(registry.ids()))
            if unknown:
                raise ConfigurationError(f"unknown rule id(s) in enabled_rules: {', '.join(unknown)}")


def _as_rule_set(value: Any) -> frozenset[str]:
    if isinstance(value, str):
        return frozenset(v.strip() for v in value.split(",") if v.strip())
    if isinstance(value, Iterable):
        return frozenset(str(v) for v in value)
    raise ConfigurationError(f"enabled_rules must be a list of rule ids, got {type(value).__name__}")
