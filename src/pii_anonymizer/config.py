"""YAML/dict config loader for pii-anonymizer.

Supports loading from a YAML file or a plain dict (for embedding in a
larger application config).

Example YAML:

    pii_anonymizer:
      enable_pseudonyms: true
      preserve_structure: true
      max_processing_time_ms: 5000
      hash_salt: "rotate-me-per-report"
      enabled_rules: [email, ipv4, hostname, credential]
      disabled_rules: [mac_address]
      use_presidio: false
      custom_rules:
        - id: ticket
          category: system
          priority: 60
          strategy: hash
          pattern: 'TICKET-\\d{4,}'
        - id: db_password
          category: credential
          priority: 96
          strategy: redact
          keywords: [db_pass, database_password]
          value_pattern: '[^\\s]+'
"""

from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import Any

from .engine import AnonymizationEngine, create_anonymization_engine
from .errors import ConfigurationError
from .options import DEFAULT_MAX_PROCESSING_TIME_MS, AnonymizationOptions
from .patterns import default_registry
from .rules import DEFAULT_MAX_MATCHES, PatternMatcher, Rule, RuleRegistry, TemplateMatcher
from .types import Category, Strategy

logger = logging.getLogger(__name__)


def load_config(data: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    data = data or {}
    # Support nested under "pii_anonymizer" key or flat
    if "pii_anonymizer" in data:
        data = data["pii_anonymizer"] or {}

    enabled = data.get("enabled_rules")
    return {
        "enable_pseudonyms": bool(data.get("enable_pseudonyms", True)),
        "preserve_structure": bool(data.get("preserve_structure", True)),
        "max_processing_time_ms": data.get("max_processing_time_ms", DEFAULT_MAX_PROCESSING_TIME_MS),
        "hash_salt": data.get("hash_salt"),
        "enabled_rules": list(enabled) if enabled is not None else None,
        "disabled_rules": list(data.get("disabled_rules") or []),
        "custom_rules": [parse_rule(r) for r in data.get("custom_rules") or []],
        "use_presidio": bool(data.get("use_presidio", False)),
    }


def load_from_yaml(path: str | Path) -> dict[str, Any]:
    """Load config from a YAML file."""
    import yaml
    with open(path, encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}: {e}") from e
    if raw is not None and not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    return load_config(raw)


def parse_rule(spec: dict[str, Any]) -> Rule:
    """Build a custom rule from its config record.

    ``pattern`` gives a fixed-pattern rule; ``keywords`` plus
    ``value_pattern`` gives a format-template rule.  Patterns are not
    compiled here: a bad pattern surfaces as a skipped rule at match time.
    """
    if not isinstance(spec, dict):
        raise ConfigurationError(f"custom rule must be a mapping, got {type(spec).__name__}")
    rule_id = spec.get("id")
    if not rule_id:
        raise ConfigurationError("custom rule is missing 'id'")
    try:
        category = Category(spec.get("category", Category.SYSTEM.value))
        strategy = Strategy(spec.get("strategy", Strategy.REDACT.value))
        priority = int(spec.get("priority", 50))
        max_matches = int(spec.get("max_matches", DEFAULT_MAX_MATCHES))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"custom rule {rule_id!r}: {e}") from e

    flags = re.IGNORECASE if spec.get("ignore_case") else 0
    if "pattern" in spec:
        matcher = PatternMatcher(str(spec["pattern"]), flags)
    elif "keywords" in spec and "value_pattern" in spec:
        matcher = TemplateMatcher(
            [str(k) for k in spec["keywords"]],
            str(spec["value_pattern"]),
            flags=flags or re.IGNORECASE,
        )
    else:
        raise ConfigurationError(
            f"custom rule {rule_id!r} needs 'pattern' or 'keywords' + 'value_pattern'"
        )

    return Rule(
        id=str(rule_id),
        category=category,
        priority=priority,
        matcher=matcher,
        strategy=strategy,
        format_preserving=bool(spec.get("format_preserving", False)),
        description=str(spec.get("description", "")),
        max_matches=max_matches,
    )


def build_registry(cfg: dict[str, Any]) -> RuleRegistry:
    """Default rules, plus Presidio and custom rules, minus disabled ones."""
    registry = default_registry()
    if cfg.get("use_presidio"):
        from .presidio_layer import presidio_rules
        for rule in presidio_rules():
            registry.register(rule)
    for rule in cfg.get("custom_rules", []):
        if registry.register(rule) is not None:
            logger.info("Custom rule %r overrides a built-in rule", rule.id)
    for rule_id in cfg.get("disabled_rules", []):
        registry.disable(rule_id)
    return registry


def options_from_config(cfg: dict[str, Any]) -> AnonymizationOptions:
    return AnonymizationOptions(
        enable_pseudonyms=cfg["enable_pseudonyms"],
        preserve_structure=cfg["preserve_structure"],
        max_processing_time_ms=cfg["max_processing_time_ms"],
        hash_salt=cfg["hash_salt"],
        enabled_rules=frozenset(cfg["enabled_rules"]) if cfg["enabled_rules"] is not None else None,
    )


_NORMALIZED_KEYS = frozenset({
    "enable_pseudonyms", "preserve_structure", "max_processing_time_ms", "hash_salt",
    "enabled_rules", "disabled_rules", "custom_rules", "use_presidio",
})


def _is_normalized(config: dict[str, Any]) -> bool:
    return set(config) == _NORMALIZED_KEYS and all(isinstance(r, Rule) for r in config["custom_rules"])


def create_engine_from_config(config: dict[str, Any]) -> tuple[AnonymizationEngine, AnonymizationOptions]:
    """An isolated engine and the default options described by *config*."""
    cfg = config if _is_normalized(config) else load_config(config)
    registry = build_registry(cfg)
    options = options_from_config(cfg)
    options.validate(registry)
    return create_anonymization_engine(registry, hash_salt=cfg["hash_salt"]), options
