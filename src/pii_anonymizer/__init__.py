"""PII Anonymizer — rule-based detection and one-way pseudonymization for diagnostic text."""

from .engine import AnonymizationEngine, create_anonymization_engine, get_instance
from .options import AnonymizationOptions
from .pseudonyms import PseudonymManager
from .rules import Rule, RuleRegistry, PatternMatcher, TemplateMatcher, PredicateMatcher
from .patterns import DEFAULT_RULES, default_registry
from .detector import Detector
from .replacer import Replacer, REDACTED
from .config import create_engine_from_config, load_config, load_from_yaml
from .errors import AnonymizationError, RuleExecutionError, ProcessingTimeoutError, ConfigurationError
from .types import (
    Category, Strategy, Match, DetectionResult, AnonymizationResult,
    AnonymizationMetadata, EngineStats, PseudonymMapping,
)

__all__ = [
    "AnonymizationEngine", "create_anonymization_engine", "get_instance",
    "AnonymizationOptions",
    "PseudonymManager",
    "Rule", "RuleRegistry", "PatternMatcher", "TemplateMatcher", "PredicateMatcher",
    "DEFAULT_RULES", "default_registry",
    "Detector",
    "Replacer", "REDACTED",
    "create_engine_from_config", "load_config", "load_from_yaml",
    "AnonymizationError", "RuleExecutionError", "ProcessingTimeoutError", "ConfigurationError",
    "Category", "Strategy", "Match", "DetectionResult", "AnonymizationResult",
    "AnonymizationMetadata", "EngineStats", "PseudonymMapping",
]
__version__ = "0.1.0"
