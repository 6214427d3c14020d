"""Rules — what to detect, how urgently, and how to replace it.

A rule pairs a matcher with a category, a priority (0–100, higher wins on
overlap) and a replacement strategy.  Matchers come in three kinds:

    PatternMatcher    fixed regular expression, whole match is the value
    TemplateMatcher   ``keyword <sep> value`` — only the value is replaced
    PredicateMatcher  candidate regex filtered by a validating predicate

Usage:
    registry = RuleRegistry()
    registry.register(Rule(
        id="ticket",
        category=Category.SYSTEM,
        priority=60,
        matcher=PatternMatcher(r"\\bTICKET-\\d{4,}\\b"),
        strategy=Strategy.HASH,
    ))
    registry.disable("ticket")   # kept in the registry, skipped when matching
"""

from __future__ import annotations
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Sequence

from .errors import ConfigurationError, RuleExecutionError
from .types import Category, Strategy

logger = logging.getLogger(__name__)

DEFAULT_MAX_MATCHES = 10_000

# A quantified group that itself ends in a quantifier: (a+)+, (\w*)*, (x+){2,}
_NESTED_QUANTIFIER = re.compile(r"\((?:[^()\\]|\\.)*[+*]\)(?:[+*]|\{\d+,\d*\})")
# An unbounded repeat of an alternation: (a|a)*, (?:x|xy)+
_QUANTIFIED_ALTERNATION = re.compile(r"\((?:[^()\\]|\\.)*\|(?:[^()\\]|\\.)*\)(?:[+*]|\{\d+,\d*\})")

Span = tuple[int, int, str]


def _compile(pattern: str, flags: int) -> re.Pattern:
    """Compile a rule pattern, refusing the common catastrophic-backtracking shapes.

    The check is syntactic and only looks at innermost groups, so it is a
    guard against the usual mistakes rather than a proof of linear time.
    ``re`` cannot be interrupted: a pattern that slips through still runs
    to completion in its worker thread after the call has timed out.
    """
    if _NESTED_QUANTIFIER.search(pattern):
        raise ValueError(f"nested quantifier in pattern {pattern!r}")
    if _QUANTIFIED_ALTERNATION.search(pattern):
        raise ValueError(f"quantified alternation in pattern {pattern!r}")
    return re.compile(pattern, flags)


class Matcher(ABC):
    """Produces candidate spans ``(start, end, value)`` for a text."""

    kind: str = ""

    @abstractmethod
    def find(self, text: str) -> Iterator[Span]:
        raise NotImplementedError

    @abstractmethod
    def accepts(self, value: str) -> bool:
        """True if *value* on its own has the shape this matcher detects."""
        raise NotImplementedError


class PatternMatcher(Matcher):
    """Fixed pattern; compiled on first use so a bad pattern fails at match time."""

    kind = "fixed-pattern"
    __slots__ = ("pattern", "flags", "_regex")

    def __init__(self, pattern: str, flags: int = 0) -> None:
        self.pattern = pattern
        self.flags = flags
        self._regex: re.Pattern | None = None

    @property
    def regex(self) -> re.Pattern:
        if self._regex is None:
            self._regex = _compile(self.pattern, self.flags)
        return self._regex

    def find(self, text: str) -> Iterator[Span]:
        for m in self.regex.finditer(text):
            if m.end() > m.start():
                yield m.start(), m.end(), m.group()

    def accepts(self, value: str) -> bool:
        return self.regex.fullmatch(value) is not None

    def __repr__(self) -> str:
        return f"PatternMatcher({self.pattern!r})"


class TemplateMatcher(Matcher):
    """``keyword <separator> value`` where only the value is reported.

    ``boundary`` is what must precede the keyword; ``(?<![A-Za-z0-9])``
    lets prefixed keys such as ``db_password`` match.
    """

    kind = "format-template"
    __slots__ = ("keywords", "value_pattern", "separator", "boundary", "flags", "_regex", "_value_regex")

    def __init__(
        self,
        keywords: Sequence[str],
        value_pattern: str,
        *,
        separator: str = r"\s*[:=]\s*",
        boundary: str = r"\b",
        flags: int = re.IGNORECASE,
    ) -> None:
        self.keywords = tuple(keywords)
        self.value_pattern = value_pattern
        self.separator = separator
        self.boundary = boundary
        self.flags = flags
        self._regex: re.Pattern | None = None
        self._value_regex: re.Pattern | None = None

    @property
    def regex(self) -> re.Pattern:
        if self._regex is None:
            alternation = "|".join(self.keywords)
            self._regex = _compile(
                rf"{self.boundary}(?:{alternation})(?:{self.separator})(?P<value>{self.value_pattern})",
                self.flags,
            )
        return self._regex

    def find(self, text: str) -> Iterator[Span]:
        for m in self.regex.finditer(text):
            start, end = m.span("value")
            if end > start:
                yield start, end, m.group("value")

    def accepts(self, value: str) -> bool:
        if self._value_regex is None:
            self._value_regex = _compile(self.value_pattern, self.flags)
        return self._value_regex.fullmatch(value) is not None

    def __repr__(self) -> str:
        return f"TemplateMatcher({self.keywords!r}, {self.value_pattern!r})"


class PredicateMatcher(Matcher):
    """Candidates from a regex, kept only when ``predicate(value)`` is true."""

    kind = "custom-predicate"
    __slots__ = ("candidates", "predicate")

    def __init__(self, candidate_pattern: str, predicate: Callable[[str], bool], flags: int = 0) -> None:
        self.candidates = PatternMatcher(candidate_pattern, flags)
        self.predicate = predicate

    def find(self, text: str) -> Iterator[Span]:
        for start, end, value in self.candidates.find(text):
            if self.predicate(value):
                yield start, end, value

    def accepts(self, value: str) -> bool:
        return self.candidates.accepts(value) and bool(self.predicate(value))

    def __repr__(self) -> str:
        return f"PredicateMatcher({self.candidates.pattern!r}, {self.predicate!r})"


@dataclass(frozen=True, slots=True)
class Rule:
    """An immutable detection/replacement policy."""
    id: str
    category: Category
    priority: int                       # 0–100, higher wins on overlap
    matcher: Matcher
    strategy: Strategy
    format_preserving: bool = False
    description: str = ""
    max_matches: int = DEFAULT_MAX_MATCHES

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("rule id must not be empty")
        if not 0 <= self.priority <= 100:
            raise ConfigurationError(f"rule {self.id!r}: priority {self.priority} outside 0-100")
        if self.max_matches < 1:
            raise ConfigurationError(f"rule {self.id!r}: max_matches must be positive")

    def scan(self, text: str) -> Iterator[Span]:
        """Yield candidate spans, enforcing the per-rule match budget."""
        for count, span in enumerate(self.matcher.find(text), start=1):
            if count > self.max_matches:
                raise RuleExecutionError(self.id, f"match budget of {self.max_matches} exceeded")
            yield span


class RuleRegistry:
    """Ordered collection of rules with enable/disable by id.

    Registering a rule whose id is already present REPLACES the previous
    definition (last write wins) and keeps its enabled/disabled state.
    """

    __slots__ = ("_rules", "_disabled", "_lock")

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        self._disabled: set[str] = set()
        self._lock = threading.Lock()
        for rule in rules:
            self.register(rule)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register(self, rule: Rule) -> Rule | None:
        """Add *rule*; returns the definition it replaced, if any."""
        with self._lock:
            previous = self._rules.get(rule.id)
            self._rules[rule.id] = rule
        if previous is not None:
            logger.info("Rule %r redefined (priority %d -> %d)", rule.id, previous.priority, rule.priority)
        return previous

    def disable(self, rule_id: str) -> None:
        with self._lock:
            self._require(rule_id)
            self._disabled.add(rule_id)

    def enable(self, rule_id: str) -> None:
        with self._lock:
            self._require(rule_id)
            self._disabled.discard(rule_id)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, rule_id: str) -> Rule:
        with self._lock:
            self._require(rule_id)
            return self._rules[rule_id]

    def is_enabled(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._rules and rule_id not in self._disabled

    def active_rules(self) -> list[Rule]:
        """Enabled rules, highest priority first (ties keep registration order)."""
        with self._lock:
            active = [r for r in self._rules.values() if r.id not in self._disabled]
        return sorted(active, key=lambda r: -r.priority)

    def select(self, enabled_rules: Iterable[str] | None) -> list[Rule]:
        """Active rules restricted to *enabled_rules*; unknown ids are an error."""
        active = self.active_rules()
        if enabled_rules is None:
            return active
        wanted = set(enabled_rules)
        unknown = sorted(wanted - set(self.ids()))
        if unknown:
            raise ConfigurationError(f"unknown rule id(s) in enabled_rules: {', '.join(unknown)}")
        return [r for r in active if r.id in wanted]

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        with self._lock:
            return iter(list(self._rules.values()))

    def copy(self) -> RuleRegistry:
        """Independent registry with the same rules and enabled state."""
        clone = RuleRegistry()
        with self._lock:
            clone._rules = dict(self._rules)
            clone._disabled = set(self._disabled)
        return clone

    def _require(self, rule_id: str) -> None:
        if rule_id not in self._rules:
            raise ConfigurationError(f"unknown rule id: {rule_id!r}")
