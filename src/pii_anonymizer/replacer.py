"""Replacer — rebuilds text with substitutes for a non-overlapping match set.

Output is assembled left to right from a cursor into the original text, so
substitutes of a different length never shift the offsets of later matches
and everything between matches is copied verbatim.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from .detector import Deadline
from .pseudonyms import PseudonymManager
from .rules import Rule
from .types import Match, Strategy

REDACTED = "[REDACTED]"


def placeholder_for(rule: Rule) -> str:
    return f"[{rule.category.value.upper()}]"


@dataclass(frozen=True, slots=True)
class Substitution:
    """One replaced span, with the strategy that was actually used."""
    rule_id: str
    strategy: Strategy
    start: int
    end: int
    replacement: str


@dataclass(slots=True)
class ReplacementOutcome:
    text: str
    substitutions: list[Substitution] = field(default_factory=list)

    @property
    def rules_applied(self) -> tuple[str, ...]:
        return rules_applied(self.substitutions)

    @property
    def pseudonyms_used(self) -> int:
        return pseudonyms_used(self.substitutions)


def rules_applied(substitutions: Iterable[Substitution]) -> tuple[str, ...]:
    """Rule ids in order of first use."""
    return tuple(dict.fromkeys(s.rule_id for s in substitutions))


def pseudonyms_used(substitutions: Iterable[Substitution]) -> int:
    """Distinct pseudonyms written."""
    return len({s.replacement for s in substitutions if s.strategy is Strategy.PSEUDONYM})


class Replacer:
    """Turns matches into substitutes according to each rule's strategy."""

    def __init__(self, pseudonyms: PseudonymManager) -> None:
        self.pseudonyms = pseudonyms

    def apply(
        self,
        text: str,
        matches: Sequence[Match],
        rules: Mapping[str, Rule],
        *,
        enable_pseudonyms: bool = True,
        hash_salt: str | None = None,
        deadline: Deadline | None = None,
    ) -> ReplacementOutcome:
        parts: list[str] = []
        substitutions: list[Substitution] = []
        cursor = 0
        for match in sorted(matches, key=lambda m: m.start):
            if match.start < cursor:
                raise ValueError(f"overlapping match for rule {match.rule_id!r} at {match.start}")
            if deadline is not None:
                deadline.check()
            rule = rules[match.rule_id]
            strategy, replacement = self.substitute(
                match, rule, enable_pseudonyms=enable_pseudonyms, hash_salt=hash_salt,
            )
            parts.append(text[cursor:match.start])
            parts.append(replacement)
            cursor = match.end
            substitutions.append(Substitution(
                rule_id=rule.id,
                strategy=strategy,
                start=match.start,
                end=match.end,
                replacement=replacement,
            ))
        parts.append(text[cursor:])
        return ReplacementOutcome(text="".join(parts), substitutions=substitutions)

    def substitute(
        self,
        match: Match,
        rule: Rule,
        *,
        enable_pseudonyms: bool = True,
        hash_salt: str | None = None,
    ) -> tuple[Strategy, str]:
        """The effective strategy and substitute value for one match."""
        strategy = rule.strategy
        if strategy is Strategy.PSEUDONYM and not enable_pseudonyms:
            strategy = Strategy.REDACT

        if strategy is Strategy.PSEUDONYM:
            return strategy, self.pseudonyms.pseudonym_for(rule.id, match.value, rule.category.value)
        if strategy is Strategy.HASH:
            return strategy, self.pseudonyms.hash_token(match.value, hash_salt)
        if strategy is Strategy.GENERIC:
            return strategy, placeholder_for(rule)
        return Strategy.REDACT, REDACTED
