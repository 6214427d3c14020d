"""Optional rules backed by Presidio pattern recognizers.

Presidio's predefined recognizers pair regular expressions with checksum
validation (Luhn for credit cards, etc.).  Only that rule-based part is
used here: candidates come from the recognizer's patterns and are kept when
``validate_result`` does not reject them.  No NLP model is loaded.

Requires the ``presidio`` extra (``pip install pii-anonymizer[presidio]``).
"""

from __future__ import annotations
import re
from typing import TYPE_CHECKING

from .rules import PredicateMatcher, Rule
from .types import Category, Strategy

if TYPE_CHECKING:
    from presidio_analyzer import PatternRecognizer

# Presidio compiles its patterns with these flags by default
PRESIDIO_FLAGS = re.DOTALL | re.MULTILINE | re.IGNORECASE


def rule_from_recognizer(
    recognizer: PatternRecognizer,
    *,
    rule_id: str,
    category: Category,
    priority: int,
    strategy: Strategy = Strategy.REDACT,
) -> Rule:
    """Wrap a Presidio ``PatternRecognizer`` as a custom-predicate rule."""
    patterns = [p.regex for p in recognizer.patterns]
    if not patterns:
        raise ValueError(f"recognizer {recognizer.name!r} has no patterns")
    candidate = "|".join(f"(?:{p})" for p in patterns)

    def validate(value: str) -> bool:
        # None means "no opinion" in Presidio; only an explicit False rejects
        if recognizer.validate_result(value) is False:
            return False
        invalidate = getattr(recognizer, "invalidate_result", None)
        return not (invalidate is not None and invalidate(value))

    return Rule(
        id=rule_id,
        category=category,
        priority=priority,
        matcher=PredicateMatcher(candidate, validate, PRESIDIO_FLAGS),
        strategy=strategy,
        description=f"Presidio {recognizer.supported_entities[0]} recognizer",
    )


def presidio_rules() -> list[Rule]:
    """Checksum-validated rules from Presidio's predefined recognizers."""
    from presidio_analyzer.predefined_recognizers import CreditCardRecognizer

    return [
        rule_from_recognizer(
            CreditCardRecognizer(),
            rule_id="credit_card",
            category=Category.CREDENTIAL,
            priority=92,
        ),
    ]
