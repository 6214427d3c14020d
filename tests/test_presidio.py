"""Tests for the optional Presidio-backed rules."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import asyncio

import pytest

pytest.importorskip("presidio_analyzer")

from pii_anonymizer import REDACTED, create_engine_from_config
from pii_anonymizer.presidio_layer import presidio_rules


def test_credit_card_rule_validates_checksum():
    rule = presidio_rules()[0]
    assert rule.id == "credit_card"
    found = [v for _, _, v in rule.matcher.find("card 4111-1111-1111-1111 on file")]
    assert found == ["4111-1111-1111-1111"]
    assert list(rule.matcher.find("card 4111-1111-1111-1112 on file")) == []


def test_engine_with_presidio():
    engine, options = create_engine_from_config({"use_presidio": True})
    assert "credit_card" in engine.registry
    result = asyncio.run(engine.anonymize("paid with 4111 1111 1111 1111", options))
    assert result.data == f"paid with {REDACTED}"
    assert result.metadata.rules_applied == ("credit_card",)
