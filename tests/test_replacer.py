"""Tests for the replacer."""

import sys, os, re
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from pii_anonymizer import (
    Category, Detector, Match, PseudonymManager, REDACTED, Replacer, Strategy, default_registry,
)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def replacer():
    return Replacer(PseudonymManager("replacer-test-salt"))


def _run(replacer, registry, text, **kw):
    rules = registry.active_rules()
    detection = Detector().detect(text, rules)
    return replacer.apply(text, detection.locations, {r.id: r for r in rules}, **kw)


def test_unmatched_text_copied_verbatim(replacer, registry):
    text = "ping 10.0.0.1 then 10.0.0.2, done."
    out = _run(replacer, registry, text)
    subs = out.substitutions
    assert len(subs) == 2
    # Reassemble: every gap between matches survives unchanged
    expected = (
        text[:subs[0].start] + subs[0].replacement
        + text[subs[0].end:subs[1].start] + subs[1].replacement
        + text[subs[1].end:]
    )
    assert out.text == expected
    assert out.text.startswith("ping ") and out.text.endswith(", done.")


def test_output_length(replacer, registry):
    text = "mail admin@example.com and password: hunter22"
    out = _run(replacer, registry, text)
    delta = sum(len(s.replacement) - (s.end - s.start) for s in out.substitutions)
    assert len(out.text) == len(text) + delta


def test_pseudonyms_disabled_falls_back_to_redaction(replacer, registry):
    out = _run(replacer, registry, "mail admin@example.com", enable_pseudonyms=False)
    assert out.text == f"mail {REDACTED}"
    assert out.substitutions[0].strategy is Strategy.REDACT
    assert out.pseudonyms_used == 0
    assert replacer.pseudonyms.size == 0


def test_credential_always_redacted(replacer, registry):
    for flag in (True, False):
        out = _run(replacer, registry, "password: secret123", enable_pseudonyms=flag)
        assert out.text == f"password: {REDACTED}"
        assert out.rules_applied == ("credential",)


def test_hash_strategy(replacer, registry):
    out = _run(replacer, registry, "nic 00:1A:2B:3C:4D:5E up")
    token = out.text.split()[1]
    assert re.fullmatch(r"[0-9a-f]{16}", token)
    salted = _run(replacer, registry, "nic 00:1A:2B:3C:4D:5E up", hash_salt="per-call-salt")
    assert salted.text.split()[1] != token


def test_generic_placeholder(replacer, registry):
    out = _run(replacer, registry, "addr 2001:0db8:85a3:0000:0000:8a2e:0370:7334 ok")
    assert out.text == "addr [NETWORK] ok"


def test_repeated_value_counts_one_pseudonym(replacer, registry):
    out = _run(replacer, registry, "10.0.0.1 -> 10.0.0.1")
    first, second = out.text.split(" -> ")
    assert first == second
    assert out.pseudonyms_used == 1
    assert out.rules_applied == ("ipv4",)


def test_overlapping_matches_rejected(replacer, registry):
    rules = {r.id: r for r in registry}
    matches = [
        Match("ipv4", Category.NETWORK, 0, 8, "10.0.0.1"),
        Match("ipv4", Category.NETWORK, 4, 10, "0.1 10"),
    ]
    with pytest.raises(ValueError):
        replacer.apply("10.0.0.1 10", matches, rules)


def test_no_matches(replacer, registry):
    out = _run(replacer, registry, "nothing here")
    assert out.text == "nothing here"
    assert out.substitutions == []
    assert out.rules_applied == ()
