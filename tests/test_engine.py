"""Tests for the anonymization engine — the public async API."""

import sys, os, json, random, re, string, time
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import asyncio

import pytest

from pii_anonymizer import (
    AnonymizationEngine, AnonymizationError, AnonymizationOptions, Category, ConfigurationError,
    PatternMatcher, PredicateMatcher, ProcessingTimeoutError, REDACTED, Rule, RuleRegistry, Strategy,
    create_anonymization_engine, default_registry, get_instance,
)
from pii_anonymizer.engine import CIRCULAR_REFERENCE
from pii_anonymizer.patterns import EMAIL_PATTERN

SALT = "engine-test-salt"


@pytest.fixture
def engine():
    return create_anonymization_engine(hash_salt=SALT)


def run(coro):
    return asyncio.run(coro)


# ── Scenarios ────────────────────────────────────────────────────────

def test_email_is_pseudonymized(engine):
    text = "Contact admin@example.com for help"
    result = run(engine.anonymize(text))
    assert "admin@example.com" not in result.data
    assert result.data.startswith("Contact ") and result.data.endswith(" for help")
    token = result.data[len("Contact "):-len(" for help")]
    assert re.fullmatch(EMAIL_PATTERN, token)
    assert "email" in result.metadata.rules_applied
    assert result.metadata.pseudonyms_used == 1
    assert result.metadata.is_anonymized


def test_detect_only(engine):
    report = run(engine.detect_pii("Server at 192.168.1.1"))
    assert report.has_pii
    assert Category.NETWORK in report.detected_types
    assert [m.value for m in report.locations] == ["192.168.1.1"]
    stats = engine.get_stats()
    assert stats.total_detections == 1
    assert stats.total_processed == 0
    assert engine.list_mappings() == []


@pytest.mark.parametrize("enable", [True, False])
def test_credential_redacted_regardless_of_pseudonyms(engine, enable):
    result = run(engine.anonymize("password: secret123", {"enablePseudonyms": enable}))
    assert result.data == f"password: {REDACTED}"
    assert result.metadata.rules_applied == ("credential",)
    assert result.metadata.pseudonyms_used == 0


@pytest.mark.parametrize("text,expected", [
    ('password: "hunter2"', f'password: "{REDACTED}"'),
    ("password='hunter2'", f"password='{REDACTED}'"),
    ('{"password": "hunter2"}', f'{{"password": "{REDACTED}"}}'),
    ("db:\n  password: hunter2\n", f"db:\n  password: {REDACTED}\n"),
    ("db_password=hunter2", f"db_password={REDACTED}"),
    ("PVE_API_TOKEN=hunter2", f"PVE_API_TOKEN={REDACTED}"),
    ("client_secret: hunter2", f"client_secret: {REDACTED}"),
])
def test_credential_forms_redacted(engine, text, expected):
    result = run(engine.anonymize(text))
    assert result.data == expected
    assert "hunter2" not in result.data
    assert result.metadata.rules_applied == ("credential",)


def test_session_consistency_and_clear(engine):
    first = run(engine.anonymize("from alice@corp.com")).data
    second = run(engine.anonymize("again alice@corp.com")).data
    assert first.split()[-1] == second.split()[-1]
    engine.clear_mappings()
    third = run(engine.anonymize("from alice@corp.com")).data
    assert third != first
    assert engine.get_stats().total_processed == 3


def test_no_matches_returns_input(engine):
    text = "All systems nominal. Nothing to report!"
    result = run(engine.anonymize(text))
    assert result.data == text
    assert not result.metadata.is_anonymized
    assert result.metadata.pseudonyms_used == 0
    assert result.metadata.rules_applied == ()


# ── Properties ───────────────────────────────────────────────────────

def test_deterministic_within_engine(engine):
    text = "db01.prod.example.com 10.0.0.7 /home/alice/app.log"
    a = run(engine.anonymize(text)).data
    b = run(engine.anonymize(text)).data
    assert a == b


def test_engines_are_isolated():
    a = create_anonymization_engine()
    b = create_anonymization_engine()
    text = "mail alice@corp.com"
    assert run(a.anonymize(text)).data != run(b.anonymize(text)).data
    assert len(a.list_mappings()) == 1
    assert b.get_stats().total_processed == 1


def test_shared_salt_reproduces_pseudonyms():
    text = "mail alice@corp.com"
    a = create_anonymization_engine(hash_salt=SALT)
    b = create_anonymization_engine(hash_salt=SALT)
    assert run(a.anonymize(text)).data == run(b.anonymize(text)).data


def test_singleton():
    first = get_instance()
    first.reset()
    assert get_instance() is first
    assert create_anonymization_engine() is not first


def test_pseudonymized_email_is_still_an_email(engine):
    result = run(engine.anonymize("reply to ops.team@corp.example.com"))
    report = run(engine.detect_pii(result.data, {"enabled_rules": ["email"]}))
    assert [m.rule_id for m in report.locations] == ["email"]


def test_non_reversibility():
    rng = random.Random(1234)
    letters = string.ascii_lowercase[6:]          # g..z, no hex digits
    emails = set()
    while len(emails) < 1000:
        local = "".join(rng.choice(letters) for _ in range(8))
        domain = "".join(rng.choice(letters) for _ in range(6))
        emails.add(f"{local}@{domain}.org")
    engine = create_anonymization_engine(hash_salt=SALT)
    text = "\n".join(sorted(emails))
    result = run(engine.anonymize(text, {"max_processing_time_ms": None}))
    for email in emails:
        assert email not in result.data
        assert email.split("@")[0] not in result.data
    assert len(engine.list_mappings()) == 1000
    assert result.metadata.pseudonyms_used == 1000


def test_concurrent_calls_share_one_mapping(engine):
    async def main():
        return await asyncio.gather(*(engine.anonymize("mail alice@corp.com") for _ in range(20)))

    results = run(main())
    assert len({r.data for r in results}) == 1
    assert len(engine.list_mappings()) == 1
    assert engine.get_stats().total_processed == 20


# ── Options ──────────────────────────────────────────────────────────

def test_enabled_rules_restricts_matching(engine):
    text = "admin@example.com on 10.0.0.1"
    result = run(engine.anonymize(text, AnonymizationOptions(enabled_rules=frozenset({"ipv4"}))))
    assert "admin@example.com" in result.data
    assert "10.0.0.1" not in result.data
    assert result.metadata.rules_applied == ("ipv4",)


def test_unknown_rule_id_is_an_error(engine):
    with pytest.raises(ConfigurationError):
        run(engine.anonymize("x", {"enabledRules": ["no_such_rule"]}))
    stats = engine.get_stats()
    assert stats.total_processed == 1
    assert stats.error_rate == 1.0


def test_invalid_time_limit(engine):
    with pytest.raises(ConfigurationError):
        run(engine.anonymize("x", {"max_processing_time_ms": 0}))


def test_short_hash_salt_rejected(engine):
    with pytest.raises(ConfigurationError):
        run(engine.anonymize("x", {"hash_salt": "abc"}))


def test_non_string_text(engine):
    with pytest.raises(TypeError):
        run(engine.anonymize(b"bytes"))
    with pytest.raises(TypeError):
        run(engine.detect_pii(None))
    stats = engine.get_stats()
    assert stats.total_processed == 1
    assert stats.error_rate == 1.0


def test_per_call_hash_salt(engine):
    text = "nic 00:1A:2B:3C:4D:5E"
    a = run(engine.anonymize(text, {"hash_salt": "first-salt-value"})).data
    b = run(engine.anonymize(text, {"hash_salt": "other-salt-value"})).data
    assert a != b
    assert engine.list_mappings() == []


# ── Timeouts ─────────────────────────────────────────────────────────

def _slow(value):
    time.sleep(0.05)
    return True


def test_timeout_returns_no_output():
    registry = RuleRegistry([Rule(
        id="slow",
        category=Category.SYSTEM,
        priority=50,
        matcher=PredicateMatcher(r"\w+", _slow),
        strategy=Strategy.REDACT,
    )])
    engine = AnonymizationEngine(registry)
    with pytest.raises(ProcessingTimeoutError) as exc:
        run(engine.anonymize("a b c d e f g h", {"max_processing_time_ms": 20}))
    assert exc.value.limit_ms == 20
    assert isinstance(exc.value, AnonymizationError)
    stats = engine.get_stats()
    assert stats.total_processed == 1
    assert stats.error_rate == 1.0


# ── Statistics ───────────────────────────────────────────────────────

def test_stats(engine):
    run(engine.anonymize("10.0.0.1 and 10.0.0.2"))
    run(engine.anonymize("admin@example.com"))
    with pytest.raises(ConfigurationError):
        run(engine.anonymize("x", {"enabled_rules": ["bogus"]}))
    stats = engine.get_stats()
    assert stats.total_processed == 3
    assert stats.rules_usage == {"ipv4": 1, "email": 1}
    assert stats.total_pseudonyms == 3
    assert stats.error_rate == pytest.approx(1 / 3)
    assert stats.average_processing_time >= 0.0
    assert stats.to_dict()["rulesUsage"] == {"ipv4": 1, "email": 1}


def test_stats_snapshot_is_a_copy(engine):
    run(engine.anonymize("10.0.0.1"))
    snap = engine.get_stats()
    snap.rules_usage["ipv4"] = 99
    assert engine.get_stats().rules_usage["ipv4"] == 1


def test_clear_mappings_keeps_stats(engine):
    run(engine.anonymize("10.0.0.1"))
    engine.clear_mappings()
    stats = engine.get_stats()
    assert stats.total_pseudonyms == 0
    assert stats.total_processed == 1
    engine.reset()
    assert engine.get_stats().total_processed == 0


def test_rule_errors_counted_and_call_succeeds():
    registry = default_registry()
    registry.register(Rule(
        id="broken",
        category=Category.SYSTEM,
        priority=50,
        matcher=PatternMatcher(r"(\w+)+!"),
        strategy=Strategy.REDACT,
    ))
    engine = AnonymizationEngine(registry)
    result = run(engine.anonymize("host 10.0.0.1"))
    assert "10.0.0.1" not in result.data
    assert engine.get_stats().rule_errors == 1
    assert engine.get_stats().error_rate == 0.0


# ── Structured payloads ──────────────────────────────────────────────

def test_payload_walks_structure(engine):
    data = {
        "message": "Contact admin@example.com",
        "count": 3,
        "items": ["10.0.0.1", None, ("10.0.0.1",)],
    }
    result = run(engine.anonymize_payload(data))
    out = result.data
    assert "admin@example.com" not in out["message"]
    assert out["count"] == 3
    assert out["items"][1] is None
    assert out["items"][0] == out["items"][2][0] != "10.0.0.1"
    assert isinstance(out["items"][2], tuple)
    assert result.metadata.preserved_structure
    assert data["message"] == "Contact admin@example.com"


def test_payload_sensitive_keys(engine):
    out = run(engine.anonymize_payload({"server 10.0.0.1": "up", "note 10.0.0.2": "x"})).data
    keys = list(out)
    assert "server 10.0.0.1" not in keys
    assert "note 10.0.0.2" in keys


def test_payload_credential_keys_always_redacted(engine):
    data = {
        "password": "hunter2",
        "tokenSecret": "plain words only",
        "db": {"privateKey": "abc", "port": 5432, "api_key": ""},
        "nodes": [{"cert": "MIIBIjAN"}],
        "note": "ok",
    }
    result = run(engine.anonymize_payload(data))
    out = result.data
    assert out["password"] == REDACTED
    assert out["tokenSecret"] == REDACTED
    assert out["db"] == {"privateKey": REDACTED, "port": 5432, "api_key": REDACTED}
    assert out["nodes"][0]["cert"] == REDACTED
    assert out["note"] == "ok"
    assert result.metadata.rules_applied == ("credential",)
    assert result.metadata.is_anonymized
    assert engine.get_stats().rules_usage == {"credential": 1}


def test_payload_credential_key_with_nested_value(engine):
    out = run(engine.anonymize_payload({"secrets": {"admin": "admin@example.com"}})).data
    assert list(out["secrets"]) == ["admin"]
    assert out["secrets"]["admin"] != "admin@example.com"


def test_payload_flattened_to_json(engine):
    result = run(engine.anonymize_payload(
        {"message": "Contact admin@example.com"}, {"preserve_structure": False},
    ))
    assert isinstance(result.data, str)
    assert "admin@example.com" not in result.data
    assert json.loads(result.data)["message"].startswith("Contact ")
    assert not result.metadata.preserved_structure


def test_payload_circular_reference(engine):
    data = {"ip": "10.0.0.1"}
    data["self"] = data
    out = run(engine.anonymize_payload(data)).data
    assert out["self"] == CIRCULAR_REFERENCE
    assert out["ip"] != "10.0.0.1"


def test_payload_plain_string(engine):
    result = run(engine.anonymize_payload("password: hunter2"))
    assert result.data == f"password: {REDACTED}"
