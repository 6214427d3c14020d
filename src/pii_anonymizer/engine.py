"""AnonymizationEngine — the public API.  Detect, then replace.

Usage:
    from pii_anonymizer import create_anonymization_engine

    engine = create_anonymization_engine()      # isolated mappings and stats
    result = await engine.anonymize("Contact admin@example.com for help")
    print(result.data)                          # "Contact user3f9a1c2e@example.org for help"
    print(result.metadata.rules_applied)        # ("email",)

    report = await engine.detect_pii("Server at 192.168.1.1")
    print(report.has_pii, report.locations[0].value)

Use ``get_instance()`` instead when unrelated call sites in one process
should share pseudonyms (e.g. every command of a console session).
"""

from __future__ import annotations
import asyncio
import functools
import json
import logging
import threading
import time
from typing import Any, Callable, Mapping, Sequence, Union

from .detector import Deadline, Detector
from .errors import AnonymizationError, ProcessingTimeoutError
from .options import AnonymizationOptions
from .patterns import default_registry
from .pseudonyms import PseudonymManager
from .replacer import REDACTED, Replacer, ReplacementOutcome, Substitution, pseudonyms_used, rules_applied
from .rules import Rule, RuleRegistry
from .stats import StatsCollector
from .types import (
    AnonymizationMetadata, AnonymizationResult, DetectionResult, EngineStats, PseudonymMapping, Strategy,
)

logger = logging.getLogger(__name__)

OptionsLike = Union[AnonymizationOptions, Mapping[str, Any], None]

CIRCULAR_REFERENCE = "[Circular Reference]"

# Dict keys whose names suggest the key itself may carry sensitive data
SENSITIVE_KEY_MARKERS = (
    "password", "token", "secret", "key", "username", "email",
    "hostname", "ip", "host", "server",
)

# Dict keys whose string values are always redacted in structured payloads
CREDENTIAL_KEY_MARKERS = (
    "password", "pwd", "pass", "secret", "token", "key", "apikey", "api_key",
    "privatekey", "publickey", "cert", "certificate",
)
CREDENTIAL_RULE_ID = "credential"


class AnonymizationEngine:
    """Composes Detector and Replacer over one PseudonymManager and StatsCollector.

    Each instance owns its mappings and statistics; nothing is shared
    between instances unless the caller passes the same registry.
    """

    def __init__(
        self,
        registry: RuleRegistry | None = None,
        *,
        hash_salt: str | bytes | None = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.pseudonyms = PseudonymManager(hash_salt)
        self._stats = StatsCollector()
        self.detector = Detector(on_rule_error=self._stats.record_rule_error)
        self.replacer = Replacer(self.pseudonyms)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def detect_pii(self, text: str, options: OptionsLike = None) -> DetectionResult:
        """Detect without replacing.  Only the detection counter is touched."""
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")
        opts = AnonymizationOptions.coerce(options)
        opts.validate(self.registry)
        rules = self.registry.select(opts.enabled_rules)
        deadline = Deadline(opts.max_processing_time_ms)
        self._stats.record_detection()
        return await self._run(deadline, self._detect_job, text, rules)

    async def anonymize(self, text: str, options: OptionsLike = None) -> AnonymizationResult:
        """Anonymize plain text.

        Raises ProcessingTimeoutError when the budget is exceeded and
        ConfigurationError for invalid options; in both cases no output is
        returned and the call is still counted in the statistics.
        """
        if not isinstance(text, str):
            self._record(time.monotonic(), (), failed=True)
            raise TypeError(f"text must be str, got {type(text).__name__}")
        return await self._process(text, options, self._text_job)

    async def anonymize_payload(self, data: Any, options: OptionsLike = None) -> AnonymizationResult:
        """Anonymize a str/dict/list payload (see ``preserve_structure``)."""
        return await self._process(data, options, self._payload_job)

    def get_stats(self) -> EngineStats:
        stats = self._stats.snapshot()
        stats.total_pseudonyms = self.pseudonyms.size
        return stats

    def list_mappings(self) -> list[PseudonymMapping]:
        return self.pseudonyms.get_all_mappings()

    def clear_mappings(self) -> None:
        """Forget every pseudonym.  Statistics are kept."""
        self.pseudonyms.clear()
        self._stats.set_total_pseudonyms(0)

    def reset_stats(self) -> None:
        self._stats.reset()

    def reset(self) -> None:
        self.clear_mappings()
        self.reset_stats()

    # ------------------------------------------------------------------
    # Call plumbing
    # ------------------------------------------------------------------

    async def _process(
        self,
        data: Any,
        options: OptionsLike,
        job: Callable[..., tuple[Any, list[Substitution]]],
    ) -> AnonymizationResult:
        started = time.monotonic()
        subs: list[Substitution] = []
        try:
            opts = AnonymizationOptions.coerce(options)
            opts.validate(self.registry)
            rules = self.registry.select(opts.enabled_rules)
            deadline = Deadline(opts.max_processing_time_ms)
            output, subs = await self._run(deadline, job, data, rules, opts)
        except AnonymizationError as exc:
            self._record(started, (), failed=True)
            logger.warning("Anonymization failed: %s", exc)
            raise
        except Exception as exc:
            self._record(started, (), failed=True)
            logger.exception("Anonymization failed unexpectedly")
            raise AnonymizationError(f"anonymization failed: {exc}") from exc

        elapsed_ms = self._record(started, rules_applied(subs), failed=False)
        metadata = AnonymizationMetadata(
            rules_applied=rules_applied(subs),
            pseudonyms_used=pseudonyms_used(subs),
            processing_time_ms=elapsed_ms,
            is_anonymized=bool(subs),
            preserved_structure=opts.preserve_structure,
        )
        logger.debug("Anonymized payload: %d substitution(s) in %.2f ms", len(subs), elapsed_ms)
        return AnonymizationResult(data=output, metadata=metadata)

    async def _run(self, deadline: Deadline, func: Callable[..., Any], *args: Any) -> Any:
        """Run CPU-bound work off the event loop, bounded by *deadline*.

        The worker thread is not interrupted on timeout; its result is
        discarded and ProcessingTimeoutError is raised instead.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(func, *args, deadline))
        if deadline.limit_ms is None:
            return await future
        remaining = max(deadline.limit_ms / 1000.0 - deadline.elapsed_ms / 1000.0, 0.0)
        try:
            result = await asyncio.wait_for(future, timeout=remaining)
        except asyncio.TimeoutError:
            raise ProcessingTimeoutError(deadline.limit_ms, deadline.elapsed_ms) from None
        deadline.check()
        return result

    def _record(self, started: float, applied: Sequence[str], *, failed: bool) -> float:
        elapsed_ms = (time.monotonic() - started) * 1000.0
        self._stats.record_call(
            elapsed_ms, applied, failed=failed, total_pseudonyms=self.pseudonyms.size,
        )
        return elapsed_ms

    # ------------------------------------------------------------------
    # Jobs (run in the executor)
    # ------------------------------------------------------------------

    def _detect_job(self, text: str, rules: Sequence[Rule], deadline: Deadline) -> DetectionResult:
        return self.detector.detect(text, rules, deadline)

    def _anonymize_text(
        self,
        text: str,
        rules: Sequence[Rule],
        opts: AnonymizationOptions,
        deadline: Deadline,
    ) -> ReplacementOutcome:
        detection = self.detector.detect(text, rules, deadline)
        if not detection.has_pii:
            return ReplacementOutcome(text=text)
        return self.replacer.apply(
            text,
            detection.locations,
            {r.id: r for r in rules},
            enable_pseudonyms=opts.enable_pseudonyms,
            hash_salt=opts.hash_salt,
            deadline=deadline,
        )

    def _text_job(
        self,
        text: str,
        rules: Sequence[Rule],
        opts: AnonymizationOptions,
        deadline: Deadline,
    ) -> tuple[str, list[Substitution]]:
        outcome = self._anonymize_text(text, rules, opts, deadline)
        return outcome.text, outcome.substitutions

    def _payload_job(
        self,
        data: Any,
        rules: Sequence[Rule],
        opts: AnonymizationOptions,
        deadline: Deadline,
    ) -> tuple[Any, list[Substitution]]:
        subs: list[Substitution] = []

        def text(value: str) -> str:
            outcome = self._anonymize_text(value, rules, opts, deadline)
            subs.extend(outcome.substitutions)
            return outcome.text

        if not opts.preserve_structure:
            flat = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False, default=str)
            return text(flat), subs

        active: set[int] = set()

        def redact(value: str) -> str:
            subs.append(Substitution(
                rule_id=CREDENTIAL_RULE_ID,
                strategy=Strategy.REDACT,
                start=0,
                end=len(value),
                replacement=REDACTED,
            ))
            return REDACTED

        def entry(key: Any, value: Any) -> tuple[Any, Any]:
            if not isinstance(key, str):
                return key, walk(value)
            new_key = text(key) if _is_sensitive_key(key) else key
            if isinstance(value, str) and _is_credential_key(key):
                return new_key, redact(value)
            return new_key, walk(value)

        def walk(value: Any) -> Any:
            if isinstance(value, str):
                return text(value)
            if not isinstance(value, (dict, list, tuple)):
                return value
            if id(value) in active:
                return CIRCULAR_REFERENCE
            active.add(id(value))
            try:
                if isinstance(value, dict):
                    return dict(entry(k, v) for k, v in value.items())
                items = [walk(v) for v in value]
                return tuple(items) if isinstance(value, tuple) else items
            finally:
                active.discard(id(value))

        return walk(data), subs


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEY_MARKERS)


def _is_credential_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in CREDENTIAL_KEY_MARKERS)


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------

_instance: AnonymizationEngine | None = None
_instance_lock = threading.Lock()


def create_anonymization_engine(
    registry: RuleRegistry | None = None,
    *,
    hash_salt: str | bytes | None = None,
) -> AnonymizationEngine:
    """A fresh engine with its own pseudonym mappings and statistics."""
    return AnonymizationEngine(registry, hash_salt=hash_salt)


def get_instance() -> AnonymizationEngine:
    """The process-wide engine; created on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = AnonymizationEngine()
        return _instance
