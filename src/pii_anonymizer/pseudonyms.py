"""PseudonymManager — session-scoped, one-way pseudonyms.

Design goals:
  - Deterministic: the same (type, value) always yields the same pseudonym
    within a session
  - One-way: pseudonyms come from a salted HMAC; only forward lookups and
    enumeration exist, never pseudonym → original
  - Format-preserving: an e-mail becomes an e-mail, an IP an IP, etc.
  - Unlinkable across sessions: each manager gets a random salt unless one
    is configured
"""

from __future__ import annotations
import hashlib
import hmac
import secrets
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Callable

from .errors import ConfigurationError
from .types import PseudonymMapping

MIN_SALT_LENGTH = 8
HASH_TOKEN_LENGTH = 16

_EMAIL_DOMAINS = ("example.com", "example.org", "example.net", "company.local")
_HOST_PREFIXES = ("srv", "host", "node", "app")
_HOST_SUFFIXES = ("internal", "local", "example")
_SERVER_SUFFIXES = ("server", "node", "vm", "host")
_USER_PREFIXES = ("user", "admin", "operator", "service")
_PATH_ROOTS = ("home", "Users", "users", "usr")


def normalize_salt(salt: str | bytes | None) -> bytes:
    """Validate a configured salt; ``None`` draws a fresh random one."""
    if salt is None:
        return secrets.token_bytes(32)
    if isinstance(salt, str):
        salt = salt.encode("utf-8")
    if not isinstance(salt, bytes):
        raise ConfigurationError(f"hash_salt must be a string, got {type(salt).__name__}")
    if len(salt.strip()) < MIN_SALT_LENGTH:
        raise ConfigurationError(f"hash_salt must be at least {MIN_SALT_LENGTH} characters")
    return salt


def _byte(digest: str, offset: int) -> int:
    return int(digest[offset:offset + 2], 16)


class PseudonymManager:
    """Forward-only (type, original) → pseudonym cache for one session."""

    __slots__ = ("_salt", "_generation", "_mappings", "_lock", "_synthesizers")

    def __init__(self, salt: str | bytes | None = None) -> None:
        self._salt = normalize_salt(salt)
        self._generation = 0          # bumped by clear()
        self._mappings: dict[tuple[str, str], PseudonymMapping] = {}
        self._lock = threading.Lock()
        self._synthesizers: dict[str, Callable[[str, str], str]] = {
            "email": self._email,
            "ipv4": self._ipv4,
            "hostname": self._hostname,
            "server_name": self._server_name,
            "uuid": self._uuid,
            "username": self._username,
            "filepath": self._filepath,
        }

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def pseudonym_for(self, type_: str, original_value: str, category: str = "") -> str:
        """Return the cached pseudonym, deriving and caching it on first sight."""
        if not original_value or not original_value.strip():
            raise ValueError("original value cannot be empty")
        key = (type_, original_value)
        with self._lock:
            existing = self._mappings.get(key)
            if existing is not None:
                return existing.pseudonym
            pseudonym = self._derive(type_, original_value)
            self._mappings[key] = PseudonymMapping(
                type=type_,
                category=category,
                original_value=original_value,
                pseudonym=pseudonym,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            return pseudonym

    def lookup(self, type_: str, original_value: str) -> str | None:
        """Existing pseudonym for a value, without creating one."""
        with self._lock:
            mapping = self._mappings.get((type_, original_value))
        return mapping.pseudonym if mapping else None

    def hash_token(self, value: str, salt: str | bytes | None = None) -> str:
        """Fixed-length, non format-preserving token for the ``hash`` strategy."""
        key = self._salt if salt is None else normalize_salt(salt)
        return hmac.new(key, value.encode("utf-8"), hashlib.sha256).hexdigest()[:HASH_TOKEN_LENGTH]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._mappings)

    def get_all_mappings(self) -> list[PseudonymMapping]:
        with self._lock:
            return list(self._mappings.values())

    def stats(self) -> dict:
        with self._lock:
            mappings = list(self._mappings.values())
        return {
            "total_mappings": len(mappings),
            "mappings_by_type": dict(Counter(m.type for m in mappings)),
            "mappings_by_category": dict(Counter(m.category for m in mappings)),
        }

    def clear(self) -> None:
        with self._lock:
            self._mappings.clear()
            self._generation += 1

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def _digest(self, material: str) -> str:
        keyed = f"{self._generation}:{material}"
        return hmac.new(self._salt, keyed.encode("utf-8"), hashlib.sha256).hexdigest()

    def _derive(self, type_: str, original_value: str) -> str:
        digest = self._digest(f"{type_}::{original_value}")
        synthesize = self._synthesizers.get(type_, self._generic)
        return synthesize(digest, original_value)

    @staticmethod
    def _email(digest: str, _original: str) -> str:
        domain = _EMAIL_DOMAINS[_byte(digest, 8) % len(_EMAIL_DOMAINS)]
        return f"user{digest[:8]}@{domain}"

    @staticmethod
    def _ipv4(digest: str, _original: str) -> str:
        # Private ranges only: 10/8, 172.16/12, 192.168/16
        choice = _byte(digest, 0) % 3
        if choice == 0:
            return f"10.{_byte(digest, 2)}.{_byte(digest, 4)}.{_byte(digest, 6) % 254 + 1}"
        if choice == 1:
            return f"172.{16 + _byte(digest, 2) % 16}.{_byte(digest, 4)}.{_byte(digest, 6) % 254 + 1}"
        return f"192.168.{_byte(digest, 2) % 254 + 1}.{_byte(digest, 4) % 254 + 1}"

    @staticmethod
    def _hostname(digest: str, _original: str) -> str:
        prefix = _HOST_PREFIXES[_byte(digest, 0) % len(_HOST_PREFIXES)]
        suffix = _HOST_SUFFIXES[_byte(digest, 8) % len(_HOST_SUFFIXES)]
        return f"{prefix}-{digest[2:8]}.{suffix}"

    @staticmethod
    def _server_name(digest: str, _original: str) -> str:
        suffix = _SERVER_SUFFIXES[_byte(digest, 0) % len(_SERVER_SUFFIXES)]
        return f"{digest[2:8]}-{suffix}"

    @staticmethod
    def _uuid(digest: str, _original: str) -> str:
        variant = format((int(digest[16], 16) & 0x3) | 0x8, "x")
        return "-".join((
            digest[0:8],
            digest[8:12],
            "4" + digest[13:16],
            variant + digest[17:20],
            digest[20:32],
        ))

    @staticmethod
    def _username(digest: str, _original: str) -> str:
        prefix = _USER_PREFIXES[_byte(digest, 0) % len(_USER_PREFIXES)]
        return f"{prefix}{digest[2:8]}"

    def _filepath(self, _digest: str, original: str) -> str:
        """Keep separators, the root component and extensions; hash the rest."""
        parts = original.split("/")
        out: list[str] = []
        root_kept = False
        for index, part in enumerate(parts):
            if part in ("", ".", ".."):
                out.append(part)
                continue
            if not root_kept and part in _PATH_ROOTS:
                root_kept = True
                out.append(part)
                continue
            root_kept = True
            token = self._digest(f"filepath::{index}::{part}")[:8]
            if part.startswith("."):
                out.append(f".dir{token}")
            elif "." in part:
                extension = part.split(".", 1)[1]
                out.append(f"file{token}.{extension}")
            else:
                out.append(f"dir{token}")
        return "/".join(out)

    @staticmethod
    def _generic(digest: str, _original: str) -> str:
        return f"anon-{digest[:12]}"
