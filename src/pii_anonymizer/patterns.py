"""Default rule set for infrastructure diagnostics.

Priorities follow three bands: credentials and tokens 90–100, general PII
70–89, generic identifiers and paths 50–69.
"""

from __future__ import annotations
import re

from .rules import PatternMatcher, PredicateMatcher, Rule, RuleRegistry, TemplateMatcher
from .types import Category, Strategy

# Extensions that look like TLDs but almost always name files (config.yaml).
_FILE_EXTENSIONS = (
    "txt|log|json|ya?ml|conf|cfg|ini|xml|sh|py|js|ts|md|csv|tar|gz|tgz|zip|"
    "pem|key|crt|cert|bak|tmp|lock|sock|pid|service|tf|tfvars|sql|db"
)

EMAIL_PATTERN = r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b"

IPV4_PATTERN = (
    r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}"
    r"(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"
)

IPV6_PATTERN = r"\b(?:[A-Fa-f0-9]{1,4}:){7}[A-Fa-f0-9]{1,4}\b"

HOSTNAME_PATTERN = (
    r"\b(?:[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?\.)+"
    rf"(?!(?:{_FILE_EXTENSIONS})\b)[A-Za-z]{{2,63}}\b"
)

SERVER_NAME_PATTERN = r"\b[A-Za-z0-9][A-Za-z0-9\-]*(?:server|node|vm|host|proxmox|pve)[A-Za-z0-9\-]*\b"

UUID_PATTERN = r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b"

FILEPATH_PATTERN = r"/(?:home|[Uu]sers|usr)/[A-Za-z0-9._\-]+(?:/[^\s\"',;]*)?"

MAC_PATTERN = r"\b[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}\b"

PRIVATE_KEY_PATTERN = (
    r"-----BEGIN (?:[A-Z]+ )?PRIVATE KEY-----"
    r"[\s\S]*?"
    r"-----END (?:[A-Z]+ )?PRIVATE KEY-----"
)

CREDENTIAL_KEYWORDS = ("password", "passwd", "pwd", "pass", "secret", "token", r"api[_\-]?key", "key")
# password=x, password: "x", "password": "x", password='x'
CREDENTIAL_SEPARATOR = r"[\"']?\s*[:=]\s*[\"']?"
USERNAME_KEYWORDS = ("username", "user", "login", "admin", "root", "operator")


def _looks_like_token(value: str) -> bool:
    """Long opaque strings mixing letters and digits (API tokens, session ids)."""
    return any(c.isdigit() for c in value) and any(c.isalpha() for c in value)


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(
        id="private_key",
        category=Category.CREDENTIAL,
        priority=100,
        matcher=PatternMatcher(PRIVATE_KEY_PATTERN),
        strategy=Strategy.REDACT,
        description="PEM encoded private key blocks",
    ),
    Rule(
        id="credential",
        category=Category.CREDENTIAL,
        priority=95,
        matcher=TemplateMatcher(
            CREDENTIAL_KEYWORDS,
            r"[^\s,;}\"']+",
            separator=CREDENTIAL_SEPARATOR,
            boundary=r"(?<![A-Za-z0-9])",
        ),
        strategy=Strategy.REDACT,
        description="Values assigned to password/secret/token/key fields",
    ),
    Rule(
        id="token",
        category=Category.CREDENTIAL,
        priority=90,
        matcher=PredicateMatcher(r"\b[A-Za-z0-9_]{20,}\b", _looks_like_token),
        strategy=Strategy.REDACT,
        description="Long opaque API tokens",
    ),
    Rule(
        id="email",
        category=Category.PERSONAL,
        priority=85,
        matcher=PatternMatcher(EMAIL_PATTERN),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="E-mail addresses",
    ),
    Rule(
        id="ipv4",
        category=Category.NETWORK,
        priority=80,
        matcher=PatternMatcher(IPV4_PATTERN),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="IPv4 addresses",
    ),
    Rule(
        id="ipv6",
        category=Category.NETWORK,
        priority=78,
        matcher=PatternMatcher(IPV6_PATTERN),
        strategy=Strategy.GENERIC,
        description="IPv6 addresses (full form)",
    ),
    Rule(
        id="hostname",
        category=Category.NETWORK,
        priority=75,
        matcher=PatternMatcher(HOSTNAME_PATTERN),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="Fully qualified host and domain names",
    ),
    Rule(
        id="server_name",
        category=Category.INFRASTRUCTURE,
        priority=72,
        matcher=PatternMatcher(SERVER_NAME_PATTERN, re.IGNORECASE),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="Bare server, node and VM names",
    ),
    Rule(
        id="uuid",
        category=Category.SYSTEM,
        priority=70,
        matcher=PatternMatcher(UUID_PATTERN, re.IGNORECASE),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="UUIDs",
    ),
    Rule(
        id="username",
        category=Category.PERSONAL,
        priority=65,
        matcher=TemplateMatcher(USERNAME_KEYWORDS, r"[A-Za-z0-9._\-]+", separator=r"[@:=\s]+"),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="Account names following user/login/admin markers",
    ),
    Rule(
        id="filepath",
        category=Category.FILESYSTEM,
        priority=60,
        matcher=PatternMatcher(FILEPATH_PATTERN),
        strategy=Strategy.PSEUDONYM,
        format_preserving=True,
        description="Home directory paths that embed account names",
    ),
    Rule(
        id="mac_address",
        category=Category.NETWORK,
        priority=55,
        matcher=PatternMatcher(MAC_PATTERN),
        strategy=Strategy.HASH,
        description="MAC addresses",
    ),
)


def default_registry() -> RuleRegistry:
    """A fresh registry holding the default rules."""
    return RuleRegistry(DEFAULT_RULES)
