"""CLI interface for pii-anonymizer.

Usage:
    # Anonymize text (stdin, --text or --file), anonymized text on stdout
    echo 'Contact admin@example.com for help' | pii-anonymizer anonymize

    # Save to a file and print the metadata record as JSON on stderr
    pii-anonymizer anonymize --file app.log --output app-safe.log --json

    # Detect only
    pii-anonymizer detect --text "Server at 192.168.1.1"

    # List the rule set
    pii-anonymizer rules

Pseudonyms are consistent within one invocation only; nothing is persisted.
Failures exit non-zero with the error on stderr and are never reported
as "no PII found".
"""

from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .config import create_engine_from_config, load_config, load_from_yaml
from .engine import AnonymizationEngine
from .errors import AnonymizationError
from .options import AnonymizationOptions

logger = logging.getLogger("pii_anonymizer.cli")


def _build(args: argparse.Namespace) -> tuple[AnonymizationEngine, AnonymizationOptions]:
    cfg = load_from_yaml(args.config) if args.config else load_config({})
    if args.salt:
        cfg["hash_salt"] = args.salt
    if args.rules:
        cfg["enabled_rules"] = [r.strip() for r in args.rules.split(",") if r.strip()]
    if args.timeout is not None:
        cfg["max_processing_time_ms"] = args.timeout
    if getattr(args, "no_pseudonyms", False):
        cfg["enable_pseudonyms"] = False
    return create_engine_from_config(cfg)


def _read_input(args: argparse.Namespace) -> str:
    if args.text is not None:
        return args.text
    if args.file:
        return Path(args.file).read_text(encoding="utf-8")
    return sys.stdin.read()


def _dump(data: Any) -> None:
    json.dump(data, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def cmd_anonymize(args: argparse.Namespace) -> None:
    """Anonymize text and write the result."""
    engine, options = _build(args)
    text = _read_input(args)
    result = asyncio.run(engine.anonymize(text, options))

    if args.output:
        Path(args.output).write_text(result.data, encoding="utf-8")
        sys.stderr.write(f"Anonymized output written to {args.output}\n")
    elif args.json:
        _dump(result.to_dict())
    else:
        sys.stdout.write(result.data)

    if args.json and args.output:
        json.dump(result.metadata.to_dict(), sys.stderr, ensure_ascii=False)
        sys.stderr.write("\n")
    if args.show_mappings:
        # Only the pseudonyms are shown; originals never leave the process
        _dump([{"type": m.type, "pseudonym": m.pseudonym} for m in engine.list_mappings()])
    if args.stats:
        _dump(engine.get_stats().to_dict())


def cmd_detect(args: argparse.Namespace) -> None:
    """Detect PII and print the report as JSON."""
    engine, options = _build(args)
    report = asyncio.run(engine.detect_pii(_read_input(args), options))
    _dump(report.to_dict())


def cmd_rules(args: argparse.Namespace) -> None:
    """List rules, highest priority first."""
    engine, _ = _build(args)
    rows = []
    for rule in sorted(engine.registry, key=lambda r: -r.priority):
        rows.append({
            "id": rule.id,
            "category": rule.category.value,
            "priority": rule.priority,
            "strategy": rule.strategy.value,
            "matcher": rule.matcher.kind,
            "enabled": engine.registry.is_enabled(rule.id),
            "description": rule.description,
        })
    _dump(rows)


def _add_input_args(p: argparse.ArgumentParser) -> None:
    src = p.add_mutually_exclusive_group()
    src.add_argument("-t", "--text", help="Text to process (default: stdin)")
    src.add_argument("-f", "--file", help="File to process")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pii-anonymizer",
        description="Detect and anonymize PII in diagnostic text",
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--salt", help="Hash salt (default: random per run)")
    parser.add_argument("--rules", default="", help="Comma-separated rule ids to enable")
    parser.add_argument("--timeout", type=float, default=None, help="Max processing time in ms")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("anonymize", help="Anonymize text")
    _add_input_args(p)
    p.add_argument("-o", "--output", help="Write anonymized text to this file")
    p.add_argument("--no-pseudonyms", action="store_true", help="Redact instead of pseudonymizing")
    p.add_argument("--json", action="store_true", help="Emit result with metadata as JSON")
    p.add_argument("--show-mappings", action="store_true", help="Print pseudonyms created")
    p.add_argument("--stats", action="store_true", help="Print engine statistics")

    p = sub.add_parser("detect", help="Detect PII without changing the text")
    _add_input_args(p)

    sub.add_parser("rules", help="List detection rules")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cmds = {
        "anonymize": cmd_anonymize,
        "detect": cmd_detect,
        "rules": cmd_rules,
    }
    try:
        cmds[args.command](args)
    except AnonymizationError as e:
        sys.stderr.write(f"error: {type(e).__name__}: {e}\n")
        return 1
    except OSError as e:
        sys.stderr.write(f"error: {e}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
