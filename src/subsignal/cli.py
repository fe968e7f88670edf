# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""subsignal CLI: scan a saved page or email and print the result as JSON.

Usage:
    subsignal page FILE [--url URL] [--title TITLE]
    subsignal email FILE [--platform PLATFORM]

FILE for ``page`` is raw HTML or a JSON page snapshot; for ``email`` it is a
JSON provider payload or an RFC 822 message (.eml). Thresholds come from
``SUBSIGNAL_*`` environment variables.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from subsignal.config import DetectorConfig
from subsignal.errors import SubsignalError
from subsignal.logging_config import configure

if TYPE_CHECKING:
    from subsignal.engine import SubscriptionDetector


def _build_detector(args: argparse.Namespace) -> SubscriptionDetector:
    from subsignal.engine import SubscriptionDetector
    from subsignal.knowledge_base import load_knowledge_base, load_knowledge_base_from

    kb = load_knowledge_base_from(args.kb_dir) if args.kb_dir else load_knowledge_base()
    return SubscriptionDetector(knowledge_base=kb, config=DetectorConfig.from_env())


def _emit(result: dict[str, Any]) -> None:
    print(json.dumps(result, indent=2, ensure_ascii=False))


def _load_page(path: Path, url: str | None, title: str | None) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8", errors="replace")
    if path.suffix.lower() == ".json":
        snapshot = json.loads(raw)
        if not isinstance(snapshot, dict):
            raise ValueError(f"{path}: expected a JSON object")
    else:
        snapshot = {"markup": raw}
    if url is not None:
        snapshot["url"] = url
    if title is not None:
        snapshot["title"] = title
    return snapshot


def cmd_page(args: argparse.Namespace) -> None:
    detector = _build_detector(args)
    snapshot = _load_page(Path(args.file), args.url, args.title)
    _emit(detector.detect_page(snapshot).to_dict())


def cmd_email(args: argparse.Namespace) -> None:
    detector = _build_detector(args)
    path = Path(args.file)
    if path.suffix.lower() == ".json":
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
    else:
        payload = path.read_bytes()
    _emit(detector.detect_raw_email(payload, args.platform).to_dict())


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from subsignal.normalizer import MailPlatform

    parser = argparse.ArgumentParser(description="Subscription signal detection", prog="subsignal")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument("--kb-dir", metavar="DIR", help="Directory with merchants.yaml / gateways.yaml overrides")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_page = subparsers.add_parser("page", help="Scan an HTML file or JSON page snapshot")
    p_page.add_argument("file", metavar="FILE")
    p_page.add_argument("--url", type=str, metavar="URL", help="Page URL (overrides the snapshot's)")
    p_page.add_argument("--title", type=str, metavar="TITLE", help="Page title (overrides the snapshot's)")

    p_email = subparsers.add_parser("email", help="Scan a JSON email payload or .eml message")
    p_email.add_argument("file", metavar="FILE")
    p_email.add_argument(
        "--platform",
        choices=[p.value for p in MailPlatform],
        help="Payload format (default: detected from its shape)",
    )

    args = parser.parse_args(argv)
    configure(json_output=args.json_logs, level=args.log_level)

    commands = {"page": cmd_page, "email": cmd_email}
    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except (SubsignalError, OSError, ValueError) as e:
        # json.JSONDecodeError is a ValueError
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
