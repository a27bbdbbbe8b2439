from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from mcp_log_diagnosis_server.core.config import resolve_config
from mcp_log_diagnosis_server.core.errors import DiagnosisError, ParseError
from mcp_log_diagnosis_server.core.loader import load_rules
from mcp_log_diagnosis_server.core.models import LogLevel
from mcp_log_diagnosis_server.core.presenter import (
    entries_to_dicts,
    format_entries,
    format_line_diagnoses,
)
from mcp_log_diagnosis_server.core.service import DiagnosisService


def _parse_levels(s: str) -> list[LogLevel]:
    out: list[LogLevel] = []
    for part in s.split(","):
        name = part.strip().upper()
        if not name:
            continue
        if name == "WARN":
            name = "WARNING"
        try:
            out.append(LogLevel(name))
        except ValueError as e:
            raise argparse.ArgumentTypeError(
                "Invalid level. Allowed: CRITICAL, ERROR, WARNING, INFO, DEBUG"
            ) from e
    if not out:
        raise argparse.ArgumentTypeError("At least one level must be provided")
    return out


def _positive_int(s: str) -> int:
    try:
        value = int(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an integer: {s!r}") from e
    if value <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return value


def _read_text_arg(text: str) -> str:
    """'-' reads the log excerpt from stdin."""
    if text == "-":
        return sys.stdin.read()
    return text


def _build_service(rules: str | None) -> DiagnosisService:
    service = DiagnosisService(resolve_config())
    service.reload(rules)
    return service


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--rules", default=None, help="Rule file (YAML/JSON). Default: configured or bundled playbook")
    p.add_argument(
        "--tag",
        dest="tags",
        action="append",
        default=[],
        help="Context tag to narrow the search (repeatable, e.g. --tag smtp --tag docker)",
    )
    p.add_argument("--top-k", type=_positive_int, default=None, help="Max diagnoses per query (default 5, cap 10)")
    p.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON instead of text")


def _cmd_diagnose(args: argparse.Namespace) -> int:
    service = _build_service(args.rules)
    entries = service.diagnose(_read_text_arg(args.text), context_tags=args.tags, top_k=args.top_k)
    if args.as_json:
        print(json.dumps(entries_to_dicts(entries), indent=2))
    else:
        print(format_entries(entries))
    return 0 if entries else 1


def _cmd_scan(args: argparse.Namespace) -> int:
    service = _build_service(args.rules)
    results = service.diagnose_file(
        Path(args.log_path),
        context_tags=args.tags,
        top_k=args.top_k,
        levels=args.levels,
        max_lines=args.max_lines,
    )
    if args.as_json:
        print(json.dumps([r.model_dump() for r in results], indent=2))
    else:
        print(format_line_diagnoses(results))
        print(f"\nDiagnosed {len(results)} lines.")
    return 0 if results else 1


def _cmd_validate(args: argparse.Namespace) -> int:
    rules = load_rules(args.path)
    tags = sorted({t for r in rules for t in r.context_tags})
    print(f"OK: {len(rules)} rules; tags: {', '.join(tags) or '-'}")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    from mcp_log_diagnosis_server.server.diagnosis_server import main as serve

    serve([])
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mcp-log-diagnosis",
        description="Rule-based diagnosis of operational log errors.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("diagnose", help="Diagnose a log line or excerpt")
    d.add_argument("text", help="Log text, or '-' to read from stdin")
    _add_common(d)
    d.set_defaults(func=_cmd_diagnose)

    s = sub.add_parser("scan", help="Diagnose warning/error lines of a log file")
    s.add_argument("log_path")
    _add_common(s)
    s.add_argument(
        "--levels",
        type=_parse_levels,
        default=[LogLevel.ERROR, LogLevel.WARNING, LogLevel.CRITICAL],
        help="Comma-separated (e.g., ERROR,WARNING). Default: ERROR,WARNING,CRITICAL",
    )
    s.add_argument("--max", dest="max_lines", type=_positive_int, default=None, help="Max diagnosed lines (default: no cap)")
    s.set_defaults(func=_cmd_scan)

    v = sub.add_parser("validate", help="Validate a rule file")
    v.add_argument("path")
    v.set_defaults(func=_cmd_validate)

    srv = sub.add_parser("serve", help="Run the MCP server over stdio")
    srv.set_defaults(func=_cmd_serve)
    return p


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command != "serve":
        # The server configures its own logging from LOG_DIAGNOSIS_LOG_LEVEL.
        logging.basicConfig(stream=sys.stderr, level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 2
    except ParseError as e:
        print(f"Error: {e.source or 'rule source'} is invalid:", file=sys.stderr)
        for issue in e.issues:
            print(f"  - {issue}", file=sys.stderr)
        return 2
    except (DiagnosisError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
