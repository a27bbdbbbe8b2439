"""Fast token scan for candidate lines in a log file.

Only lines carrying a warning-or-worse marker are worth diagnosing; this module finds them
without parsing every line.
"""

from __future__ import annotations

import gzip
from collections.abc import Collection, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .models import LogHit, LogLevel

TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "replace"

_SEVERITY_PRIORITY: tuple[LogLevel, ...] = (
    LogLevel.CRITICAL,
    LogLevel.ERROR,
    LogLevel.WARNING,
    LogLevel.INFO,
    LogLevel.DEBUG,
)

DEFAULT_LEVELS: tuple[LogLevel, ...] = (LogLevel.CRITICAL, LogLevel.ERROR, LogLevel.WARNING)


@dataclass(frozen=True)
class ScanConfig:
    """Token lists per level for raw-bytes scanning."""

    tokens: dict[LogLevel, Sequence[bytes]]
    case_insensitive: bool = True


def default_scan_config() -> ScanConfig:
    """Default scan tokens for common log styles and Python tracebacks."""
    return ScanConfig(
        tokens={
            LogLevel.CRITICAL: (
                b"[CRITICAL]",
                b" CRITICAL ",
                b"[FATAL]",
                b" FATAL ",
                b" PANIC ",
            ),
            LogLevel.ERROR: (
                b"[ERROR]",
                b" ERROR ",
                b"ERROR:",
                b' "level":"error"',
                b" level=error",
                b"EXCEPTION",
                b"TRACEBACK",
                b" FAILED",
                b" FAILURE",
                b"REFUSED",
            ),
            LogLevel.WARNING: (
                b"[WARNING]",
                b" WARNING ",
                b" WARN ",
                b"WARNING:",
                b' "level":"warning"',
                b" level=warning",
                b" DEPRECATED",
                b" RETRY",
                b" TIMEOUT",
                b"TIMED OUT",
            ),
            LogLevel.INFO: (
                b"[INFO]",
                b" INFO ",
                b' "level":"info"',
                b" level=info",
            ),
            LogLevel.DEBUG: (
                b"[DEBUG]",
                b" DEBUG ",
                b' "level":"debug"',
                b" level=debug",
            ),
        },
        case_insensitive=True,
    )


def _open_binary(path: Path) -> BinaryIO:
    if path.suffix.lower() == ".gz":
        return gzip.open(path, mode="rb")  # type: ignore[return-value]
    return path.open("rb")


def classify_line(raw: bytes, scan: ScanConfig) -> LogLevel | None:
    """Return the most severe level whose token appears in ``raw``."""
    hay = raw.upper() if scan.case_insensitive else raw
    for level in _SEVERITY_PRIORITY:
        for p in scan.tokens.get(level, ()):
            needle = p.upper() if scan.case_insensitive else p
            if needle in hay:
                return level
    return None


def iter_hits(
    log_path: str | Path,
    *,
    levels: Collection[LogLevel] = DEFAULT_LEVELS,
    scan: ScanConfig | None = None,
    max_bytes_per_line: int = 8192,
) -> Iterator[LogHit]:
    """Yield lines whose inferred level is in ``levels``. Supports plain text and .gz."""
    scan = scan or default_scan_config()
    path = Path(log_path)
    if not path.is_file():
        raise FileNotFoundError(f"Log file not found: {path}")

    wanted = set(levels)
    with _open_binary(path) as f:
        for line_no, raw in enumerate(f, start=1):
            raw = raw[:max_bytes_per_line].rstrip(b"\r\n")
            if not raw.strip():
                continue
            level = classify_line(raw, scan)
            if level is not None and level in wanted:
                yield LogHit(
                    line_no=line_no,
                    level=level,
                    text=raw.decode(TEXT_ENCODING, errors=TEXT_ERRORS),
                )
