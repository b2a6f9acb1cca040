"""Log file helpers and text formatting used by the console output."""

from __future__ import annotations

import re
import secrets
import string
import sys
from datetime import datetime, timezone
from pathlib import Path

from swiftdock.constants import LOG_RELATIVE_PATH

_MINUTE = 60
_HOUR = _MINUTE * 60
_DAY = _HOUR * 24
_WEEK = _DAY * 7

_ERASE_LINE = "\x1b[2K"
_CURSOR_UP_ERASE = "\x1b[1A\x1b[2K"


def _utc_now() -> str:
    return (
        datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    )


def _append_log(project_dir: Path, message: str) -> None:
    log_path = project_dir / LOG_RELATIVE_PATH
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(f"{_utc_now()} {message}\n")
    except OSError:
        return


def _compact_log_text(text: str, *, limit: int = 240) -> str:
    compact = re.sub(r"\s+", " ", text).strip()
    if len(compact) <= limit:
        return compact
    return compact[: limit - 3] + "..."


def _erase_previous_line() -> None:
    """Clear the current line and the one above it so a progress line can be replaced."""
    sys.stdout.write(_ERASE_LINE)
    sys.stdout.write(_CURSOR_UP_ERASE)
    sys.stdout.flush()


def _random_alnum(length: int) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" + ("s" if value > 1 else "")


def format_time_interval(seconds: float) -> str:
    """Render a duration as ``"1 hour, 2 minutes, 5 seconds"``; zero is ``"0s"``."""
    remaining = int(seconds)
    parts: list[str] = []
    for unit_seconds, unit in (
        (_WEEK, "week"),
        (_DAY, "day"),
        (_HOUR, "hour"),
        (_MINUTE, "minute"),
    ):
        if remaining >= unit_seconds:
            value, remaining = divmod(remaining, unit_seconds)
            parts.append(_plural(value, unit))
    if remaining > 0:
        parts.append(_plural(remaining, "second"))
    return ", ".join(parts) if parts else "0s"


def apply_output_replacements(
    output: str,
    literal: list[tuple[str, str]] | tuple[tuple[str, str], ...] = (),
    regex: list[tuple[re.Pattern[str], str]] | tuple[tuple[re.Pattern[str], str], ...] = (),
) -> str:
    """Apply literal find/replace pairs, then regex substitutions, in order."""
    for find, replace in literal:
        output = output.replace(find, replace)
    for pattern, template in regex:
        output = pattern.sub(template, output)
    return output

