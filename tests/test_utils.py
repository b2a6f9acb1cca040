from __future__ import annotations

import re
from pathlib import Path

import pytest

from swiftdock.utils import (
    _append_log,
    _compact_log_text,
    _erase_previous_line,
    apply_output_replacements,
    format_time_interval,
)


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0, "0s"),
        (1, "1 second"),
        (59, "59 seconds"),
        (60, "1 minute"),
        (3725, "1 hour, 2 minutes, 5 seconds"),
        (86400 * 8 + 1, "1 week, 1 day, 1 second"),
    ],
)
def test_format_time_interval(seconds: float, expected: str) -> None:
    assert format_time_interval(seconds) == expected


def test_output_replacements_apply_literal_then_regex() -> None:
    output = "Compiling /tmp/ramdisk-42/Sources/main.swift"

    replaced = apply_output_replacements(
        output,
        literal=[("/tmp/ramdisk-42", "/src")],
        regex=[(re.compile(r"/src/(\w+)/"), r"<\1>/")],
    )

    assert replaced == "Compiling <Sources>/main.swift"


def test_append_log_writes_timestamped_lines(tmp_path: Path) -> None:
    _append_log(tmp_path, "range start")
    _append_log(tmp_path, "range finished")

    lines = (tmp_path / ".swiftdock" / "logs" / "swiftdock.log").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0].endswith(" range start")
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z ", lines[1])


def test_append_log_ignores_unwritable_location(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")

    _append_log(blocker, "never written")


def test_compact_log_text_truncates() -> None:
    assert _compact_log_text("a\n  b\tc") == "a b c"
    assert _compact_log_text("x" * 300, limit=10) == "xxxxxxx..."


def test_erase_previous_line_emits_ansi(capsys: pytest.CaptureFixture[str]) -> None:
    _erase_previous_line()

    assert capsys.readouterr().out == "\x1b[2K\x1b[1A\x1b[2K"
