"""Single blocking invocation of an external executable."""

from __future__ import annotations

import os
import subprocess
import time
from pathlib import Path
from typing import Callable, Mapping

from swiftdock.models import ProcessTimedOut, RunOutcome

_KILL_GRACE_SECONDS = 2.0

ProcessRunner = Callable[..., RunOutcome]


def _strip_trailing_newlines(text: str) -> str:
    return text.rstrip("\r\n")


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _stop_process(process: subprocess.Popen[str]) -> tuple[str, str]:
    process.terminate()
    try:
        stdout, stderr = process.communicate(timeout=_KILL_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        process.kill()
        stdout, stderr = process.communicate()
    return _decode(stdout), _decode(stderr)


def run_process(
    argv: list[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | str | None = None,
    stdin_text: str | None = None,
    inherit_stdin: bool = False,
    timeout_seconds: float | None = None,
    combine_output: bool = True,
    capture_output: bool = True,
) -> RunOutcome:
    """Run ``argv`` once and wait for it to exit.

    With ``combine_output`` stderr is folded into ``output``; otherwise it is
    returned separately in ``stderr``.  With ``capture_output=False`` the
    child writes straight to the terminal and ``output`` is empty.

    Raises ``ProcessTimedOut`` after forcibly stopping the child when
    ``timeout_seconds`` elapses.  A missing executable is reported as exit
    code 127 rather than raised.
    """
    child_env = None
    if env:
        child_env = dict(os.environ)
        child_env.update(env)

    if stdin_text is not None:
        stdin = subprocess.PIPE
    elif inherit_stdin:
        stdin = None
    else:
        stdin = subprocess.DEVNULL

    if capture_output:
        stdout = subprocess.PIPE
        stderr = subprocess.STDOUT if combine_output else subprocess.PIPE
    else:
        stdout = None
        stderr = None

    effective_timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
    started = time.monotonic()
    try:
        process = subprocess.Popen(
            argv,
            cwd=str(cwd) if cwd is not None else None,
            env=child_env,
            shell=False,
            text=True,
            encoding="utf-8",
            errors="replace",
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
        )
    except FileNotFoundError as exc:
        return RunOutcome(
            exit_code=127,
            output=str(exc),
            duration_seconds=time.monotonic() - started,
        )

    try:
        raw_stdout, raw_stderr = process.communicate(
            input=stdin_text, timeout=effective_timeout
        )
    except subprocess.TimeoutExpired:
        partial_stdout, _ = _stop_process(process)
        raise ProcessTimedOut(
            argv,
            float(effective_timeout or 0),
            output=_strip_trailing_newlines(partial_stdout),
        ) from None
    except BaseException:
        process.kill()
        process.wait()
        raise

    return RunOutcome(
        exit_code=int(process.returncode),
        output=_strip_trailing_newlines(_decode(raw_stdout)),
        duration_seconds=time.monotonic() - started,
        stderr=_strip_trailing_newlines(_decode(raw_stderr)),
    )
