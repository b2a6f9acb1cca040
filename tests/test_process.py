from __future__ import annotations

import subprocess

import pytest

import swiftdock.process as process_module
from swiftdock.models import ProcessTimedOut
from swiftdock.process import run_process


class _FinishedProcess:
    returncode = 0
    last_kwargs: dict[str, object] = {}

    def __init__(self, argv: list[str], **kwargs: object) -> None:
        self.argv = argv
        _FinishedProcess.last_kwargs = kwargs

    def communicate(self, input: str | None = None, timeout: float | None = None) -> tuple[str, str | None]:
        return "line one\nline two\r\n\n", None


class _FailingProcess(_FinishedProcess):
    returncode = 3

    def communicate(self, input: str | None = None, timeout: float | None = None) -> tuple[str, str | None]:
        return "out\n", "err\n"


class _HungProcess:
    instances: list["_HungProcess"] = []

    def __init__(self, argv: list[str], **kwargs: object) -> None:
        self.argv = argv
        self.returncode = None
        self.terminated = False
        self.killed = False
        self.communicate_calls = 0
        _HungProcess.instances.append(self)

    def communicate(self, input: str | None = None, timeout: float | None = None) -> tuple[str, str | None]:
        self.communicate_calls += 1
        if self.communicate_calls == 1:
            raise subprocess.TimeoutExpired(self.argv, timeout or 0)
        if not self.killed and self.communicate_calls == 2:
            raise subprocess.TimeoutExpired(self.argv, timeout or 0)
        return "partial output\n", None

    def terminate(self) -> None:
        self.terminated = True

    def kill(self) -> None:
        self.killed = True


def test_run_process_combines_output_and_strips_trailing_newlines(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(process_module.subprocess, "Popen", _FinishedProcess)

    outcome = run_process(["swift", "build"], env={"EXTRA": "1"})

    assert outcome.exit_code == 0
    assert outcome.output == "line one\nline two"
    assert outcome.succeeded
    assert _FinishedProcess.last_kwargs["stderr"] == subprocess.STDOUT
    assert _FinishedProcess.last_kwargs["stdin"] == subprocess.DEVNULL
    env = _FinishedProcess.last_kwargs["env"]
    assert isinstance(env, dict) and env["EXTRA"] == "1"


def test_run_process_keeps_stderr_separate_when_asked(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(process_module.subprocess, "Popen", _FailingProcess)

    outcome = run_process(["docker", "images", "-q", "swift:5.5"], combine_output=False)

    assert outcome.exit_code == 3
    assert outcome.output == "out"
    assert outcome.stderr == "err"
    assert _FinishedProcess.last_kwargs["stderr"] == subprocess.PIPE


def test_run_process_timeout_stops_child_and_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    _HungProcess.instances.clear()
    monkeypatch.setattr(process_module.subprocess, "Popen", _HungProcess)

    with pytest.raises(ProcessTimedOut, match="timed out after 5s") as excinfo:
        run_process(["docker", "run", "swift:5.5"], timeout_seconds=5)

    child = _HungProcess.instances[-1]
    assert child.terminated
    assert child.killed
    assert excinfo.value.output == "partial output"
    assert excinfo.value.argv == ["docker", "run", "swift:5.5"]


def test_missing_executable_is_reported_as_127(monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(argv: list[str], **kwargs: object) -> None:
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    monkeypatch.setattr(process_module.subprocess, "Popen", _missing)

    outcome = run_process(["/nope/docker", "container", "ls"])

    assert outcome.exit_code == 127
    assert "No such file or directory" in outcome.output
