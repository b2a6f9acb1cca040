from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from swiftdock.config import load_config
from swiftdock.constants import DEFAULT_DOCKER_RUN_FLAGS, RETRYABLE_PATTERNS
from swiftdock.models import ConfigError


def _write_config(repo: Path, payload: object) -> None:
    config_path = repo / ".swiftdock" / "config.yaml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config.execution.timeout_seconds == 300.0
    assert config.execution.max_attempts == 3
    assert config.execution.docker_run_flags == DEFAULT_DOCKER_RUN_FLAGS
    assert config.recovery.max_wait_seconds == 0.0
    assert config.scratch.backend == "auto"
    assert config.catalog.path == ""
    assert "Docker Timed Out" in config.response_patterns.retryable
    assert "docker: Error response from daemon:" in config.response_patterns.fatal_docker


def test_execution_and_recovery_sections_are_coerced(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {
            "execution": {
                "timeout_seconds": "120",
                "max_attempts": 7,
                "retry_delay_seconds": -4,
                "docker_run_flags": "--init --privileged",
            },
            "recovery": {
                "poll_seconds": 2,
                "restart_command": ["systemctl", "restart", "docker"],
                "max_wait_seconds": 600,
            },
            "scratch": {"enabled": "false", "backend": "TMPFS", "size_factor": 10},
            "catalog": {"path": "tags.json"},
        },
    )

    config = load_config(tmp_path)

    assert config.execution.timeout_seconds == 120.0
    assert config.execution.max_attempts == 3
    assert config.execution.retry_delay_seconds == 0.0
    assert config.execution.docker_run_flags == ("--init", "--privileged")
    assert config.recovery.poll_seconds == 2.0
    assert config.recovery.restart_command == ("systemctl", "restart", "docker")
    assert config.recovery.max_wait_seconds == 600.0
    assert config.scratch.enabled is False
    assert config.scratch.backend == "tmpfs"
    assert config.scratch.size_factor == 10
    assert config.catalog.path == "tags.json"


def test_response_patterns_extend_or_replace_defaults(tmp_path: Path) -> None:
    _write_config(tmp_path, {"response_patterns": {"retryable": ["TLS handshake timeout"]}})
    extended = load_config(tmp_path).response_patterns
    assert extended.retryable == RETRYABLE_PATTERNS + ("TLS handshake timeout",)

    _write_config(
        tmp_path,
        {"response_patterns": {"replace_defaults": True, "warning": ["note:"]}},
    )
    replaced = load_config(tmp_path).response_patterns
    assert replaced.warning == ("note:",)
    assert replaced.retryable == RETRYABLE_PATTERNS


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (["not", "a", "mapping"], "must contain a mapping"),
        ({"execution": "fast"}, "config section 'execution' must be a mapping"),
        ({"scratch": {"backend": "zram"}}, "scratch.backend must be one of"),
        ({"response_patterns": {"error": "error:"}}, "response_patterns.error must be a list"),
    ],
)
def test_invalid_config_raises(tmp_path: Path, payload: object, message: str) -> None:
    _write_config(tmp_path, payload)

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)


def test_unparseable_config_raises(tmp_path: Path) -> None:
    config_path = tmp_path / ".swiftdock" / "config.yaml"
    config_path.parent.mkdir(parents=True)
    config_path.write_text("execution: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="could not parse"):
        load_config(tmp_path)
