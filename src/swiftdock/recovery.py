"""Bring a stalled docker runtime back after a container timed out."""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Callable

from swiftdock.constants import DOCKER_APP_DIRECTORIES, DOCKER_APP_NAME
from swiftdock.docker_cli import docker_is_responsive
from swiftdock.models import FatalDockerError, ProcessTimedOut, RecoveryConfig
from swiftdock.process import ProcessRunner, run_process

Sleeper = Callable[[float], None]


def _find_docker_app(directories: tuple[Path, ...] = DOCKER_APP_DIRECTORIES) -> Path | None:
    for directory in directories:
        candidate = directory / DOCKER_APP_NAME
        if candidate.exists():
            return candidate
    return None


def _docker_app_running(runner: ProcessRunner) -> bool:
    outcome = runner(["pgrep", "-f", DOCKER_APP_NAME], combine_output=True)
    return outcome.exit_code == 0


def _restart_docker_desktop(
    config: RecoveryConfig,
    *,
    runner: ProcessRunner,
    sleep: Sleeper,
    app_directories: tuple[Path, ...],
) -> bool:
    print("Trying to restart Docker...")
    print("Killing Docker...")
    runner(["pkill", "-9", "-f", DOCKER_APP_NAME], combine_output=True)
    sleep(config.settle_seconds)

    app = _find_docker_app(app_directories)
    if app is None:
        print("Docker application not found")
        return False

    print("Starting Docker...")
    for attempt in range(1, config.launch_attempts + 1):
        outcome = runner(["open", "-a", str(app)], combine_output=True)
        sleep(config.settle_seconds)
        if outcome.exit_code == 0 and _docker_app_running(runner):
            return True
        if attempt == config.launch_attempts:
            print("Failed to Open Docker.")
            if outcome.output:
                print(outcome.output)
    print("Failed to restart Docker.  Please start manually")
    return False


def restart_docker(
    config: RecoveryConfig,
    *,
    runner: ProcessRunner = run_process,
    sleep: Sleeper = time.sleep,
    platform: str | None = None,
    app_directories: tuple[Path, ...] = DOCKER_APP_DIRECTORIES,
) -> bool:
    """Platform-specific restart; returns whether a restart was actually attempted successfully."""
    platform = platform or sys.platform
    if platform == "darwin":
        return _restart_docker_desktop(
            config, runner=runner, sleep=sleep, app_directories=app_directories
        )
    if config.restart_command:
        print(f"Restarting Docker with: {' '.join(config.restart_command)}")
        try:
            outcome = runner(list(config.restart_command), combine_output=True, timeout_seconds=120)
        except ProcessTimedOut as exc:
            print(f"Docker restart command timed out: {exc}")
            return False
        if outcome.exit_code != 0:
            print(f"Docker restart command failed ({outcome.exit_code}): {outcome.output}")
            return False
        return True
    print("Docker has stalled, please restart.")
    return False


def wait_for_docker(
    docker_path: str,
    config: RecoveryConfig,
    *,
    runner: ProcessRunner = run_process,
    sleep: Sleeper = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Poll ``container ls`` until it succeeds; returns the number of failed checks."""
    print("Waiting to re-establish connection with Docker")
    started = clock()
    failures = 0
    while not docker_is_responsive(docker_path, runner=runner):
        failures += 1
        if config.max_wait_seconds > 0 and clock() - started >= config.max_wait_seconds:
            raise FatalDockerError(
                f"docker did not respond within {config.max_wait_seconds:g}s"
            )
        sleep(config.poll_seconds)
    return failures


def recover_from_timeout(
    docker_path: str,
    config: RecoveryConfig,
    *,
    runner: ProcessRunner = run_process,
    sleep: Sleeper = time.sleep,
    platform: str | None = None,
) -> None:
    print("Container has timed out.  Most likely Docker has stalled")
    restart_docker(config, runner=runner, sleep=sleep, platform=platform)
    wait_for_docker(docker_path, config, runner=runner, sleep=sleep)
