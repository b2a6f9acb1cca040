"""Thin wrappers over the docker command line."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from swiftdock.constants import (
    CONTAINER_NAME_SUFFIX_LENGTH,
    DEFAULT_DOCKER_EXECUTABLE,
    DEFAULT_DOCKER_RUN_FLAGS,
    DOCKER_PATH_ENV,
)
from swiftdock.mappings import MountMapping, VolumeMapping
from swiftdock.models import ConfigError, ProcessTimedOut, RunOutcome
from swiftdock.process import ProcessRunner, run_process
from swiftdock.utils import _random_alnum

_QUERY_TIMEOUT_SECONDS = 60.0


def locate_docker(explicit: str | None = None) -> str:
    """Resolve the docker executable: explicit path, ``$DOCKER_PATH``, ``PATH``, then the default."""
    if explicit:
        return explicit
    from_env = os.environ.get(DOCKER_PATH_ENV, "").strip()
    if from_env:
        return from_env
    found = shutil.which("docker")
    if found:
        return found
    if Path(DEFAULT_DOCKER_EXECUTABLE).exists():
        return DEFAULT_DOCKER_EXECUTABLE
    raise ConfigError(
        "docker executable not found; pass --docker-path or set $DOCKER_PATH"
    )


def generate_container_name(
    command: str,
    tag: str,
    package_name: str,
    *,
    sub_command: str | None = None,
    info: Sequence[str | None] = (),
    suffix: str | None = None,
) -> str:
    """``<command>-<tag>[-<SUBCOMMAND>]-<package>[-<info>...]-<random>``, spaces as ``_``."""
    parts = [command, tag]
    if sub_command:
        parts.append(sub_command.upper())
    parts.append(package_name)
    parts.extend(item for item in info if item)
    parts.append(suffix if suffix is not None else _random_alnum(CONTAINER_NAME_SUFFIX_LENGTH))
    return "-".join(parts).replace(" ", "_")


def build_run_arguments(
    image: str,
    *,
    container_name: str | None = None,
    docker_flags: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
    mounts: Sequence[MountMapping] = (),
    volumes: Sequence[VolumeMapping] = (),
    workdir: str | None = None,
    command: str | None = None,
    arguments: Sequence[str] = (),
    auto_remove: bool = True,
    attach_input: bool = False,
    detach: bool = False,
) -> list[str]:
    args = ["run"]
    if auto_remove:
        args.append("--rm")
    if attach_input:
        args.append("-i")
    args.append("-t")
    if detach:
        args.append("-d")
    if container_name:
        args.extend(["--name", container_name.replace(" ", "_")])
    args.extend(["--log-driver", "none"])
    args.extend(docker_flags)
    for key, value in (env or {}).items():
        args.extend(["-e", f"{key}={value}"])
    for mount in mounts:
        args.extend(["--mount", str(mount)])
    for volume in volumes:
        args.extend(["-v", str(volume)])
    if workdir:
        args.extend(["-w", workdir])
    args.append(image)
    if command:
        args.append(command)
    args.extend(arguments)
    return args


def docker_image_exists(
    docker_path: str,
    image: str,
    *,
    runner: ProcessRunner = run_process,
) -> bool:
    """``images -q``: present when it exits 0 and prints an image id."""
    try:
        outcome = runner(
            [docker_path, "images", "-q", image],
            combine_output=False,
            timeout_seconds=_QUERY_TIMEOUT_SECONDS,
        )
    except ProcessTimedOut:
        return False
    return outcome.exit_code == 0 and bool(outcome.output.strip())


def docker_pull(
    docker_path: str,
    image: str,
    *,
    runner: ProcessRunner = run_process,
) -> RunOutcome:
    return runner([docker_path, "pull", image], combine_output=True)


def docker_is_responsive(
    docker_path: str,
    *,
    runner: ProcessRunner = run_process,
) -> bool:
    try:
        outcome = runner(
            [docker_path, "container", "ls"],
            combine_output=True,
            timeout_seconds=_QUERY_TIMEOUT_SECONDS,
        )
    except ProcessTimedOut:
        return False
    return outcome.exit_code == 0


@dataclass(frozen=True)
class ContainerSettings:
    """Everything about a ``docker run`` that stays fixed across tags."""
    docker_path: str
    package_name: str
    workdir: str
    docker_flags: tuple[str, ...] = DEFAULT_DOCKER_RUN_FLAGS
    env: tuple[tuple[str, str], ...] = ()
    mounts: tuple[MountMapping, ...] = ()
    volumes: tuple[VolumeMapping, ...] = ()

    def run_command(
        self,
        image: str,
        *,
        container_name: str,
        command: str | None,
        arguments: Sequence[str] = (),
        attach_input: bool = False,
        detach: bool = False,
    ) -> list[str]:
        return [
            self.docker_path,
            *build_run_arguments(
                image,
                container_name=container_name,
                docker_flags=self.docker_flags,
                env=dict(self.env),
                mounts=self.mounts,
                volumes=self.volumes,
                workdir=self.workdir,
                command=command,
                arguments=arguments,
                attach_input=attach_input,
                detach=detach,
            ),
        ]
