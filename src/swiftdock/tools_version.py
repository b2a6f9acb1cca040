"""Find the lowest swift tools version a package declares."""

from __future__ import annotations

from pathlib import Path

from swiftdock.catalog import version_key
from swiftdock.constants import PACKAGE_MANIFEST_PREFIX
from swiftdock.docker_cli import ContainerSettings, generate_container_name
from swiftdock.images import ImageReference
from swiftdock.models import ProcessTimedOut, ToolsVersionError
from swiftdock.process import ProcessRunner, run_process

_TOOLS_VERSION_TIMEOUT_SECONDS = 300.0


def pad_version(version: str) -> str:
    parts = [part for part in version.strip().split(".") if part]
    while len(parts) < 3:
        parts.append("0")
    return ".".join(parts)


def manifest_versions(project_dir: Path) -> list[str]:
    """Versions from ``Package@swift-X[.Y[.Z]].swift`` files in the package root."""
    versions: list[str] = []
    for entry in sorted(project_dir.iterdir()):
        name = entry.name
        if not name.startswith(PACKAGE_MANIFEST_PREFIX) or not name.lower().endswith(".swift"):
            continue
        raw = name[len(PACKAGE_MANIFEST_PREFIX): -len(".swift")]
        if raw:
            versions.append(pad_version(raw))
    return versions


def lowest_version(versions: list[str]) -> str:
    if not versions:
        raise ToolsVersionError("no tools versions to compare")
    return min(versions, key=lambda value: (version_key(value) == (), version_key(value), value))


def detect_min_tools_version(
    project_dir: Path,
    settings: ContainerSettings,
    *,
    image: ImageReference,
    runner: ProcessRunner = run_process,
) -> str:
    """Ask ``swift package tools-version`` inside ``image`` and fold in versioned manifests."""
    argv = settings.run_command(
        f"{image.repository}:{image.tag}",
        container_name=generate_container_name(
            image.app,
            image.tag,
            settings.package_name,
            info=("tools-version",),
        ),
        command=image.app,
        arguments=["package", "tools-version"],
    )
    try:
        outcome = runner(argv, combine_output=True, timeout_seconds=_TOOLS_VERSION_TIMEOUT_SECONDS)
    except ProcessTimedOut as exc:
        raise ToolsVersionError(f"failed to get tools-version for package: {exc}") from exc
    if outcome.exit_code != 0:
        raise ToolsVersionError(f"failed to get tools-version for package:\n{outcome.output}")

    lines = outcome.output.replace("\r\n", "\n").split("\n")
    reported = lines[0].strip() if lines else ""
    if not reported:
        raise ToolsVersionError("swift package tools-version printed nothing")
    return lowest_version([pad_version(reported), *manifest_versions(project_dir)])
