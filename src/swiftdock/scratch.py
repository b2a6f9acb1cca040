"""RAM-backed scratch volume for range runs.

A range run copies the package into a memory filesystem and mounts that copy
over the package directory inside every container, which makes the repeated
builds much faster.  The volume is an optimisation: when no backend is
available, or creating one fails, the run carries on against the real
directory.

Only one volume exists per process.  It is registered in a single slot so the
termination-signal handler can tear it down without being handed a
reference; every other path releases it through ``scratch_volume_scope``.
"""

from __future__ import annotations

import os
import re
import shutil
import signal
import sys
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from swiftdock.constants import (
    HDIUTIL_BLOCK_SIZE,
    HDIUTIL_MIN_BYTES,
    SCRATCH_EXCLUDED_NAMES,
    SCRATCH_EXCLUDED_SUFFIXES,
    SCRATCH_GROW_THRESHOLD,
    TRAPPED_SIGNAL_NAMES,
)
from swiftdock.models import ScratchConfig, ScratchVolumeError
from swiftdock.process import ProcessRunner, run_process


@dataclass
class ScratchVolume:
    device: str
    mount_path: Path
    capacity: int
    original_capacity: int
    created_mount_dir: bool
    volume_name: str = ""
    system_mounted: bool = False
    # Mount directory left empty when a failed resize kept the volume at its staging path.
    abandoned_mount_dir: Path | None = None


# ---------------------------------------------------------------------------
# Project sizing and copying
# ---------------------------------------------------------------------------


def _is_excluded(name: str) -> bool:
    return name in SCRATCH_EXCLUDED_NAMES or name.endswith(SCRATCH_EXCLUDED_SUFFIXES)


def measure_allocated_size(root: Path) -> int:
    """Bytes allocated on disk by ``root``, skipping build output and VCS/IDE metadata."""
    total = 0
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = [name for name in dirnames if not _is_excluded(name)]
        for filename in filenames:
            if _is_excluded(filename):
                continue
            try:
                info = os.lstat(os.path.join(current, filename))
            except OSError:
                continue
            blocks = getattr(info, "st_blocks", None)
            total += blocks * 512 if blocks is not None else info.st_size
    return total


def scratch_size_for(measured: int, *, min_bytes: int, size_factor: int) -> int:
    return max(measured, min_bytes) * size_factor


def _copy_entry(source: Path, destination: Path) -> None:
    if source.is_dir() and not source.is_symlink():
        shutil.copytree(source, destination, symlinks=True)
    else:
        shutil.copy2(source, destination, follow_symlinks=False)


def copy_missing_children(source: Path, destination: Path, *, exclude: bool = False) -> int:
    """Copy each child of ``source`` not already present in ``destination``."""
    copied = 0
    for child in sorted(source.iterdir()):
        if exclude and _is_excluded(child.name):
            continue
        target = destination / child.name
        if target.exists() or target.is_symlink():
            continue
        _copy_entry(child, target)
        copied += 1
    return copied


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class ScratchBackend:
    """Platform primitive that creates, relocates and destroys a memory filesystem."""

    name = "base"

    def __init__(self, runner: ProcessRunner = run_process) -> None:
        self._runner = runner

    def _run(self, argv: list[str]) -> str:
        outcome = self._runner(argv, combine_output=True)
        if outcome.exit_code != 0:
            raise ScratchVolumeError(
                f"{' '.join(argv)} exited with {outcome.exit_code}: {outcome.output}"
            )
        return outcome.output

    def create(self, byte_size: int, volume_name: str, mount_path: Path | None) -> ScratchVolume:
        raise NotImplementedError

    def relocate(self, volume: ScratchVolume, new_location: Path) -> Path:
        """Move the live filesystem to ``new_location`` and return where it now is."""
        raise NotImplementedError

    def destroy(self, device: str, location: Path) -> None:
        """Release a device that is no longer referenced by any ``ScratchVolume``."""
        raise NotImplementedError

    def remove(self, volume: ScratchVolume) -> None:
        raise NotImplementedError

    def _discard_abandoned(self, volume: ScratchVolume) -> None:
        if volume.abandoned_mount_dir is not None:
            shutil.rmtree(volume.abandoned_mount_dir, ignore_errors=True)
            volume.abandoned_mount_dir = None

    def usage(self, volume: ScratchVolume) -> tuple[int, int]:
        usage = shutil.disk_usage(volume.mount_path)
        return usage.total, usage.free


_DISK_RE = re.compile(r"/dev/disk\d+", re.IGNORECASE)
_ATTACH_FAILED_RE = re.compile(r"hdiutil: attach failed - (.+)", re.IGNORECASE)
_MOUNT_POINT_RE = re.compile(r"Mount Point:\s+(.+)", re.IGNORECASE)


class HdiutilBackend(ScratchBackend):
    """macOS RAM disk built from ``hdiutil``, ``newfs_hfs`` and ``diskutil``."""

    name = "hdiutil"

    def _attach(self, blocks: int) -> str:
        outcome = self._runner(
            ["/usr/bin/hdiutil", "attach", "-nomount", f"ram://{blocks}"],
            combine_output=True,
        )
        matches = _DISK_RE.findall(outcome.output) if outcome.exit_code == 0 else []
        if len(matches) != 1:
            failed = _ATTACH_FAILED_RE.search(outcome.output)
            detail = failed.group(1) if failed else outcome.output or f"exit {outcome.exit_code}"
            raise ScratchVolumeError(f"could not create RAM disk: {detail}")
        return matches[0]

    def _mount(self, disk: str, mount_path: Path | None, byte_size: int) -> ScratchVolume:
        created = False
        argv = ["/usr/sbin/diskutil", "mount"]
        if mount_path is not None:
            if not mount_path.exists():
                mount_path.mkdir(parents=True)
                created = True
            argv.extend(["-mountPoint", str(mount_path)])
        argv.append(disk)
        output = self._run(argv)
        mounted = re.search(rf"Volume (.+) on {re.escape(disk)} mounted", output, re.IGNORECASE)
        if mounted is None:
            raise ScratchVolumeError(f"could not mount RAM disk {disk}: {output}")
        info = self._run(["/usr/sbin/diskutil", "info", disk])
        point = _MOUNT_POINT_RE.search(info)
        if point is None:
            raise ScratchVolumeError(f"could not find mount point for {disk}")
        return ScratchVolume(
            device=disk,
            mount_path=Path(point.group(1).strip()),
            capacity=byte_size,
            original_capacity=byte_size,
            created_mount_dir=created,
            volume_name=mounted.group(1),
            system_mounted=mount_path is None,
        )

    def create(self, byte_size: int, volume_name: str, mount_path: Path | None) -> ScratchVolume:
        byte_size = max(byte_size, HDIUTIL_MIN_BYTES)
        blocks = -(-byte_size // HDIUTIL_BLOCK_SIZE)
        disk = self._attach(blocks)
        raw_disk = disk.replace("/dev/disk", "/dev/rdisk")
        try:
            argv = ["/sbin/newfs_hfs"]
            if volume_name:
                argv.extend(["-v", volume_name])
            self._run([*argv, raw_disk])
            return self._mount(disk, mount_path, blocks * HDIUTIL_BLOCK_SIZE)
        except ScratchVolumeError:
            self._runner(["/usr/bin/hdiutil", "detach", disk], combine_output=True)
            raise

    def relocate(self, volume: ScratchVolume, new_location: Path) -> Path:
        self._run(["/sbin/umount", "-f", volume.device])
        return self._mount(volume.device, new_location, volume.capacity).mount_path

    def destroy(self, device: str, location: Path) -> None:
        self._run(["/sbin/umount", "-f", device])
        self._run(["/usr/bin/hdiutil", "detach", device])

    def _current_mount_point(self, disk: str) -> Path:
        output = self._run(["/sbin/mount"])
        match = re.search(rf"{re.escape(disk)} on (.+) \(", output, re.IGNORECASE)
        if match is None:
            raise ScratchVolumeError(f"could not find mount point for {disk}")
        return Path(match.group(1))

    def remove(self, volume: ScratchVolume) -> None:
        doomed: Path | None = None
        if volume.created_mount_dir:
            mount_point = self._current_mount_point(volume.device)
            if not str(mount_point).startswith("/Volumes"):
                doomed = mount_point
        self.destroy(volume.device, volume.mount_path)
        if doomed is not None:
            shutil.rmtree(doomed, ignore_errors=True)
        self._discard_abandoned(volume)


class TmpfsBackend(ScratchBackend):
    """Linux ``tmpfs`` mount; needs root."""

    name = "tmpfs"

    def create(self, byte_size: int, volume_name: str, mount_path: Path | None) -> ScratchVolume:
        created = False
        if mount_path is None:
            mount_path = Path(tempfile.mkdtemp(prefix=f"{volume_name or 'swiftdock'}-"))
            created = True
        elif not mount_path.exists():
            mount_path.mkdir(parents=True)
            created = True
        try:
            self._run([
                "mount", "-t", "tmpfs", "-o", f"size={byte_size}",
                volume_name or "swiftdock", str(mount_path),
            ])
        except ScratchVolumeError:
            if created:
                shutil.rmtree(mount_path, ignore_errors=True)
            raise
        return ScratchVolume(
            device=str(mount_path),
            mount_path=mount_path,
            capacity=byte_size,
            original_capacity=byte_size,
            created_mount_dir=created,
            volume_name=volume_name,
        )

    def relocate(self, volume: ScratchVolume, new_location: Path) -> Path:
        self._run(["mount", "--move", str(volume.mount_path), str(new_location)])
        return new_location

    def destroy(self, device: str, location: Path) -> None:
        self._run(["umount", "-f", str(location)])

    def remove(self, volume: ScratchVolume) -> None:
        self.destroy(volume.device, volume.mount_path)
        if volume.created_mount_dir:
            shutil.rmtree(volume.mount_path, ignore_errors=True)
        self._discard_abandoned(volume)


def select_scratch_backend(
    name: str,
    *,
    runner: ProcessRunner = run_process,
    platform: str | None = None,
) -> ScratchBackend | None:
    """Capability check; ``None`` means run without a scratch volume."""
    platform = platform or sys.platform
    is_root = hasattr(os, "geteuid") and os.geteuid() == 0
    hdiutil_ok = platform == "darwin" and Path("/usr/bin/hdiutil").exists()
    tmpfs_ok = platform.startswith("linux") and is_root and shutil.which("mount") is not None

    if name == "none":
        return None
    if name == "hdiutil":
        return HdiutilBackend(runner) if hdiutil_ok else None
    if name == "tmpfs":
        return TmpfsBackend(runner) if tmpfs_ok else None
    if hdiutil_ok:
        return HdiutilBackend(runner)
    if tmpfs_ok:
        return TmpfsBackend(runner)
    return None


# ---------------------------------------------------------------------------
# Active volume slot
# ---------------------------------------------------------------------------


class _ActiveVolumeSlot:
    """Holds at most one live volume; cleared exactly once."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entry: tuple[ScratchVolumeManager, ScratchVolume] | None = None

    def claim(self, manager: ScratchVolumeManager, volume: ScratchVolume) -> None:
        with self._lock:
            if self._entry is not None:
                raise ScratchVolumeError(
                    f"a scratch volume is already active at {self._entry[1].mount_path}"
                )
            self._entry = (manager, volume)

    def release(self, volume: ScratchVolume) -> bool:
        with self._lock:
            if self._entry is None or self._entry[1] is not volume:
                return False
            self._entry = None
            return True

    def take(self) -> tuple[ScratchVolumeManager, ScratchVolume] | None:
        with self._lock:
            entry, self._entry = self._entry, None
            return entry

    def current(self) -> ScratchVolume | None:
        with self._lock:
            return self._entry[1] if self._entry is not None else None


_ACTIVE_SLOT = _ActiveVolumeSlot()


def active_scratch_volume() -> ScratchVolume | None:
    return _ACTIVE_SLOT.current()


def teardown_active_volume() -> bool:
    """Best-effort synchronous teardown of whatever volume is registered."""
    entry = _ACTIVE_SLOT.take()
    if entry is None:
        return False
    manager, volume = entry
    try:
        manager.backend.remove(volume)
    except (ScratchVolumeError, OSError) as exc:
        print(f"Failed to remove scratch volume '[{volume.device}]:{volume.mount_path}': {exc}")
        return False
    return True


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class ScratchVolumeManager:
    def __init__(
        self,
        backend: ScratchBackend | None,
        config: ScratchConfig | None = None,
        *,
        log: Callable[[str], None] | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or ScratchConfig()
        self._log = log or (lambda message: None)

    @property
    def available(self) -> bool:
        return self.backend is not None and self.config.enabled

    def provision(self, source_dir: Path, *, volume_name: str) -> ScratchVolume | None:
        """Create a volume sized from ``source_dir`` and copy the package into it."""
        if not self.available:
            return None
        assert self.backend is not None
        measured = measure_allocated_size(source_dir)
        size = scratch_size_for(
            measured,
            min_bytes=self.config.min_bytes,
            size_factor=self.config.size_factor,
        )
        volume = self.backend.create(size, volume_name, None)
        try:
            _ACTIVE_SLOT.claim(self, volume)
        except ScratchVolumeError:
            self.backend.remove(volume)
            raise
        self._log(
            f"scratch volume created backend={self.backend.name} device={volume.device} "
            f"mount={volume.mount_path} bytes={volume.capacity} project_bytes={measured}"
        )
        try:
            copy_missing_children(source_dir, volume.mount_path, exclude=True)
        except OSError as exc:
            self.teardown(volume)
            raise ScratchVolumeError(f"could not copy project into scratch volume: {exc}") from exc
        return volume

    def needs_growth(self, volume: ScratchVolume) -> bool:
        assert self.backend is not None
        total, free = self.backend.usage(volume)
        if total <= 0:
            return False
        return free < total * SCRATCH_GROW_THRESHOLD and free < volume.original_capacity

    def grow_if_low(self, volume: ScratchVolume) -> bool:
        """Add one original capacity when under half free and below the original size."""
        if self.backend is None or not self.needs_growth(volume):
            return False
        self.resize(volume, volume.capacity + volume.original_capacity)
        return True

    def resize(self, volume: ScratchVolume, new_size: int) -> None:
        """Create-new, copy-forward, swap, delete-old; the primitive cannot grow live."""
        assert self.backend is not None
        staging = Path(tempfile.mkdtemp(prefix="swiftdock-resize-"))
        old_device = volume.device
        old_location: Path | None = None
        replacement: ScratchVolume | None = None
        try:
            old_location = self.backend.relocate(volume, staging)
            target = None if volume.system_mounted else volume.mount_path
            replacement = self.backend.create(new_size, volume.volume_name, target)
            copy_missing_children(old_location, replacement.mount_path)
        except (ScratchVolumeError, OSError):
            if replacement is not None:
                self.backend.remove(replacement)
            if old_location is None:
                shutil.rmtree(staging, ignore_errors=True)
            else:
                # Old filesystem stays live at the staging path until teardown.
                if volume.created_mount_dir and old_location != volume.mount_path:
                    volume.abandoned_mount_dir = volume.mount_path
                volume.mount_path = old_location
            raise
        volume.device = replacement.device
        volume.mount_path = replacement.mount_path
        volume.capacity = replacement.capacity
        self.backend.destroy(old_device, old_location)
        shutil.rmtree(staging, ignore_errors=True)
        self._log(f"scratch volume resized device={volume.device} bytes={volume.capacity}")

    def teardown(self, volume: ScratchVolume) -> bool:
        if not _ACTIVE_SLOT.release(volume):
            return False
        assert self.backend is not None
        self.backend.remove(volume)
        self._log(f"scratch volume removed device={volume.device} mount={volume.mount_path}")
        return True


@contextmanager
def scratch_volume_scope(
    manager: ScratchVolumeManager,
    source_dir: Path,
    *,
    volume_name: str,
) -> Iterator[ScratchVolume | None]:
    """Provision on entry, tear down on every exit; failures degrade to ``None``."""
    volume: ScratchVolume | None = None
    if manager.available:
        print(f"Moving project to scratch volume for '{volume_name}'")
        try:
            volume = manager.provision(source_dir, volume_name=volume_name)
        except (ScratchVolumeError, OSError) as exc:
            print("There was an error while trying to create the scratch volume for the project")
            print(exc)
            volume = None
        else:
            if volume is not None:
                print(f"Moved project to scratch volume ('{volume.mount_path}')")
    try:
        yield volume
    finally:
        if volume is not None:
            try:
                manager.teardown(volume)
            except (ScratchVolumeError, OSError) as exc:
                print(f"Failed to remove scratch volume '[{volume.device}]:{volume.mount_path}'")
                print(exc)


@contextmanager
def trap_termination_signals(
    signal_names: tuple[str, ...] = TRAPPED_SIGNAL_NAMES,
) -> Iterator[list[int]]:
    """Tear down the active scratch volume and exit 1 on termination signals.

    Signals that cannot be caught (SIGKILL) or that are not available on this
    platform are skipped.  Yields the signal numbers actually installed.
    """
    previous: dict[int, object] = {}

    def _handler(signum: int, frame: object) -> None:
        teardown_active_volume()
        raise SystemExit(1)

    for name in signal_names:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            previous[signum] = signal.signal(signum, _handler)
        except (OSError, ValueError, RuntimeError):
            continue
    try:
        yield list(previous)
    finally:
        for signum, handler in previous.items():
            try:
                signal.signal(signum, handler)  # type: ignore[arg-type]
            except (OSError, ValueError, TypeError):
                continue
