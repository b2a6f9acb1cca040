"""Exceptions, dataclasses and coercion helpers shared across swiftdock."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from swiftdock.constants import (
    DEFAULT_DOCKER_RUN_FLAGS,
    DEFAULT_HEALTH_POLL_SECONDS,
    DEFAULT_LAUNCH_ATTEMPTS,
    DEFAULT_RESTART_SETTLE_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_SCRATCH_BACKEND,
    DEFAULT_SCRATCH_MIN_BYTES,
    DEFAULT_SCRATCH_SIZE_FACTOR,
    DEFAULT_TIMEOUT_SECONDS,
    ERROR_PATTERNS,
    FATAL_DOCKER_PATTERNS,
    MAX_ATTEMPTS,
    PACKAGE_RESET_PATTERNS,
    RETRYABLE_PATTERNS,
    WARNING_PATTERNS,
)


def _coerce_bool(value: Any, *, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return bool(value) if value is not None else default


def _coerce_float(value: Any, *, default: float) -> float:
    try:
        return float(value)
    except Exception:
        return default


def _coerce_positive_int(value: Any, *, default: int) -> int:
    try:
        parsed = int(value)
    except Exception:
        return default
    return parsed if parsed > 0 else default


def _coerce_str_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if str(item).strip())


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(RuntimeError):
    """Raised when `.swiftdock/config.yaml` cannot be loaded or validated."""


class MappingParseError(ValueError):
    """Raised when a volume, mount, env or image string is malformed."""


class CatalogError(RuntimeError):
    """Raised when a tag catalog file cannot be read or understood."""


class RangeSelectionError(RuntimeError):
    """Raised when tag range bounds cannot be resolved against the catalog."""


class ToolsVersionError(RuntimeError):
    """Raised when the package tools version cannot be determined."""


class ScratchVolumeError(RuntimeError):
    """Raised when a scratch volume cannot be created, resized or removed."""


class ImageNotFoundError(RuntimeError):
    """Raised when no candidate repository has a usable image for a tag."""

    def __init__(self, candidates: tuple[str, ...], tag: str, evidence: str = "") -> None:
        self.candidates = candidates
        self.tag = tag
        self.evidence = evidence
        names = ", ".join(candidates) or "<none>"
        message = f"no image found for tag '{tag}' in [{names}]"
        if evidence:
            message = f"{message}: {evidence}"
        super().__init__(message)


class ProcessTimedOut(RuntimeError):
    """Raised when a child process exceeds its timeout and has been killed."""

    def __init__(self, argv: list[str], timeout_seconds: float, output: str = "") -> None:
        self.argv = list(argv)
        self.timeout_seconds = timeout_seconds
        self.output = output
        command = argv[0] if argv else "<empty>"
        super().__init__(f"{command} timed out after {timeout_seconds:g}s")


class FatalDockerError(RuntimeError):
    """Raised when the container runtime itself is unusable."""

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(message)


# ---------------------------------------------------------------------------
# Process results and classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunOutcome:
    exit_code: int
    output: str
    duration_seconds: float = 0.0
    stderr: str = ""
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


CLASSIFICATION_CLEAN = "clean"
CLASSIFICATION_WARNING = "warning"
CLASSIFICATION_RETRYABLE = "retryable"
CLASSIFICATION_FATAL_DOCKER = "fatal_docker"
CLASSIFICATION_ERROR = "error"


@dataclass(frozen=True)
class Classification:
    """Result of scanning one process output against the pattern tables."""
    kind: str
    requires_reset: bool = False
    has_warnings: bool = False
    matched_pattern: str = ""

    @property
    def is_error(self) -> bool:
        return self.kind in {CLASSIFICATION_RETRYABLE, CLASSIFICATION_ERROR}

    @property
    def is_retryable(self) -> bool:
        return self.kind == CLASSIFICATION_RETRYABLE

    @property
    def is_fatal(self) -> bool:
        return self.kind == CLASSIFICATION_FATAL_DOCKER


@dataclass(frozen=True)
class ResponsePatterns:
    package_reset: tuple[str, ...] = PACKAGE_RESET_PATTERNS
    retryable: tuple[str, ...] = RETRYABLE_PATTERNS
    error: tuple[str, ...] = ERROR_PATTERNS
    warning: tuple[str, ...] = WARNING_PATTERNS
    fatal_docker: tuple[str, ...] = FATAL_DOCKER_PATTERNS


# ---------------------------------------------------------------------------
# Per-tag and per-run state
# ---------------------------------------------------------------------------

TAG_STATUS_SUCCESS = "success"
TAG_STATUS_WARNED = "warned"
TAG_STATUS_FAILED = "failed"
TAG_STATUS_SKIPPED = "skipped"


@dataclass
class RetryState:
    attempts: int = 0
    last_outcome: RunOutcome | None = None
    last_classification: Classification | None = None
    reset_applied: bool = False


@dataclass(frozen=True)
class RangeBounds:
    lower: int
    upper: int

    def __len__(self) -> int:
        return max(0, self.upper - self.lower)


@dataclass
class RangeStatistics:
    tested: int = 0
    passed: int = 0
    skipped: int = 0
    warned: int = 0
    errored: int = 0
    warned_tags: list[str] = field(default_factory=list)
    failed_tags: list[str] = field(default_factory=list)

    def record(self, status: str, tag_label: str) -> None:
        if status == TAG_STATUS_SKIPPED:
            self.skipped += 1
            return
        if status == TAG_STATUS_SUCCESS:
            self.passed += 1
        elif status == TAG_STATUS_WARNED:
            self.warned += 1
            self.warned_tags.append(tag_label)
        elif status == TAG_STATUS_FAILED:
            self.errored += 1
            self.failed_tags.append(tag_label)
        else:
            raise ValueError(f"unknown tag status '{status}'")

    @property
    def any_failed(self) -> bool:
        return self.errored > 0


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExecutionConfig:
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_attempts: int = MAX_ATTEMPTS
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    docker_run_flags: tuple[str, ...] = DEFAULT_DOCKER_RUN_FLAGS


@dataclass(frozen=True)
class RecoveryConfig:
    poll_seconds: float = DEFAULT_HEALTH_POLL_SECONDS
    settle_seconds: float = DEFAULT_RESTART_SETTLE_SECONDS
    launch_attempts: int = DEFAULT_LAUNCH_ATTEMPTS
    restart_command: tuple[str, ...] = ()
    max_wait_seconds: float = 0.0


@dataclass(frozen=True)
class ScratchConfig:
    enabled: bool = True
    backend: str = DEFAULT_SCRATCH_BACKEND
    min_bytes: int = DEFAULT_SCRATCH_MIN_BYTES
    size_factor: int = DEFAULT_SCRATCH_SIZE_FACTOR


@dataclass(frozen=True)
class CatalogConfig:
    path: str = ""


@dataclass(frozen=True)
class SwiftdockConfig:
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    scratch: ScratchConfig = field(default_factory=ScratchConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    response_patterns: ResponsePatterns = field(default_factory=ResponsePatterns)
