"""Default values, docker flags and output pattern tables for swiftdock.

`defaults/response_patterns.yaml` is the canonical source of the output
classification tables.  The ``_FALLBACK_*`` tuples are used only when the
bundled file cannot be read.
"""

from __future__ import annotations

from pathlib import Path

import yaml

PACKAGE_DEFAULTS_DIR = Path(__file__).resolve().parent / "defaults"
BUNDLED_PATTERNS_PATH = PACKAGE_DEFAULTS_DIR / "response_patterns.yaml"

CONFIG_DIR_NAME = ".swiftdock"
CONFIG_FILE_NAME = "config.yaml"
LOG_RELATIVE_PATH = Path(CONFIG_DIR_NAME) / "logs" / "swiftdock.log"

# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT_SECONDS = 300.0
MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 5.0
DEFAULT_DOCKER_RUN_FLAGS = (
    "--cap-add=SYS_PTRACE",
    "--security-opt",
    "seccomp=unconfined",
)
DEFAULT_DOCKER_EXECUTABLE = "/usr/local/bin/docker"
DOCKER_PATH_ENV = "DOCKER_PATH"
TIMEOUT_MARKER = "Docker Timed Out"
TAG_PLACEHOLDER = "%tag%"
CONTAINER_NAME_SUFFIX_LENGTH = 8
TOOLS_VERSION_IMAGE = "swift:latest:swift"

CALL_TYPE_SINGULAR = "singular"
CALL_TYPE_RANGE = "range"

# ---------------------------------------------------------------------------
# Runtime recovery
# ---------------------------------------------------------------------------

DEFAULT_HEALTH_POLL_SECONDS = 10.0
DEFAULT_RESTART_SETTLE_SECONDS = 10.0
DEFAULT_LAUNCH_ATTEMPTS = 3
DOCKER_APP_NAME = "Docker.app"
DOCKER_APP_DIRECTORIES = (
    Path.home() / "Applications",
    Path("/Applications"),
)

# ---------------------------------------------------------------------------
# Scratch volume
# ---------------------------------------------------------------------------

SCRATCH_BACKENDS = ("auto", "hdiutil", "tmpfs", "none")
DEFAULT_SCRATCH_BACKEND = "auto"
DEFAULT_SCRATCH_MIN_BYTES = 3 * 1024 * 1024
DEFAULT_SCRATCH_SIZE_FACTOR = 50
SCRATCH_GROW_THRESHOLD = 0.5
HDIUTIL_BLOCK_SIZE = 512
HDIUTIL_MIN_BYTES = 512 * 1024
SCRATCH_EXCLUDED_NAMES = frozenset(
    {".git", ".swiftpm", ".DS_Store", ".build", CONFIG_DIR_NAME}
)
SCRATCH_EXCLUDED_SUFFIXES = (".xcodeproj",)

# ---------------------------------------------------------------------------
# Package layout
# ---------------------------------------------------------------------------

BUILD_DIR_NAME = ".build"
PLATFORM_BUILD_SUBDIR = "x86_64-unknown-linux"
DEPENDENCIES_STATE_FILE = "dependencies-state.json"
PACKAGE_MANIFEST_PREFIX = "Package@swift-"

# Best effort: SIGKILL cannot be caught and is skipped at install time.
TRAPPED_SIGNAL_NAMES = (
    "SIGHUP",
    "SIGINT",
    "SIGILL",
    "SIGTRAP",
    "SIGABRT",
    "SIGKILL",
    "SIGALRM",
    "SIGTERM",
)

# ---------------------------------------------------------------------------
# Output classification tables
# ---------------------------------------------------------------------------

_FALLBACK_PACKAGE_RESET_PATTERNS = (
    "failed to load the cached build description",
    "could not build C module ",
    "Error: Unable to parse dependencie",
)
_FALLBACK_RETRYABLE_PATTERNS = (
    "error: unable to execute command: Killed",
    " cannot be imported by the Swift ",
    "unable to upgrade to tcp, received 500",
    "Error response from daemon: dial unix",
    TIMEOUT_MARKER,
)
_FALLBACK_ERROR_PATTERNS = ("error: ", "Error: ")
_FALLBACK_WARNING_PATTERNS = ("warning:", "Warning:")
_FALLBACK_FATAL_DOCKER_PATTERNS = ("docker: Error response from daemon:",)

PATTERN_TABLE_NAMES = (
    "package_reset",
    "retryable",
    "error",
    "warning",
    "fatal_docker",
)


def _load_bundled_patterns() -> dict:
    try:
        loaded = yaml.safe_load(BUNDLED_PATTERNS_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return loaded if isinstance(loaded, dict) else {}


def _bundled_table(name: str, fallback: tuple[str, ...]) -> tuple[str, ...]:
    raw = _BUNDLED_PATTERNS.get(name)
    if not isinstance(raw, list):
        return fallback
    table = tuple(str(item) for item in raw if str(item))
    return table or fallback


_BUNDLED_PATTERNS = _load_bundled_patterns()

PACKAGE_RESET_PATTERNS = _bundled_table("package_reset", _FALLBACK_PACKAGE_RESET_PATTERNS)
RETRYABLE_PATTERNS = _bundled_table("retryable", _FALLBACK_RETRYABLE_PATTERNS)
ERROR_PATTERNS = _bundled_table("error", _FALLBACK_ERROR_PATTERNS)
WARNING_PATTERNS = _bundled_table("warning", _FALLBACK_WARNING_PATTERNS)
FATAL_DOCKER_PATTERNS = _bundled_table("fatal_docker", _FALLBACK_FATAL_DOCKER_PATTERNS)
