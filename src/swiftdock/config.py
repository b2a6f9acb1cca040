from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from swiftdock.constants import (
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_DOCKER_RUN_FLAGS,
    DEFAULT_HEALTH_POLL_SECONDS,
    DEFAULT_LAUNCH_ATTEMPTS,
    DEFAULT_RESTART_SETTLE_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_SCRATCH_BACKEND,
    DEFAULT_SCRATCH_MIN_BYTES,
    DEFAULT_SCRATCH_SIZE_FACTOR,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_ATTEMPTS,
    PATTERN_TABLE_NAMES,
    SCRATCH_BACKENDS,
)
from swiftdock.models import (
    CatalogConfig,
    ConfigError,
    ExecutionConfig,
    RecoveryConfig,
    ResponsePatterns,
    ScratchConfig,
    SwiftdockConfig,
    _coerce_bool,
    _coerce_float,
    _coerce_positive_int,
    _coerce_str_tuple,
)


def _config_path(project_dir: Path) -> Path:
    return project_dir / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def _load_policy(project_dir: Path) -> dict[str, Any]:
    policy_path = _config_path(project_dir)
    if not policy_path.exists():
        return {}
    try:
        loaded = yaml.safe_load(policy_path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"could not parse {policy_path}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{policy_path} must contain a mapping")
    return loaded


def _section(policy: dict[str, Any], name: str) -> dict[str, Any]:
    section = policy.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    return section


def _load_execution_config(policy: dict[str, Any]) -> ExecutionConfig:
    section = _section(policy, "execution")
    timeout = _coerce_float(section.get("timeout_seconds"), default=DEFAULT_TIMEOUT_SECONDS)
    max_attempts = _coerce_positive_int(section.get("max_attempts"), default=MAX_ATTEMPTS)
    retry_delay = _coerce_float(
        section.get("retry_delay_seconds"), default=DEFAULT_RETRY_DELAY_SECONDS
    )
    flags = section.get("docker_run_flags")
    return ExecutionConfig(
        timeout_seconds=max(0.0, timeout),
        max_attempts=min(max_attempts, MAX_ATTEMPTS),
        retry_delay_seconds=max(0.0, retry_delay),
        docker_run_flags=DEFAULT_DOCKER_RUN_FLAGS if flags is None else _coerce_str_tuple(flags),
    )


def _load_recovery_config(policy: dict[str, Any]) -> RecoveryConfig:
    section = _section(policy, "recovery")
    return RecoveryConfig(
        poll_seconds=max(
            0.0, _coerce_float(section.get("poll_seconds"), default=DEFAULT_HEALTH_POLL_SECONDS)
        ),
        settle_seconds=max(
            0.0,
            _coerce_float(section.get("settle_seconds"), default=DEFAULT_RESTART_SETTLE_SECONDS),
        ),
        launch_attempts=_coerce_positive_int(
            section.get("launch_attempts"), default=DEFAULT_LAUNCH_ATTEMPTS
        ),
        restart_command=_coerce_str_tuple(section.get("restart_command")),
        max_wait_seconds=max(0.0, _coerce_float(section.get("max_wait_seconds"), default=0.0)),
    )


def _load_scratch_config(policy: dict[str, Any]) -> ScratchConfig:
    section = _section(policy, "scratch")
    backend = str(section.get("backend", DEFAULT_SCRATCH_BACKEND) or DEFAULT_SCRATCH_BACKEND)
    backend = backend.strip().lower()
    if backend not in SCRATCH_BACKENDS:
        raise ConfigError(
            f"scratch.backend must be one of {', '.join(SCRATCH_BACKENDS)}; got '{backend}'"
        )
    return ScratchConfig(
        enabled=_coerce_bool(section.get("enabled"), default=True),
        backend=backend,
        min_bytes=_coerce_positive_int(section.get("min_bytes"), default=DEFAULT_SCRATCH_MIN_BYTES),
        size_factor=_coerce_positive_int(
            section.get("size_factor"), default=DEFAULT_SCRATCH_SIZE_FACTOR
        ),
    )


def _load_catalog_config(policy: dict[str, Any]) -> CatalogConfig:
    section = _section(policy, "catalog")
    return CatalogConfig(path=str(section.get("path", "") or "").strip())


def _load_response_patterns(policy: dict[str, Any]) -> ResponsePatterns:
    section = _section(policy, "response_patterns")
    defaults = ResponsePatterns()
    if not section:
        return defaults
    replace_defaults = _coerce_bool(section.get("replace_defaults"), default=False)
    tables: dict[str, tuple[str, ...]] = {}
    for name in PATTERN_TABLE_NAMES:
        raw = section.get(name)
        if raw is not None and not isinstance(raw, list):
            raise ConfigError(f"response_patterns.{name} must be a list of strings")
        extra = tuple(str(item) for item in raw or [] if str(item))
        base = () if replace_defaults and raw is not None else getattr(defaults, name)
        tables[name] = base + tuple(item for item in extra if item not in base)
    return ResponsePatterns(**tables)


def load_config(project_dir: Path) -> SwiftdockConfig:
    policy = _load_policy(project_dir)
    return SwiftdockConfig(
        execution=_load_execution_config(policy),
        recovery=_load_recovery_config(policy),
        scratch=_load_scratch_config(policy),
        catalog=_load_catalog_config(policy),
        response_patterns=_load_response_patterns(policy),
    )
