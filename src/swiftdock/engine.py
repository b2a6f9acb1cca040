"""Execute an action against one tag, or across a range of tags.

Per tag the engine resolves an image, runs the action, classifies the output
and retries transient failures:

    Start -> Resolving -> Running(n) -> Success | Warned | Failed
                                     -> RetryPending -> Running(n + 1)

A tag can also end ``Skipped`` when it shares a content digest with a tag
already run.  A fatal docker error stops the whole run.
"""

from __future__ import annotations

import re
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from swiftdock.actions import ActionDescriptor, render_message
from swiftdock.catalog import TagRecord
from swiftdock.classifier import classify_outcome
from swiftdock.constants import (
    BUILD_DIR_NAME,
    CALL_TYPE_RANGE,
    CALL_TYPE_SINGULAR,
    DEPENDENCIES_STATE_FILE,
    PLATFORM_BUILD_SUBDIR,
    TIMEOUT_MARKER,
)
from swiftdock.docker_cli import ContainerSettings, generate_container_name
from swiftdock.images import ImageCandidate, ImageReference, ResolvedImage, resolve_image
from swiftdock.mappings import MountMapping, VolumeMapping
from swiftdock.models import (
    CLASSIFICATION_WARNING,
    FatalDockerError,
    ImageNotFoundError,
    ProcessTimedOut,
    RangeBounds,
    RangeSelectionError,
    RangeStatistics,
    RecoveryConfig,
    RetryState,
    RunOutcome,
    ScratchVolumeError,
    SwiftdockConfig,
    TAG_STATUS_FAILED,
    TAG_STATUS_SKIPPED,
    TAG_STATUS_SUCCESS,
    TAG_STATUS_WARNED,
    ToolsVersionError,
)
from swiftdock.process import ProcessRunner, run_process
from swiftdock.recovery import recover_from_timeout
from swiftdock.scratch import (
    ScratchVolume,
    ScratchVolumeManager,
    scratch_volume_scope,
    trap_termination_signals,
)
from swiftdock.tag_range import select_tag_range
from swiftdock.tools_version import detect_min_tools_version
from swiftdock.utils import (
    _append_log,
    _compact_log_text,
    _erase_previous_line,
    apply_output_replacements,
    format_time_interval,
)

_LONG_OUTPUT_LINES = 5

RecoveryHook = Callable[[str, RecoveryConfig], None]


@dataclass(frozen=True)
class ExecutionRequest:
    action: ActionDescriptor
    project_dir: Path
    package_name: str
    candidates: tuple[ImageCandidate, ...]
    user_arguments: tuple[str, ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    mounts: tuple[MountMapping, ...] = ()
    volumes: tuple[VolumeMapping, ...] = ()
    build_dir: Path | None = None
    replacements: tuple[tuple[str, str], ...] = ()
    regex_replacements: tuple[tuple[re.Pattern[str], str], ...] = ()

    @property
    def workdir(self) -> str:
        return str(self.project_dir)


@dataclass(frozen=True)
class RangeRequest(ExecutionRequest):
    catalog: tuple[TagRecord, ...] = ()
    first_candidates: tuple[ImageCandidate, ...] = ()
    from_tag: str | None = None
    to_tag: str | None = None
    through_tag: str | None = None
    min_tools_version: str | None = None
    detect_tools_version: bool = True
    tools_version_image: ImageReference | None = None
    build_all_dir: Path | None = None
    clean_build_dir: bool = False
    skip_identical_hashes: bool = False
    stop_on_first_error: bool = False


@dataclass
class TagResult:
    status: str
    retry: RetryState = field(default_factory=RetryState)
    summary_line: str = ""


class _ExecutionBase:
    def __init__(
        self,
        request: ExecutionRequest,
        config: SwiftdockConfig,
        *,
        docker_path: str,
        runner: ProcessRunner = run_process,
        sleep: Callable[[float], None] = time.sleep,
        recover: RecoveryHook | None = None,
    ) -> None:
        self.request = request
        self.config = config
        self.docker_path = docker_path
        self.runner = runner
        self.sleep = sleep
        self._recover = recover or self._default_recover

    # -- helpers -----------------------------------------------------------

    def _default_recover(self, docker_path: str, config: RecoveryConfig) -> None:
        recover_from_timeout(docker_path, config, runner=self.runner, sleep=self.sleep)

    def _log(self, message: str) -> None:
        _append_log(self.request.project_dir, message)

    def _settings(self, volumes: list[VolumeMapping]) -> ContainerSettings:
        request = self.request
        return ContainerSettings(
            docker_path=self.docker_path,
            package_name=request.package_name,
            workdir=request.workdir,
            docker_flags=self.config.execution.docker_run_flags,
            env=request.env,
            mounts=request.mounts,
            volumes=tuple(volumes),
        )

    def _project_volumes(self) -> list[VolumeMapping]:
        volumes = list(self.request.volumes)
        project = self.request.workdir
        if not any(project.startswith(volume.physical_path) for volume in volumes):
            volumes.append(VolumeMapping(project, project))
        return volumes

    def _virtual_build_dir(self) -> str:
        return f"{self.request.workdir.rstrip('/')}/{BUILD_DIR_NAME}"

    def _render_output(self, output: str) -> str:
        rendered = apply_output_replacements(
            output,
            self.request.replacements,
            self.request.regex_replacements,
        )
        return rendered.strip()

    def _emit_output(self, output: str) -> str:
        rendered = self._render_output(output)
        if rendered:
            print(rendered)
        return rendered

    def _run_hidden(self, resolved: ResolvedImage, settings: ContainerSettings, *,
                    info: tuple[str | None, ...], command: str, arguments: list[str]) -> RunOutcome:
        argv = settings.run_command(
            resolved.image,
            container_name=generate_container_name(
                resolved.candidate.app,
                resolved.tag,
                self.request.package_name,
                sub_command=self.request.action.sub_command,
                info=info,
            ),
            command=command,
            arguments=arguments,
        )
        try:
            return self.runner(
                argv,
                combine_output=True,
                timeout_seconds=self.config.execution.timeout_seconds,
            )
        except ProcessTimedOut as exc:
            return RunOutcome(exit_code=-1, output=f"{TIMEOUT_MARKER}: {exc}", timed_out=True)

    def _reset_package(self, resolved: ResolvedImage, settings: ContainerSettings, attempt: int) -> None:
        app = resolved.candidate.app
        outcome = self._run_hidden(
            resolved,
            settings,
            info=(f"retry-{attempt}", "clean-update"),
            command="bash",
            arguments=["-c", f"{app} package clean && {app} package update"],
        )
        self._log(
            f"package reset image={resolved.image} attempt={attempt} exit_code={outcome.exit_code}"
        )

    # -- attempt loop ------------------------------------------------------

    def _attempt(self, resolved: ResolvedImage, settings: ContainerSettings,
                 arguments: list[str], attempt: int) -> RunOutcome:
        argv = settings.run_command(
            resolved.image,
            container_name=generate_container_name(
                resolved.candidate.app,
                resolved.tag,
                self.request.package_name,
                sub_command=self.request.action.sub_command,
                info=(f"retry-{attempt}" if attempt else None,),
            ),
            command=resolved.candidate.app,
            arguments=arguments,
        )
        started = time.monotonic()
        try:
            return self.runner(
                argv,
                combine_output=True,
                timeout_seconds=self.config.execution.timeout_seconds,
            )
        except ProcessTimedOut as exc:
            duration = time.monotonic() - started
            self._log(f"attempt timed out image={resolved.image} attempt={attempt}: {exc}")
            output = f"{TIMEOUT_MARKER}... Trying Restart."
            if exc.output:
                output = f"{output}\n{exc.output}"
            self._recover(self.docker_path, self.config.recovery)
            return RunOutcome(
                exit_code=-1, output=output, duration_seconds=duration, timed_out=True
            )

    def _run_attempts(
        self,
        resolved: ResolvedImage,
        settings: ContainerSettings,
        *,
        call_type: str,
        label: str,
        prefix: str = "",
        show_output_per_attempt: bool = True,
    ) -> TagResult:
        """Run the action until it succeeds, warns, or exhausts its attempts.

        Raises ``FatalDockerError`` as soon as the runtime itself reports an error.
        """
        action = self.request.action
        execution = self.config.execution
        arguments = action.container_arguments(
            call_type, str(resolved.candidate), resolved.tag, self.request.user_arguments
        )
        state = RetryState()
        progress_visible = False

        while True:
            if state.attempts == 0:
                print(prefix + render_message(action.primary_message, label))
            else:
                if progress_visible:
                    _erase_previous_line()
                print(prefix + render_message(action.retry_message, label))
            progress_visible = True

            outcome = self._attempt(resolved, settings, arguments, state.attempts)
            classification = classify_outcome(outcome, self.config.response_patterns)
            state.last_outcome = outcome
            state.last_classification = classification
            duration = format_time_interval(outcome.duration_seconds)
            self._log(
                f"attempt image={resolved.image} attempt={state.attempts + 1} "
                f"exit_code={outcome.exit_code} classification={classification.kind} "
                f"pattern={classification.matched_pattern!r}"
            )

            if classification.is_fatal:
                _erase_previous_line()
                raise FatalDockerError(
                    f"docker reported a fatal error while running {resolved.image}",
                    output=outcome.output,
                )

            if classification.is_error:
                state.attempts += 1
                _erase_previous_line()
                line = prefix + render_message(action.error_message, label) + f".  Duration: {duration}"
                print(line)
                progress_visible = False
                if show_output_per_attempt:
                    self._emit_output(outcome.output)
                if state.attempts >= execution.max_attempts or not classification.is_retryable:
                    self._log(
                        f"tag failed image={resolved.image} attempts={state.attempts} "
                        f"output={_compact_log_text(outcome.output)!r}"
                    )
                    return TagResult(status=TAG_STATUS_FAILED, retry=state, summary_line=line)
                if classification.requires_reset:
                    self._reset_package(resolved, settings, state.attempts)
                    state.reset_applied = True
                else:
                    self.sleep(execution.retry_delay_seconds)
                continue

            _erase_previous_line()
            if classification.kind == CLASSIFICATION_WARNING:
                line = prefix + render_message(action.warning_message, label) + f".  Duration: {duration}"
                print(line)
                if show_output_per_attempt:
                    self._emit_output(outcome.output)
                return TagResult(status=TAG_STATUS_WARNED, retry=state, summary_line=line)

            line = prefix + render_message(action.success_message, label) + f".  Duration: {duration}"
            print(line)
            return TagResult(status=TAG_STATUS_SUCCESS, retry=state, summary_line=line)


# ---------------------------------------------------------------------------
# Single tag
# ---------------------------------------------------------------------------


class _OneTagExecution(_ExecutionBase):
    def _one_tag_volumes(self) -> list[VolumeMapping] | None:
        build_dir = self.request.build_dir
        volumes = self._project_volumes()
        if build_dir is not None:
            try:
                build_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                print(f"Failed to create Build Dir '{build_dir}': {exc}")
                return None
            volumes.append(VolumeMapping(str(build_dir), self._virtual_build_dir()))
        return volumes

    def _resolve_one(self, tag: str) -> ResolvedImage | None:
        candidates = self.request.candidates
        try:
            return resolve_image(candidates, tag, docker_path=self.docker_path, runner=self.runner)
        except ImageNotFoundError as exc:
            names = ",".join(f"'{candidate.repository}'" for candidate in candidates)
            print(f"Unable to find a usable repository name in {names} with tag '{tag}'")
            if exc.evidence:
                print(exc.evidence)
            self._log(f"image not found tag={tag}: {exc}")
            return None


class SingleTagExecution(_OneTagExecution):
    def run(self, tag: str) -> int:
        request = self.request
        volumes = self._one_tag_volumes()
        if volumes is None:
            return 1
        resolved = self._resolve_one(tag)
        if resolved is None:
            return 1

        self._log(f"single run start action={request.action.name} image={resolved.image}")
        settings = self._settings(volumes)
        label = f"{resolved.candidate.repository}:{tag}"
        try:
            result = self._run_attempts(
                resolved,
                settings,
                call_type=CALL_TYPE_SINGULAR,
                label=label,
                show_output_per_attempt=False,
            )
        except FatalDockerError as exc:
            print(exc.output)
            self._log(f"single run fatal docker error image={resolved.image}")
            return 1

        last = result.retry.last_outcome
        if last is not None:
            rendered = self._emit_output(last.output)
            if rendered.count("\n") > _LONG_OUTPUT_LINES:
                print(result.summary_line)
        self._log(f"single run finished image={resolved.image} status={result.status}")
        return 1 if result.status == TAG_STATUS_FAILED else 0


def run_single_tag(
    request: ExecutionRequest,
    tag: str,
    config: SwiftdockConfig,
    *,
    docker_path: str,
    runner: ProcessRunner = run_process,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    return SingleTagExecution(
        request, config, docker_path=docker_path, runner=runner, sleep=sleep
    ).run(tag)


class JoinContainer(_OneTagExecution):
    """Starts a detached, interactive ``bash`` container over the package."""

    def run(self, tag: str) -> int:
        request = self.request
        volumes = self._one_tag_volumes()
        if volumes is None:
            return 1
        resolved = self._resolve_one(tag)
        if resolved is None:
            return 1

        argv = self._settings(volumes).run_command(
            resolved.image,
            container_name=generate_container_name("bash", tag, request.package_name),
            command="bash",
            arguments=request.user_arguments,
            attach_input=True,
            detach=True,
        )
        self._log(f"join start image={resolved.image}")
        try:
            outcome = self.runner(argv, inherit_stdin=True, capture_output=False)
        except OSError as exc:
            print(f"Fatal Error trying container '{resolved.image}'")
            print(exc)
            return 1
        self._log(f"join finished image={resolved.image} exit_code={outcome.exit_code}")
        return outcome.exit_code


def run_join(
    request: ExecutionRequest,
    tag: str,
    config: SwiftdockConfig,
    *,
    docker_path: str,
    runner: ProcessRunner = run_process,
) -> int:
    return JoinContainer(request, config, docker_path=docker_path, runner=runner).run(tag)


# ---------------------------------------------------------------------------
# Range
# ---------------------------------------------------------------------------


class RangeExecutionEngine(_ExecutionBase):
    """Runs one action over ``[lower, upper)`` of a sorted tag catalog."""

    def __init__(
        self,
        request: RangeRequest,
        config: SwiftdockConfig,
        *,
        docker_path: str,
        scratch: ScratchVolumeManager | None = None,
        runner: ProcessRunner = run_process,
        sleep: Callable[[float], None] = time.sleep,
        recover: RecoveryHook | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            request, config, docker_path=docker_path, runner=runner, sleep=sleep, recover=recover
        )
        self.range_request = request
        self.scratch = scratch or ScratchVolumeManager(None, config.scratch)
        self.clock = clock
        self.statistics = RangeStatistics()
        self.aborted = False
        self._growth_failed = False

    # -- setup -------------------------------------------------------------

    def _min_tools_version(self) -> str | None:
        request = self.range_request
        if request.min_tools_version:
            return request.min_tools_version
        if not request.detect_tools_version:
            return None
        image = request.tools_version_image or ImageReference.parse("swift")
        print("Getting Tools-Version of package")
        version = detect_min_tools_version(
            request.project_dir,
            self._settings(self._project_volumes()),
            image=image,
            runner=self.runner,
        )
        print(f"Found base Tools-Version: '{version}'")
        return version

    def select_bounds(self) -> RangeBounds:
        request = self.range_request
        if request.build_dir is not None and request.build_all_dir is not None:
            raise RangeSelectionError("--build-dir and --build-all-dir can not be used together")
        if request.to_tag and request.through_tag:
            raise RangeSelectionError("--to and --through can not be used together")
        catalog = list(request.catalog)
        if not catalog:
            raise RangeSelectionError("No tags available with the given parameters")
        return select_tag_range(
            catalog,
            from_tag=request.from_tag,
            to_tag=request.to_tag,
            through_tag=request.through_tag,
            min_tools_version=self._min_tools_version(),
        )

    def _prepare_build_dirs(self) -> None:
        request = self.range_request
        for path in (request.build_dir, request.build_all_dir):
            if path is not None:
                path.mkdir(parents=True, exist_ok=True)

    def _volume_name(self) -> str:
        sub = self.request.action.sub_command or "execute"
        return f"{self.request.package_name}-{sub}-range"

    # -- per tag -----------------------------------------------------------

    def _working_build_dir(self, tag: str, volume: ScratchVolume | None) -> Path:
        request = self.range_request
        if request.build_all_dir is not None:
            return request.build_all_dir / tag
        if request.build_dir is not None:
            return request.build_dir
        root = volume.mount_path if volume is not None else request.project_dir
        return root / BUILD_DIR_NAME

    def _tag_volumes(self, tag: str, volume: ScratchVolume | None) -> list[VolumeMapping]:
        request = self.range_request
        if volume is not None:
            volumes = list(request.volumes)
            volumes.append(VolumeMapping(str(volume.mount_path), request.workdir))
        else:
            volumes = self._project_volumes()
        if request.build_all_dir is not None:
            tag_dir = request.build_all_dir / tag
            tag_dir.mkdir(parents=True, exist_ok=True)
            volumes.append(VolumeMapping(str(tag_dir), self._virtual_build_dir()))
        elif request.build_dir is not None:
            volumes.append(VolumeMapping(str(request.build_dir), self._virtual_build_dir()))
        return volumes

    def _display_label(self, repository: str, tag: TagRecord, in_range: list[TagRecord]) -> str:
        if not self.range_request.skip_identical_hashes:
            return f"{repository}:{tag.name}"
        sharing = [other.name for other in in_range if other.shares_digest(tag) or other is tag]
        return f"{repository}:({', '.join(sharing)})"

    def _grow_scratch(self, volume: ScratchVolume, prefix: str = "") -> bool:
        if self._growth_failed:
            return False
        try:
            return self.scratch.grow_if_low(volume)
        except (ScratchVolumeError, OSError) as exc:
            self._growth_failed = True
            print(f"{prefix}Failed to resize scratch volume")
            print(exc)
            self._log(f"scratch volume resize failed device={volume.device}: {exc}")
            return False

    def _download_dependencies(self, resolved: ResolvedImage, settings: ContainerSettings,
                               volume: ScratchVolume | None) -> bool:
        """Hidden ``package update``; returns True when the volume grew for the retry."""
        print("Downloading any dependencies")
        app = resolved.candidate.app
        outcome = self._run_hidden(
            resolved, settings, info=("update",), command=app, arguments=["package", "update"]
        )
        self._log(f"dependency update image={resolved.image} exit_code={outcome.exit_code}")
        if outcome.exit_code == 0 or volume is None or not self._grow_scratch(volume):
            return False
        print("Scratch volume too small.  Resizing...")
        settings = self._settings(self._tag_volumes(resolved.tag, volume))
        outcome = self._run_hidden(
            resolved, settings, info=("update",), command=app, arguments=["package", "update"]
        )
        self._log(f"dependency update retry image={resolved.image} exit_code={outcome.exit_code}")
        return True

    def _run_tag(
        self,
        index: int,
        bounds: RangeBounds,
        prefix: str,
        tag: TagRecord,
        in_range: list[TagRecord],
        volume: ScratchVolume | None,
    ) -> str:
        request = self.range_request

        if request.clean_build_dir and request.build_all_dir is None:
            platform_dir = self._working_build_dir(tag.name, volume) / PLATFORM_BUILD_SUBDIR
            shutil.rmtree(platform_dir, ignore_errors=True)

        if volume is not None and self._grow_scratch(volume, prefix):
            print(f"{prefix}Re-sizing scratch volume")

        # Resizing may move the mount path.
        working_build_dir = self._working_build_dir(tag.name, volume)
        volumes = self._tag_volumes(tag.name, volume)

        candidates = request.candidates
        if index == bounds.lower and request.first_candidates:
            candidates = request.first_candidates
        resolved = resolve_image(
            candidates,
            tag.name,
            docker_path=self.docker_path,
            runner=self.runner,
            announce=lambda message: print(prefix + message),
        )
        self._log(f"image resolved tag={tag.name} image={resolved.image} pulled={resolved.pulled}")

        state_file = working_build_dir / DEPENDENCIES_STATE_FILE
        if state_file.exists():
            state_file.unlink()

        settings = self._settings(volumes)
        if index == bounds.lower and self._download_dependencies(resolved, settings, volume):
            settings = self._settings(self._tag_volumes(tag.name, volume))

        label = self._display_label(str(resolved.candidate.repository), tag, in_range)
        result = self._run_attempts(
            resolved,
            settings,
            call_type=CALL_TYPE_RANGE,
            label=label,
            prefix=prefix,
        )
        return result.status

    # -- driver ------------------------------------------------------------

    def _loop(self, bounds: RangeBounds, volume: ScratchVolume | None) -> None:
        request = self.range_request
        catalog = list(request.catalog)
        in_range = catalog[bounds.lower:bounds.upper]
        total = len(bounds)
        width = len(str(total))
        used: list[TagRecord] = []
        print(f"Expected Test Count: {total}")

        for index in range(bounds.lower, bounds.upper):
            tag = catalog[index]
            prefix = f"[{str(index - bounds.lower + 1).rjust(width)}/{total}]: "

            if request.skip_identical_hashes:
                prior = next((seen for seen in used if seen.shares_digest(tag)), None)
                if prior is not None:
                    self.statistics.record(TAG_STATUS_SKIPPED, tag.name)
                    print(f"{prefix}Skipping '{tag.name}' because it matches '{prior.name}'")
                    self._log(f"tag skipped tag={tag.name} matches={prior.name}")
                    continue
            used.append(tag)

            self.statistics.tested += 1
            try:
                status = self._run_tag(index, bounds, prefix, tag, in_range, volume)
            except FatalDockerError as exc:
                if exc.output:
                    print(exc.output)
                else:
                    print(exc)
                self.statistics.record(TAG_STATUS_FAILED, tag.name)
                self.aborted = True
                self._log(f"fatal docker error tag={tag.name}: {_compact_log_text(exc.output or str(exc))}")
                return
            except ImageNotFoundError as exc:
                names = ",".join(f"'{name}'" for name in exc.candidates)
                print(f"{prefix}Unable to find a usable repository name in {names} with tag '{tag.name}'")
                if exc.evidence:
                    print(exc.evidence)
                self.statistics.record(TAG_STATUS_FAILED, tag.name)
                self.aborted = True
                self._log(f"image not found tag={tag.name}: {_compact_log_text(str(exc))}")
                return
            except (ScratchVolumeError, OSError) as exc:
                print(f"{prefix}Fatal Error trying container '{tag.name}'")
                print(exc)
                self._log(f"tag failed tag={tag.name}: {_compact_log_text(str(exc))}")
                status = TAG_STATUS_FAILED
            self.statistics.record(status, tag.name)
            if status == TAG_STATUS_FAILED and request.stop_on_first_error:
                self._log(f"stopping after first error tag={tag.name}")
                return

    def print_summary(self, elapsed_seconds: float) -> None:
        stats = self.statistics
        print("")
        print(f"Total Duration: {format_time_interval(elapsed_seconds)}")
        print("")
        print(f"Stats for '{self.request.package_name}':")
        print(f"Total Tags Tested: {stats.tested}")
        print(f"\tPassed: {stats.passed}")
        if stats.skipped > 0:
            print(f"Skipped: {stats.skipped}")
        print(f"\tWarnings: {stats.warned}")
        print(f"\tErrors: {stats.errored}")
        if stats.warned_tags or stats.failed_tags:
            print("")
            print("List:")
            if stats.warned_tags:
                print("\tWarnings:")
                for name in stats.warned_tags:
                    print(f"\t\t{name}")
            if stats.failed_tags:
                print("\tErrors:")
                for name in stats.failed_tags:
                    print(f"\t\t{name}")

    def run(self) -> int:
        request = self.range_request
        try:
            bounds = self.select_bounds()
            self._prepare_build_dirs()
        except (RangeSelectionError, ToolsVersionError) as exc:
            print(exc)
            self._log(f"range setup failed: {exc}")
            return 1
        except OSError as exc:
            print(f"Failed to create build directory: {exc}")
            return 1

        self._log(
            f"range start action={request.action.name} package={request.package_name} "
            f"tags={request.catalog[bounds.lower].name}..{request.catalog[bounds.upper - 1].name}"
        )
        started = self.clock()
        with trap_termination_signals():
            with scratch_volume_scope(
                self.scratch, request.project_dir, volume_name=self._volume_name()
            ) as volume:
                try:
                    self._loop(bounds, volume)
                finally:
                    self.print_summary(self.clock() - started)

        stats = self.statistics
        self._log(
            f"range finished tested={stats.tested} passed={stats.passed} skipped={stats.skipped} "
            f"warned={stats.warned} errored={stats.errored} aborted={self.aborted}"
        )
        return 1 if self.aborted or stats.any_failed else 0
