from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path
from typing import Any

from swiftdock import __version__
from swiftdock.actions import ACTIONS, EXECUTE, RANGE_ACTIONS, rewrite_execute_package
from swiftdock.catalog import TagRecord, filter_tags, load_tag_catalog
from swiftdock.config import load_config
from swiftdock.constants import TOOLS_VERSION_IMAGE
from swiftdock.docker_cli import locate_docker
from swiftdock.engine import (
    ExecutionRequest,
    RangeExecutionEngine,
    RangeRequest,
    run_join,
    run_single_tag,
)
from swiftdock.images import DEFAULT_REPOSITORY, DEFAULT_TAG, ImageCandidate, ImageReference
from swiftdock.mappings import MountMapping, VolumeMapping, parse_env_assignments
from swiftdock.models import CatalogError, ConfigError, MappingParseError, SwiftdockConfig
from swiftdock.scratch import ScratchVolumeManager, select_scratch_backend
from swiftdock.utils import _append_log


def _project_dir(args: argparse.Namespace) -> Path:
    project_dir = Path(args.package_path).expanduser().resolve()
    if not project_dir.is_dir():
        raise ConfigError(f"package path '{project_dir}' is not a directory")
    return project_dir


def _user_arguments(args: argparse.Namespace) -> list[str]:
    arguments = list(getattr(args, "arguments", None) or [])
    if arguments and arguments[0] == "--":
        arguments = arguments[1:]
    return arguments


def _compile_patterns(values: list[str] | None, option: str) -> list[re.Pattern[str]]:
    compiled: list[re.Pattern[str]] = []
    for value in values or []:
        try:
            compiled.append(re.compile(value))
        except re.error as exc:
            raise ConfigError(f"{option}: invalid regular expression '{value}': {exc}") from exc
    return compiled


def _parse_candidates(value: str, option: str) -> tuple[ImageCandidate, ...]:
    candidates = ImageCandidate.parse_list(value)
    if not candidates:
        raise ConfigError(f"{option} must name at least one repository")
    return candidates


def _request_fields(
    args: argparse.Namespace,
    project_dir: Path,
    arguments: list[str],
) -> dict[str, Any]:
    regex_replacements = [
        (pattern, replacement)
        for pattern, (_, replacement) in zip(
            _compile_patterns(
                [find for find, _ in args.output_replace_x or []], "--output-replace-x"
            ),
            args.output_replace_x or [],
        )
    ]
    build_dir = Path(args.build_dir).expanduser().resolve() if args.build_dir else None
    return {
        "project_dir": project_dir,
        "package_name": project_dir.name,
        "candidates": _parse_candidates(args.repo_order, "--repo-order"),
        "user_arguments": tuple(arguments),
        "env": tuple(parse_env_assignments(args.env or []).items()),
        "mounts": tuple(MountMapping.parse(value) for value in args.mount or []),
        "volumes": tuple(VolumeMapping.parse(value) for value in args.volume or []),
        "build_dir": build_dir,
        "replacements": tuple((find, replace) for find, replace in args.output_replace or []),
        "regex_replacements": tuple(regex_replacements),
    }


def _load_filtered_catalog(
    args: argparse.Namespace,
    project_dir: Path,
    config: SwiftdockConfig,
) -> list[TagRecord]:
    raw_path = args.tags_file or config.catalog.path
    if not raw_path:
        raise CatalogError("no tag catalog given; pass --tags-file or set catalog.path in config")
    path = Path(raw_path).expanduser()
    if not path.is_absolute():
        path = (Path.cwd() / path) if args.tags_file else (project_dir / path)
    catalog = load_tag_catalog(path)
    return filter_tags(
        catalog,
        include=args.tag_filter or [],
        include_patterns=_compile_patterns(args.tag_filter_x, "--tag-filter-x"),
        exclude=args.tag_exclude or [],
        exclude_patterns=_compile_patterns(args.tag_exclude_x, "--tag-exclude-x"),
        similar_to=args.similar_to,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _cmd_single(args: argparse.Namespace) -> int:
    try:
        project_dir = _project_dir(args)
        config = load_config(project_dir)
        docker_path = locate_docker(args.docker_path)
        action, arguments = rewrite_execute_package(args.action_name, _user_arguments(args))
        request = ExecutionRequest(action=action, **_request_fields(args, project_dir, arguments))
    except (ConfigError, MappingParseError, ValueError) as exc:
        print(f"swiftdock {args.command}: ERROR {exc}", file=sys.stderr)
        return 1
    _append_log(project_dir, f"command {args.command} tag={args.tag} args={arguments}")
    return run_single_tag(request, args.tag, config, docker_path=docker_path)


def _cmd_join(args: argparse.Namespace) -> int:
    try:
        project_dir = _project_dir(args)
        config = load_config(project_dir)
        docker_path = locate_docker(args.docker_path)
        arguments = _user_arguments(args)
        request = ExecutionRequest(action=EXECUTE, **_request_fields(args, project_dir, arguments))
    except (ConfigError, MappingParseError, ValueError) as exc:
        print(f"swiftdock join: ERROR {exc}", file=sys.stderr)
        return 1
    _append_log(project_dir, f"command join tag={args.tag} args={arguments}")
    return run_join(request, args.tag, config, docker_path=docker_path)


def _cmd_range(args: argparse.Namespace) -> int:
    try:
        project_dir = _project_dir(args)
        config = load_config(project_dir)
        docker_path = locate_docker(args.docker_path)
        action, arguments = rewrite_execute_package(args.action_name, _user_arguments(args))
        catalog = _load_filtered_catalog(args, project_dir, config)
        fields = _request_fields(args, project_dir, arguments)
        first_candidates = (
            _parse_candidates(args.repo_order_first, "--repo-order-first")
            if args.repo_order_first
            else ()
        )
        request = RangeRequest(
            action=action,
            catalog=tuple(catalog),
            first_candidates=first_candidates,
            from_tag=args.from_tag,
            to_tag=args.to_tag,
            through_tag=args.through_tag,
            min_tools_version=args.min_tools_version,
            detect_tools_version=not args.no_tools_version_check,
            tools_version_image=ImageReference.parse(args.tools_version_image),
            build_all_dir=(
                Path(args.build_all_dir).expanduser().resolve() if args.build_all_dir else None
            ),
            clean_build_dir=args.clean_build_dir,
            skip_identical_hashes=args.skip_identical_hashes,
            stop_on_first_error=args.stop_on_first_error,
            **fields,
        )
    except (ConfigError, CatalogError, MappingParseError, ValueError) as exc:
        print(f"swiftdock {args.command}: ERROR {exc}", file=sys.stderr)
        return 1

    backend = None
    if config.scratch.enabled and not args.no_scratch:
        backend = select_scratch_backend(config.scratch.backend)
    scratch = ScratchVolumeManager(
        backend,
        config.scratch,
        log=lambda message: _append_log(project_dir, message),
    )
    _append_log(
        project_dir,
        f"command {args.command} tags={len(catalog)} scratch={backend.name if backend else 'none'}",
    )
    engine = RangeExecutionEngine(request, config, docker_path=docker_path, scratch=scratch)
    return engine.run()


def _cmd_tags(args: argparse.Namespace) -> int:
    try:
        project_dir = _project_dir(args)
        config = load_config(project_dir)
        catalog = _load_filtered_catalog(args, project_dir, config)
    except (ConfigError, CatalogError, ValueError) as exc:
        print(f"swiftdock tags: ERROR {exc}", file=sys.stderr)
        return 1
    if not catalog:
        print("No tags available with the given parameters")
        return 1
    for tag in catalog:
        if args.show_digests:
            print(f"{tag.name}\t{tag.version or '-'}\t{','.join(sorted(tag.digests))}")
        else:
            print(tag.name)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_package_path(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--package-path",
        default=".",
        help="Path to the Swift package (default: current directory)",
    )


def _add_catalog_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tags-file",
        default=None,
        help="JSON tag catalog (default: catalog.path from .swiftdock/config.yaml)",
    )
    parser.add_argument(
        "--tag-filter",
        action="append",
        default=None,
        help="Only include this exact tag (repeatable)",
    )
    parser.add_argument(
        "--tag-filter-x",
        action="append",
        default=None,
        help="Only include tags matching this regular expression (repeatable)",
    )
    parser.add_argument(
        "--tag-exclude",
        action="append",
        default=None,
        help="Exclude this exact tag (repeatable)",
    )
    parser.add_argument(
        "--tag-exclude-x",
        action="append",
        default=None,
        help="Exclude tags matching this regular expression (repeatable)",
    )
    parser.add_argument(
        "--similar-to",
        default=None,
        help="Only tags sharing a content digest with this tag",
    )


def _add_container_arguments(parser: argparse.ArgumentParser) -> None:
    _add_package_path(parser)
    parser.add_argument(
        "--docker-path",
        default=None,
        help="Docker executable (default: $DOCKER_PATH, then docker on PATH)",
    )
    parser.add_argument(
        "--repo-order",
        default=DEFAULT_REPOSITORY,
        help="';'-separated repo[:app] candidates tried in order (default: swift)",
    )
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=None,
        help="KEY=VALUE passed to the container (repeatable)",
    )
    parser.add_argument(
        "-v",
        "--volume",
        action="append",
        default=None,
        help="physical:virtual[:options] volume mapping (repeatable)",
    )
    parser.add_argument(
        "--mount",
        action="append",
        default=None,
        help="type=..,source=..,target=..[,...] mount (repeatable)",
    )
    parser.add_argument(
        "--output-replace",
        nargs=2,
        action="append",
        default=None,
        metavar=("FIND", "REPLACE"),
        help="Literal replacement applied to printed output (repeatable)",
    )
    parser.add_argument(
        "--output-replace-x",
        nargs=2,
        action="append",
        default=None,
        metavar=("PATTERN", "REPLACE"),
        help="Regular expression replacement applied to printed output (repeatable)",
    )


def _add_single_parser(subparsers: Any, name: str) -> None:
    action = ACTIONS[name]
    parser = subparsers.add_parser(name, help=action.description)
    _add_container_arguments(parser)
    parser.add_argument(
        "--tag",
        default=DEFAULT_TAG,
        help="Image tag to use (default: latest)",
    )
    parser.add_argument(
        "--build-dir",
        default=None,
        help="Host directory mapped to the package's .build directory",
    )
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Arguments for the container command")
    parser.set_defaults(action_name=name, handler=_cmd_single)


def _add_join_parser(subparsers: Any) -> None:
    parser = subparsers.add_parser(
        "join",
        help="Start a detached interactive bash container for one tag",
    )
    _add_container_arguments(parser)
    parser.add_argument(
        "--tag",
        default=DEFAULT_TAG,
        help="Image tag to use (default: latest)",
    )
    parser.add_argument(
        "--build-dir",
        default=None,
        help="Host directory mapped to the package's .build directory",
    )
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Arguments for bash")
    parser.set_defaults(handler=_cmd_join)


def _add_range_parser(subparsers: Any, name: str) -> None:
    action = ACTIONS[name]
    parser = subparsers.add_parser(
        f"{name}-range",
        help=f"{action.description} across a range of tags",
    )
    _add_container_arguments(parser)
    _add_catalog_arguments(parser)
    parser.add_argument(
        "--repo-order-first",
        default=None,
        help="Candidates used only for the first tag of the range",
    )
    parser.add_argument("--from", dest="from_tag", default=None, help="First tag of the range")
    bound = parser.add_mutually_exclusive_group()
    bound.add_argument("--to", dest="to_tag", default=None, help="Stop before this tag")
    bound.add_argument("--through", dest="through_tag", default=None, help="Stop after this tag")
    build = parser.add_mutually_exclusive_group()
    build.add_argument(
        "--build-dir",
        default=None,
        help="Host directory shared by every tag as the package's .build directory",
    )
    build.add_argument(
        "--build-all-dir",
        default=None,
        help="Host directory holding one .build directory per tag",
    )
    parser.add_argument(
        "--clean-build-dir",
        action="store_true",
        help="Remove the platform build output before each tag",
    )
    parser.add_argument(
        "--stop-on-first-error",
        action="store_true",
        help="Stop the range after the first failed tag",
    )
    parser.add_argument(
        "--skip-identical-hashes",
        action="store_true",
        help="Skip tags sharing a content digest with a tag already run",
    )
    parser.add_argument(
        "--min-tools-version",
        default=None,
        help="Start no earlier than this swift tools version",
    )
    parser.add_argument(
        "--no-tools-version-check",
        action="store_true",
        help="Do not detect the package's minimum tools version",
    )
    parser.add_argument(
        "--tools-version-image",
        default=TOOLS_VERSION_IMAGE,
        help=f"repo:tag:app used to detect the tools version (default: {TOOLS_VERSION_IMAGE})",
    )
    parser.add_argument(
        "--no-scratch",
        action="store_true",
        help="Run from the package directory without a scratch volume",
    )
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Arguments for the container command")
    parser.set_defaults(action_name=name, handler=_cmd_range)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swiftdock",
        description="Build, test and run Swift packages inside Swift docker images",
    )
    parser.add_argument("--version", action="version", version=f"swiftdock {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    for name in ACTIONS:
        _add_single_parser(subparsers, name)
    for name in RANGE_ACTIONS:
        _add_range_parser(subparsers, name)
    _add_join_parser(subparsers)

    tags = subparsers.add_parser("tags", help="Print the filtered tag catalog")
    _add_package_path(tags)
    _add_catalog_arguments(tags)
    tags.add_argument(
        "--show-digests",
        action="store_true",
        help="Also print each tag's version value and digests",
    )
    tags.set_defaults(handler=_cmd_tags)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2
    return int(handler(args))


if __name__ == "__main__":
    raise SystemExit(main())
