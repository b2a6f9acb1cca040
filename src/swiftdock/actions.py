"""Action descriptors: what to run inside the container and how to report it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from swiftdock.constants import CALL_TYPE_RANGE, CALL_TYPE_SINGULAR, TAG_PLACEHOLDER

_RED = 196
_YELLOW = 226
_GREEN = 118

ArgumentHook = Callable[[str, str, str, Sequence[str]], list[str]]


def _colour(text: str, code: int) -> str:
    return f"\x1b[38;5;{code}m{text}\x1b[0m"


def _no_arguments(call_type: str, image: str, tag: str, user_arguments: Sequence[str]) -> list[str]:
    return []


def _docker_build_defines(
    call_type: str, image: str, tag: str, user_arguments: Sequence[str]
) -> list[str]:
    if call_type == CALL_TYPE_SINGULAR:
        return ["-Xswiftc", "-DDOCKER_BUILD"]
    if call_type == CALL_TYPE_RANGE:
        return ["-Xswiftc", "-DDOCKER_ALL_BUILD", "-Xswiftc", "-DDOCKER_BUILD"]
    raise ValueError(f"unknown call type '{call_type}'")


@dataclass(frozen=True)
class ActionDescriptor:
    name: str
    sub_command: str | None
    primary_message: str
    retry_message: str
    error_message: str
    warning_message: str
    success_message: str
    description: str = ""
    pre_sub_command: ArgumentHook = _no_arguments
    post_sub_command: ArgumentHook = _no_arguments
    post_user_arguments: ArgumentHook = _no_arguments

    def container_arguments(
        self,
        call_type: str,
        image: str,
        tag: str,
        user_arguments: Sequence[str],
    ) -> list[str]:
        """pre-hook, sub-command, post-sub-command hook, user arguments, post-user hook."""
        arguments = list(self.pre_sub_command(call_type, image, tag, user_arguments))
        if self.sub_command:
            arguments.append(self.sub_command)
        arguments.extend(self.post_sub_command(call_type, image, tag, user_arguments))
        arguments.extend(user_arguments)
        arguments.extend(self.post_user_arguments(call_type, image, tag, user_arguments))
        return arguments


def render_message(template: str, label: str) -> str:
    return template.replace(TAG_PLACEHOLDER, label)


BUILD = ActionDescriptor(
    name="build",
    sub_command="build",
    description="Build a Swift package inside a Swift container image",
    primary_message="Building with %tag%",
    retry_message="Retrying build on %tag%",
    error_message=f"{_colour('Failed', _RED)} to build on %tag%",
    warning_message=f"Built with {_colour('warnings', _YELLOW)} on %tag%",
    success_message=f"Built {_colour('successfully', _GREEN)} on %tag%",
    post_sub_command=_docker_build_defines,
)

TEST = ActionDescriptor(
    name="test",
    sub_command="test",
    description="Test a Swift package inside a Swift container image",
    primary_message="Testing with %tag%",
    retry_message="Retrying test on %tag%",
    error_message=f"Tests {_colour('Failed', _RED)} on %tag%",
    warning_message=f"Tested with {_colour('warnings', _YELLOW)} on %tag%",
    success_message=f"Tested {_colour('successfully', _GREEN)} on %tag%",
    post_sub_command=_docker_build_defines,
)

RUN = ActionDescriptor(
    name="run",
    sub_command="run",
    description="Run a Swift package executable inside a Swift container image",
    primary_message="Running with %tag%",
    retry_message="Retrying run on %tag%",
    error_message=f"{_colour('Failed', _RED)} to run on %tag%",
    warning_message=f"Ran with {_colour('warnings', _YELLOW)} on %tag%",
    success_message=f"Ran {_colour('successfully', _GREEN)} on %tag%",
    post_sub_command=_docker_build_defines,
)

EXECUTE = ActionDescriptor(
    name="execute",
    sub_command=None,
    description="Execute the container's swift command with arbitrary arguments",
    primary_message="Executing with %tag%",
    retry_message="Retrying execute on %tag%",
    error_message=f"{_colour('Failed', _RED)} to execute on %tag%",
    warning_message=f"Executed with {_colour('warnings', _YELLOW)} on %tag%",
    success_message=f"Executed {_colour('successfully', _GREEN)} on %tag%",
    post_sub_command=_docker_build_defines,
)

PACKAGE = ActionDescriptor(
    name="package",
    sub_command="package",
    description="Run swift package management commands inside a Swift container image",
    primary_message="Package management with %tag%",
    retry_message="Retrying Package management on %tag%",
    error_message=f"{_colour('Failed', _RED)} to manage package on %tag%",
    warning_message=f"Package managed with {_colour('warnings', _YELLOW)} on %tag%",
    success_message=f"Package management ran {_colour('successfully', _GREEN)} on %tag%",
)

ACTIONS: dict[str, ActionDescriptor] = {
    action.name: action for action in (BUILD, TEST, RUN, EXECUTE, PACKAGE)
}
RANGE_ACTIONS = ("build", "test", "run")


def get_action(name: str) -> ActionDescriptor:
    try:
        return ACTIONS[name.lower()]
    except KeyError:
        available = ", ".join(ACTIONS)
        raise ValueError(f"invalid sub command '{name}'; available: {available}") from None


def rewrite_execute_package(name: str, arguments: list[str]) -> tuple[ActionDescriptor, list[str]]:
    """``execute ... package ...`` runs as the ``package`` action without the literal token."""
    action = get_action(name)
    if action.name == "execute" and "package" in arguments:
        remaining = list(arguments)
        remaining.remove("package")
        return PACKAGE, remaining
    return action, list(arguments)
