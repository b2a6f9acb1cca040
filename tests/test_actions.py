from __future__ import annotations

import pytest

from swiftdock.actions import (
    ACTIONS,
    BUILD,
    PACKAGE,
    RANGE_ACTIONS,
    get_action,
    render_message,
    rewrite_execute_package,
)


def test_registry_maps_every_verb() -> None:
    assert set(ACTIONS) == {"build", "test", "run", "execute", "package"}
    assert set(RANGE_ACTIONS) <= set(ACTIONS)
    assert get_action("BUILD") is BUILD
    with pytest.raises(ValueError, match="invalid sub command 'deploy'"):
        get_action("deploy")


def test_argument_hooks_depend_on_call_type() -> None:
    singular = BUILD.container_arguments("singular", "swift:swift", "5.9", ["-c", "release"])
    ranged = BUILD.container_arguments("range", "swift:swift", "5.9", ["-c", "release"])

    assert singular == ["build", "-Xswiftc", "-DDOCKER_BUILD", "-c", "release"]
    assert ranged == [
        "build",
        "-Xswiftc",
        "-DDOCKER_ALL_BUILD",
        "-Xswiftc",
        "-DDOCKER_BUILD",
        "-c",
        "release",
    ]
    with pytest.raises(ValueError, match="unknown call type"):
        BUILD.container_arguments("batch", "swift:swift", "5.9", [])


def test_execute_has_no_sub_command_and_package_has_no_defines() -> None:
    assert ACTIONS["execute"].container_arguments("singular", "s", "t", ["--version"]) == [
        "-Xswiftc",
        "-DDOCKER_BUILD",
        "--version",
    ]
    assert PACKAGE.container_arguments("range", "s", "t", ["resolve"]) == ["package", "resolve"]


def test_messages_substitute_the_tag_placeholder() -> None:
    assert render_message(BUILD.primary_message, "swift:5.9") == "Building with swift:5.9"
    assert "swift:(5.9, latest)" in render_message(BUILD.success_message, "swift:(5.9, latest)")


def test_execute_package_is_rewritten_to_package_action() -> None:
    action, arguments = rewrite_execute_package("execute", ["package", "update"])
    assert action is PACKAGE
    assert arguments == ["update"]

    action, arguments = rewrite_execute_package("execute", ["--version"])
    assert action.name == "execute"
    assert arguments == ["--version"]
