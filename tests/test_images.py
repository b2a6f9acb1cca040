from __future__ import annotations

import pytest

from swiftdock.images import ImageCandidate, ImageReference, RepositoryName, resolve_image
from swiftdock.models import ImageNotFoundError, MappingParseError, RunOutcome


def test_repository_name_forms() -> None:
    assert str(RepositoryName.parse("swift")) == "swift"
    assert RepositoryName.parse("swift").path == "/library/swift"
    assert str(RepositoryName.parse("swiftlang/swift")) == "swiftlang/swift"

    local = RepositoryName.parse("local/my-swift")
    assert local.is_local
    assert str(local) == "my-swift"

    with pytest.raises(MappingParseError):
        RepositoryName.parse("a/b/c")


def test_candidate_app_defaults_to_repository_name() -> None:
    assert ImageCandidate.parse("swiftlang/swift").app == "swift"
    candidate = ImageCandidate.parse("local/toolchain:swift")
    assert candidate.app == "swift"
    assert candidate.image("5.9") == "toolchain:5.9"
    assert str(candidate) == "toolchain:swift"


def test_candidate_list_is_split_on_semicolons() -> None:
    candidates = ImageCandidate.parse_list("swift;swiftlang/swift:swift;")

    assert [str(candidate.repository) for candidate in candidates] == ["swift", "swiftlang/swift"]


def test_image_reference_parses_repo_tag_app() -> None:
    reference = ImageReference.parse("swift:latest:swift")

    assert reference.tag == "latest"
    assert reference.app == "swift"
    assert str(ImageReference.parse("swift")) == "swift:latest:swift"
    with pytest.raises(MappingParseError):
        ImageReference.parse("swift:latest")


class _Docker:
    def __init__(self, local: set[str], pullable: set[str]) -> None:
        self.local = local
        self.pullable = pullable
        self.calls: list[list[str]] = []

    def __call__(self, argv: list[str], **kwargs: object) -> RunOutcome:
        self.calls.append(list(argv))
        if argv[1] == "images":
            return RunOutcome(exit_code=0, output="sha" if argv[-1] in self.local else "")
        if argv[1] == "pull":
            if argv[-1] in self.pullable:
                return RunOutcome(exit_code=0, output="Status: Downloaded")
            return RunOutcome(exit_code=1, output=f"Error: pull {argv[-1]} denied")
        raise AssertionError(argv)


def test_local_images_are_preferred_over_pulling_earlier_candidates() -> None:
    docker = _Docker(local={"swiftlang/swift:5.9"}, pullable={"swift:5.9"})
    candidates = ImageCandidate.parse_list("swift;swiftlang/swift")

    resolved = resolve_image(candidates, "5.9", docker_path="docker", runner=docker)

    assert resolved.image == "swiftlang/swift:5.9"
    assert not resolved.pulled
    assert all(call[1] == "images" for call in docker.calls)


def test_pull_pass_runs_in_candidate_order_and_skips_local_only() -> None:
    docker = _Docker(local=set(), pullable={"swiftlang/swift:5.9"})
    candidates = ImageCandidate.parse_list("local/dev;swift;swiftlang/swift")
    announced: list[str] = []

    resolved = resolve_image(
        candidates, "5.9", docker_path="docker", runner=docker, announce=announced.append
    )

    assert resolved.image == "swiftlang/swift:5.9"
    assert resolved.pulled
    pulls = [call[-1] for call in docker.calls if call[1] == "pull"]
    assert pulls == ["swift:5.9", "swiftlang/swift:5.9"]
    assert announced == ["Pulling swift:5.9", "Pulling swiftlang/swift:5.9"]


def test_unresolvable_image_carries_candidates_and_evidence() -> None:
    docker = _Docker(local=set(), pullable=set())

    with pytest.raises(ImageNotFoundError) as excinfo:
        resolve_image(ImageCandidate.parse_list("swift"), "0.1", docker_path="docker", runner=docker)

    assert excinfo.value.candidates == ("swift",)
    assert excinfo.value.tag == "0.1"
    assert "denied" in excinfo.value.evidence
