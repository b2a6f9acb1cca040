"""Repository / candidate value types and the two-pass image resolver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from swiftdock.docker_cli import docker_image_exists, docker_pull
from swiftdock.models import ImageNotFoundError, MappingParseError
from swiftdock.process import ProcessRunner, run_process

LOCAL_USER = "local"
DEFAULT_REPOSITORY = "swift"
DEFAULT_TAG = "latest"


@dataclass(frozen=True)
class RepositoryName:
    """``name``, ``user/name`` or ``local/name``.

    ``local/`` marks an image that only exists on this machine; it is never
    pulled and is referred to by its bare name.
    """
    name: str
    user: str | None = None
    is_local: bool = False

    @classmethod
    def parse(cls, value: str) -> RepositoryName:
        components = value.split("/")
        if not value or len(components) > 2 or not components[-1]:
            raise MappingParseError(f"invalid repository name '{value}'")
        if len(components) == 1:
            return cls(name=components[0])
        user = components[0]
        if not user:
            raise MappingParseError(f"invalid repository name '{value}'")
        if user == LOCAL_USER:
            return cls(name=components[1], is_local=True)
        return cls(name=components[1], user=user)

    @property
    def path(self) -> str:
        return f"/{self.user or 'library'}/{self.name}"

    def __str__(self) -> str:
        if self.user:
            return f"{self.user}/{self.name}"
        return self.name


@dataclass(frozen=True)
class ImageCandidate:
    """``repo[:app]``; ``app`` is the executable run inside the container."""
    repository: RepositoryName
    app: str

    @classmethod
    def parse(cls, value: str) -> ImageCandidate:
        components = value.split(":")
        if len(components) not in (1, 2):
            raise MappingParseError(f"invalid repository/app '{value}': expected repo[:app]")
        repository = RepositoryName.parse(components[0])
        app = components[1] if len(components) == 2 and components[1] else repository.name
        return cls(repository=repository, app=app)

    @classmethod
    def parse_list(cls, value: str) -> tuple[ImageCandidate, ...]:
        return tuple(cls.parse(item) for item in value.split(";") if item.strip())

    def image(self, tag: str) -> str:
        return f"{self.repository}:{tag}"

    def __str__(self) -> str:
        return f"{self.repository}:{self.app}"


@dataclass(frozen=True)
class ImageReference:
    """``repo`` or ``repo:tag:app``."""
    repository: RepositoryName
    tag: str = DEFAULT_TAG
    app: str = ""

    @classmethod
    def parse(cls, value: str) -> ImageReference:
        components = value.split(":")
        if len(components) not in (1, 3):
            raise MappingParseError(f"invalid image reference '{value}': expected repo[:tag:app]")
        repository = RepositoryName.parse(components[0])
        if len(components) == 1:
            return cls(repository=repository, app=repository.name)
        if not components[1]:
            raise MappingParseError(f"invalid image reference '{value}': empty tag")
        return cls(
            repository=repository,
            tag=components[1],
            app=components[2] or repository.name,
        )

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}:{self.app or self.repository.name}"


DEFAULT_CANDIDATES = (ImageCandidate.parse(DEFAULT_REPOSITORY),)


@dataclass(frozen=True)
class ResolvedImage:
    candidate: ImageCandidate
    tag: str
    pulled: bool
    evidence: str = ""

    @property
    def image(self) -> str:
        return self.candidate.image(self.tag)


def resolve_image(
    candidates: tuple[ImageCandidate, ...] | list[ImageCandidate],
    tag: str,
    *,
    docker_path: str,
    runner: ProcessRunner = run_process,
    announce: Callable[[str], None] | None = None,
) -> ResolvedImage:
    """Pick the first candidate with ``candidate:tag`` available.

    Pass 1 looks for a local image in candidate order.  Pass 2 pulls, in
    candidate order, skipping local-only repositories.  Both passes stop at
    the first hit.  Raises ``ImageNotFoundError`` with the last pull output
    when nothing is usable.
    """
    ordered = list(candidates)
    for candidate in ordered:
        if docker_image_exists(docker_path, candidate.image(tag), runner=runner):
            return ResolvedImage(candidate=candidate, tag=tag, pulled=False, evidence="local")

    evidence = ""
    for candidate in ordered:
        if candidate.repository.is_local:
            continue
        if announce is not None:
            announce(f"Pulling {candidate.image(tag)}")
        outcome = docker_pull(docker_path, candidate.image(tag), runner=runner)
        if outcome.exit_code == 0:
            return ResolvedImage(candidate=candidate, tag=tag, pulled=True, evidence=outcome.output)
        evidence = outcome.output or f"pull exited with {outcome.exit_code}"

    raise ImageNotFoundError(
        tuple(str(candidate.repository) for candidate in ordered),
        tag,
        evidence,
    )
