"""Volume, mount and environment value types with explicit parse/format."""

from __future__ import annotations

from dataclasses import dataclass, field

from swiftdock.models import MappingParseError


@dataclass(frozen=True)
class VolumeMapping:
    """``physical:virtual[:options]`` as passed to ``docker run -v``."""
    physical_path: str
    virtual_path: str
    options: str | None = None

    @classmethod
    def parse(cls, value: str) -> VolumeMapping:
        items = [item for item in value.split(":") if item]
        if len(items) not in (2, 3):
            raise MappingParseError(
                f"invalid volume mapping '{value}': expected physical:virtual[:options]"
            )
        return cls(
            physical_path=items[0],
            virtual_path=items[1],
            options=items[2] if len(items) == 3 else None,
        )

    def __str__(self) -> str:
        text = f"{self.physical_path}:{self.virtual_path}"
        if self.options:
            text += f":{self.options}"
        return text


@dataclass(frozen=True)
class MountMapping:
    """``type=...,source=...,target=...[,attr...]`` as passed to ``docker run --mount``."""
    type: str
    source: str
    target: str
    attributes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, value: str) -> MountMapping:
        found: dict[str, str] = {}
        attributes: list[str] = []
        for item in (part for part in value.split(",") if part):
            key, sep, rest = item.partition("=")
            if sep and key in {"type", "source", "target"}:
                found[key] = rest
            else:
                attributes.append(item)
        missing = [key for key in ("type", "source", "target") if key not in found]
        if missing:
            raise MappingParseError(
                f"invalid mount mapping '{value}': missing {', '.join(missing)}"
            )
        return cls(
            type=found["type"],
            source=found["source"],
            target=found["target"],
            attributes=tuple(attributes),
        )

    def __str__(self) -> str:
        parts = [f"type={self.type}", f"source={self.source}", f"target={self.target}"]
        parts.extend(self.attributes)
        return ",".join(parts)


def parse_env_assignment(value: str) -> tuple[str, str]:
    """Split ``KEY=VALUE`` on the first ``=``; the value may itself contain ``=``."""
    key, sep, rest = value.partition("=")
    if not sep or not key.strip():
        raise MappingParseError(f"invalid environment assignment '{value}': expected KEY=VALUE")
    return key.strip(), rest


def parse_env_assignments(values: list[str] | tuple[str, ...]) -> dict[str, str]:
    env: dict[str, str] = {}
    for value in values:
        key, rest = parse_env_assignment(value)
        env[key] = rest
    return env
