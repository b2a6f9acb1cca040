from __future__ import annotations

import pytest

from swiftdock.mappings import MountMapping, VolumeMapping, parse_env_assignment, parse_env_assignments
from swiftdock.models import MappingParseError


def test_volume_mapping_parse_and_format() -> None:
    mapping = VolumeMapping.parse("/host/cache:/root/.cache:ro")

    assert mapping.physical_path == "/host/cache"
    assert mapping.virtual_path == "/root/.cache"
    assert mapping.options == "ro"
    assert str(mapping) == "/host/cache:/root/.cache:ro"
    assert str(VolumeMapping.parse("/a:/b")) == "/a:/b"


@pytest.mark.parametrize("value", ["/only-one", "/a:/b:ro:extra", ""])
def test_volume_mapping_rejects_wrong_field_count(value: str) -> None:
    with pytest.raises(MappingParseError, match="expected physical:virtual"):
        VolumeMapping.parse(value)


def test_mount_mapping_keeps_attribute_order() -> None:
    mapping = MountMapping.parse("source=/tmp/cache,type=bind,readonly,target=/cache")

    assert mapping.type == "bind"
    assert mapping.source == "/tmp/cache"
    assert mapping.target == "/cache"
    assert str(mapping) == "type=bind,source=/tmp/cache,target=/cache,readonly"


def test_mount_mapping_requires_type_source_and_target() -> None:
    with pytest.raises(MappingParseError, match="missing target"):
        MountMapping.parse("type=bind,source=/tmp")


def test_env_assignment_splits_on_first_equals() -> None:
    assert parse_env_assignment("OPTS=-Xswiftc -DX=1") == ("OPTS", "-Xswiftc -DX=1")
    assert parse_env_assignments(["A=1", "B=", "A=2"]) == {"A": "2", "B": ""}
    with pytest.raises(MappingParseError):
        parse_env_assignment("NOVALUE")
    with pytest.raises(MappingParseError):
        parse_env_assignment("=value")
