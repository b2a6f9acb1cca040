from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from swiftdock.catalog import TagRecord, build_catalog, filter_tags, load_tag_catalog, version_value
from swiftdock.models import CatalogError


@pytest.mark.parametrize(
    ("tag", "expected"),
    [
        ("5", "5.0.0"),
        ("5.5", "5.5.0"),
        ("5.5.2-focal", "5.5.2"),
        ("latest", ""),
        ("nightly-main", ""),
    ],
)
def test_version_value(tag: str, expected: str) -> None:
    assert version_value(tag) == expected


def test_load_tag_catalog_reads_registry_pages(tmp_path: Path) -> None:
    path = tmp_path / "tags.json"
    path.write_text(
        json.dumps(
            {
                "results": [
                    {"name": "5.9", "images": [{"digest": "sha256:a"}, {"digest": "sha256:b"}]},
                    {"name": "5.10", "images": [{"digest": "sha256:c"}]},
                    {"name": "5.9-jammy", "images": [{"digest": "sha256:b"}]},
                ]
            }
        ),
        encoding="utf-8",
    )

    catalog = load_tag_catalog(path)

    assert [tag.name for tag in catalog] == ["5.10", "5.9", "5.9-jammy"]
    assert [tag.position for tag in catalog] == [0, 1, 2]
    assert catalog[1].digests == frozenset({"sha256:a", "sha256:b"})
    assert catalog[1].shares_digest(catalog[2])
    assert not catalog[0].shares_digest(catalog[1])


def test_build_catalog_merges_duplicate_names() -> None:
    catalog = build_catalog(
        [{"name": "5.9", "digests": ["x"]}, {"name": "5.9", "digest": "y"}, "5.8"]
    )

    assert [tag.name for tag in catalog] == ["5.8", "5.9"]
    assert catalog[1].digests == frozenset({"x", "y"})


def test_catalog_errors(tmp_path: Path) -> None:
    with pytest.raises(CatalogError, match="not found"):
        load_tag_catalog(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError, match="could not read"):
        load_tag_catalog(broken)

    with pytest.raises(CatalogError, match="unrecognised tag entry"):
        build_catalog([42])


def _catalog() -> list[TagRecord]:
    return build_catalog(
        [
            {"name": "5.8", "digests": ["d1"]},
            {"name": "5.8-focal", "digests": ["d1"]},
            {"name": "5.9", "digests": ["d2"]},
            {"name": "5.9-slim", "digests": ["d3"]},
            {"name": "latest", "digests": ["d2"]},
        ]
    )


def test_filter_include_names_or_patterns() -> None:
    tags = filter_tags(_catalog(), include=["latest"], include_patterns=[re.compile(r"^5\.8")])

    assert [tag.name for tag in tags] == ["5.8", "5.8-focal", "latest"]


def test_filter_excludes_after_includes() -> None:
    tags = filter_tags(
        _catalog(),
        exclude=["latest"],
        exclude_patterns=[re.compile(r"-(focal|slim)$")],
    )

    assert [tag.name for tag in tags] == ["5.8", "5.9"]


def test_similar_to_keeps_other_tags_sharing_a_digest() -> None:
    assert [tag.name for tag in filter_tags(_catalog(), similar_to="5.9")] == ["latest"]
    assert filter_tags(_catalog(), similar_to="9.9") == []
