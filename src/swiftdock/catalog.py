"""Tag catalog: load a pre-fetched tag list and apply include/exclude filters."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from swiftdock.models import CatalogError

_VERSION_RE = re.compile(r"^[1-9]+(\.[0-9]+(\.[0-9]+)?)?")


def version_value(tag: str) -> str:
    """Leading ``X[.Y[.Z]]`` of a tag padded to three components; empty when absent."""
    match = _VERSION_RE.match(tag)
    if match is None:
        return ""
    parts = match.group(0).split(".")
    while len(parts) < 3:
        parts.append("0")
    return ".".join(parts)


def version_key(version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        return ()


@dataclass(frozen=True)
class TagRecord:
    name: str
    digests: frozenset[str] = field(default_factory=frozenset)
    position: int = 0

    @property
    def version(self) -> str:
        return version_value(self.name)

    def shares_digest(self, other: TagRecord) -> bool:
        return not self.digests.isdisjoint(other.digests)


def _record_digests(raw: dict[str, Any]) -> frozenset[str]:
    digests: set[str] = set()
    images = raw.get("images")
    if isinstance(images, list):
        for image in images:
            if isinstance(image, dict) and image.get("digest"):
                digests.add(str(image["digest"]))
    plain = raw.get("digests")
    if isinstance(plain, list):
        digests.update(str(item) for item in plain if item)
    if raw.get("digest"):
        digests.add(str(raw["digest"]))
    return frozenset(digests)


def build_catalog(raw_records: Iterable[Any]) -> list[TagRecord]:
    """Turn raw tag entries (dicts or bare names) into records sorted by name."""
    by_name: dict[str, frozenset[str]] = {}
    for raw in raw_records:
        if isinstance(raw, str):
            name, digests = raw, frozenset()
        elif isinstance(raw, dict) and raw.get("name"):
            name, digests = str(raw["name"]), _record_digests(raw)
        else:
            raise CatalogError(f"unrecognised tag entry: {raw!r}")
        by_name[name] = by_name.get(name, frozenset()) | digests
    return [
        TagRecord(name=name, digests=by_name[name], position=index)
        for index, name in enumerate(sorted(by_name))
    ]


def load_tag_catalog(path: Path) -> list[TagRecord]:
    """Read a JSON tag list.

    Accepts a list of registry tag-detail records (digests under
    ``images[].digest``), simple ``{"name": ..., "digests": [...]}`` records,
    bare tag names, or a paged ``{"results": [...]}`` document.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CatalogError(f"tag catalog not found at {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"could not read tag catalog {path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("results")
    if not isinstance(payload, list):
        raise CatalogError(f"tag catalog {path} must be a list of tags")
    return build_catalog(payload)


def filter_tags(
    catalog: list[TagRecord],
    *,
    include: Iterable[str] = (),
    include_patterns: Iterable[re.Pattern[str]] = (),
    exclude: Iterable[str] = (),
    exclude_patterns: Iterable[re.Pattern[str]] = (),
    similar_to: str | None = None,
) -> list[TagRecord]:
    """Apply ``similar_to``, then include, then exclude filters, preserving order."""
    tags = list(catalog)
    if similar_to:
        anchor = next((tag for tag in tags if tag.name == similar_to), None)
        if anchor is None:
            return []
        tags = [tag for tag in tags if tag.name != similar_to and tag.shares_digest(anchor)]

    include_names = set(include)
    include_res = list(include_patterns)
    if include_names or include_res:
        tags = [
            tag
            for tag in tags
            if tag.name in include_names or any(p.search(tag.name) for p in include_res)
        ]

    exclude_names = set(exclude)
    if exclude_names:
        tags = [tag for tag in tags if tag.name not in exclude_names]
    exclude_res = list(exclude_patterns)
    if exclude_res:
        tags = [tag for tag in tags if not any(p.search(tag.name) for p in exclude_res)]
    return tags
