"""Resolve ``--from`` / ``--to`` / ``--through`` against a sorted tag catalog."""

from __future__ import annotations

from swiftdock.catalog import TagRecord, version_value
from swiftdock.models import RangeBounds, RangeSelectionError


def _index_of(catalog: list[TagRecord], name: str, role: str) -> int:
    for index, tag in enumerate(catalog):
        if tag.name == name:
            return index
    raise RangeSelectionError(f"unable to find {role} tag '{name}' in the list of tags")


def tools_version_index(catalog: list[TagRecord], min_tools_version: str) -> int | None:
    """Index of the first tag whose version value equals the padded tools version."""
    wanted = version_value(min_tools_version) or min_tools_version
    for index, tag in enumerate(catalog):
        if tag.version == wanted:
            return index
    return None


def select_tag_range(
    catalog: list[TagRecord],
    *,
    from_tag: str | None = None,
    to_tag: str | None = None,
    through_tag: str | None = None,
    min_tools_version: str | None = None,
) -> RangeBounds:
    """Return ``[lower, upper)`` over ``catalog``.

    ``to`` is exclusive, ``through`` inclusive; without either the range runs
    to the end.  A minimum tools version that maps to a later tag than
    ``from`` moves the lower bound up to it.
    """
    if to_tag and through_tag:
        raise RangeSelectionError("--to and --through can not be used together")
    if not catalog:
        raise RangeSelectionError("No tags available with the given parameters")

    lower = _index_of(catalog, from_tag, "from") if from_tag else 0
    upper = len(catalog)
    if to_tag:
        upper = _index_of(catalog, to_tag, "to")
    elif through_tag:
        upper = _index_of(catalog, through_tag, "through") + 1

    if min_tools_version:
        tools_index = tools_version_index(catalog, min_tools_version)
        if tools_index is not None and tools_index > lower:
            lower = tools_index

    if lower >= upper:
        start = catalog[lower].name
        if to_tag:
            span = f"{start}..<{to_tag}"
        elif through_tag:
            span = f"{start}...{through_tag}"
        else:
            span = f"{start}..."
        raise RangeSelectionError(f"No tags available between {span}")
    return RangeBounds(lower=lower, upper=upper)
