from collections.abc import Iterable
from typing import Any


def unique_tags(tags: Iterable[Any]) -> list[str]:
    result: list[str] = []
    seen = set()
    for item in tags:
        tag = str(item).strip().lower()
        if tag and tag not in seen:
            result.append(tag)
            seen.add(tag)
    return result


def normalize_tags(value: Any) -> list[str]:
    """Accept a list of tags or a comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        return unique_tags(value.split(","))
    if isinstance(value, (list, tuple, set)):
        return unique_tags(value)
    return []


def merge_tags(*groups: Iterable[str] | None) -> list[str]:
    merged: list[str] = []
    for group in groups:
        merged.extend(group or [])
    return unique_tags(merged)
