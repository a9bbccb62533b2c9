"""Aggregation key derivation for (metric name, tag set) pairs."""
from typing import List, Optional, Sequence


def apply_prefix(name: str, prefix: Optional[str]) -> str:
    """Prepend the configured prefix to a metric name (plain concatenation)."""
    if not prefix:
        return name
    return f"{prefix}{name}"


def normalize_tags(tags: Optional[Sequence[str]]) -> List[str]:
    """Return tags in ordinal order; None and empty input are equivalent."""
    if not tags:
        return []
    return sorted(tags)


def make_buffer_key(name: str, tags: Optional[Sequence[str]]) -> str:
    """
    Generate a stable buffer key from a prefixed name and its tags.

    ["tag:a", "tag:b"] and ["tag:b", "tag:a"] map to the same key, and
    None maps to the same key as [].
    """
    sorted_tags = normalize_tags(tags)
    if not sorted_tags:
        return f"{name}#"
    return f"{name}#{'.'.join(sorted_tags)}"
