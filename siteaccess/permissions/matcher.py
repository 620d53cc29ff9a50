"""
Capability string matching with per-segment wildcards.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

WILDCARD = "*"
ALL = "*:*:*"


class CapabilityParts(NamedTuple):
    feature: str
    resource: str
    action: str


def is_valid_capability(capability: object) -> bool:
    if not isinstance(capability, str) or not capability:
        return False
    parts = capability.split(":")
    return len(parts) == 3 and all(parts)


def parse_capability(capability: str) -> CapabilityParts | None:
    if not is_valid_capability(capability):
        return None
    return CapabilityParts(*capability.split(":"))


def build_capability(feature: str, resource: str, action: str) -> str:
    return f"{feature}:{resource}:{action}"


def matches_capability(granted: str, required: str) -> bool:
    """True if one granted capability covers the required one.

    Wildcards are honoured on the granted side only.
    """
    if granted == required or granted == ALL:
        return True
    granted_parts = parse_capability(granted)
    required_parts = parse_capability(required)
    if granted_parts is None or required_parts is None:
        return False
    return all(g == WILDCARD or g == r for g, r in zip(granted_parts, required_parts))


def has_capability_in(granted: Iterable[str], required: str) -> bool:
    granted = list(granted)
    if ALL in granted or required in granted:
        return True
    return any(matches_capability(g, required) for g in granted)


def has_any_capability(granted: Iterable[str], required: Iterable[str]) -> bool:
    granted = list(granted)
    return any(has_capability_in(granted, r) for r in required)


def has_all_capabilities(granted: Iterable[str], required: Iterable[str]) -> bool:
    granted = list(granted)
    return all(has_capability_in(granted, r) for r in required)


def filter_capabilities(granted: Iterable[str], candidates: Iterable[str]) -> list[str]:
    granted = list(granted)
    return [c for c in candidates if has_capability_in(granted, c)]


def create_capability_map(granted: Iterable[str], candidates: Iterable[str]) -> dict[str, bool]:
    granted = list(granted)
    return {c: has_capability_in(granted, c) for c in candidates}


def is_wildcard(capability: str) -> bool:
    return WILDCARD in capability


def wildcard_specificity(capability: str) -> int:
    """Number of concrete segments; ``*:*:*`` is 0, a literal is 3."""
    parts = parse_capability(capability)
    if parts is None:
        return 0
    return sum(1 for part in parts if part != WILDCARD)


def minimize_capabilities(capabilities: Iterable[str]) -> list[str]:
    """Drop duplicates and anything already covered by a broader wildcard."""
    unique = list(dict.fromkeys(capabilities))
    if ALL in unique:
        return [ALL]
    ordered = sorted(unique, key=wildcard_specificity)
    kept: list[str] = []
    for capability in ordered:
        if not any(matches_capability(broader, capability) for broader in kept):
            kept.append(capability)
    return sorted(kept)
