"""
Scope matching: does a member's scope restriction cover a resource's tags?

Both sides accept anything ``coerce_scope`` understands (stored JSON, a bare
tag, or a scope variant). A requested scope is satisfied when, for every
requested category, at least one of its tags is permitted. A requested
scope that cannot be parsed is denied.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from siteaccess.core.errors import InvalidScopeError
from siteaccess.schemas.scope import ScopeCategorized, ScopeList, ScopeNone, coerce_scope

T = TypeVar("T")


def scope_allows(membership_scope: Any, requested: Any) -> bool:
    membership = coerce_scope(membership_scope)
    # A malformed request must never widen into a partial or empty match.
    try:
        wanted = coerce_scope(requested, strict=True)
    except TypeError:
        return False

    if isinstance(membership, ScopeNone):
        return True
    if isinstance(wanted, ScopeNone):
        return True

    if isinstance(wanted, ScopeList):
        if not wanted.tags:
            return True
        permitted = set(membership.tags) if isinstance(membership, ScopeList) else membership.all_tags()
        return any(tag in permitted for tag in wanted.tags)

    for category, tags in wanted.categories.items():
        if not tags:
            continue
        if isinstance(membership, ScopeList):
            permitted = set(membership.tags)
        else:
            category_tags = membership.tags_for(category)
            if category_tags is None:
                return False
            permitted = set(category_tags)
        if not any(tag in permitted for tag in tags):
            return False
    return True


def member_has_scope_access(membership_scope: Any, category: str | None, tag: str) -> bool:
    """Single-tag check; ``category`` is ignored for list-form scopes."""
    if category is None:
        return scope_allows(membership_scope, tag)
    return scope_allows(membership_scope, {category: [tag]})


def has_limitations(membership_scope: Any) -> bool:
    return not isinstance(coerce_scope(membership_scope), ScopeNone)


def scope_tags(scope: Any) -> list[str]:
    """Flatten a scope into its tags, categories discarded."""
    parsed = coerce_scope(scope)
    if isinstance(parsed, ScopeList):
        return [t for t in parsed.tags if t]
    if isinstance(parsed, ScopeCategorized):
        return [t for tags in parsed.categories.values() for t in tags if t]
    return []


def scopes_overlap(first: Any, second: Any) -> bool:
    other = set(scope_tags(second))
    return any(tag in other for tag in scope_tags(first))


def filter_by_scope(
    items: Iterable[T],
    membership_scope: Any,
    get_scope: Callable[[T], Any],
) -> list[T]:
    """Keep the items whose scope tags the member is allowed to reach."""
    return [item for item in items if scope_allows(membership_scope, get_scope(item))]


def validate_scope(raw: Any) -> None:
    """Reject scope payloads that could never be matched meaningfully."""
    if raw is None:
        return
    if isinstance(raw, list):
        if not raw:
            raise InvalidScopeError("Scope array cannot be empty")
        _validate_tags(raw, "Scope")
        return
    if isinstance(raw, dict):
        if not raw:
            raise InvalidScopeError("Scope object cannot be empty")
        for category, tags in raw.items():
            if not isinstance(category, str) or not category.strip():
                raise InvalidScopeError("Scope categories must be non-empty strings")
            if not isinstance(tags, list):
                raise InvalidScopeError(f"Scope category '{category}' must be an array")
            if not tags:
                raise InvalidScopeError(f"Scope category '{category}' cannot be empty")
            _validate_tags(tags, f"Scope category '{category}'")
        return
    raise InvalidScopeError("Scope must be an array or an object")


def _validate_tags(tags: list, label: str) -> None:
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise InvalidScopeError(f"{label} values must be non-empty strings")
