"""
Resource scope variants.

A membership scope is stored as JSON: ``null`` (unrestricted), an array of
tags, or an object mapping a category (``trades``, ``floors``, ``areas``...)
to an array of tags. In memory it is one of three tagged variants.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ScopeNone(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


class ScopeList(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    tags: tuple[str, ...] = ()


class ScopeCategorized(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["categorized"] = "categorized"
    categories: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    def tags_for(self, category: str) -> tuple[str, ...] | None:
        return self.categories.get(category)

    def all_tags(self) -> set[str]:
        return {tag for tags in self.categories.values() for tag in tags}


Scope = Annotated[Union[ScopeNone, ScopeList, ScopeCategorized], Field(discriminator="kind")]

UNRESTRICTED = ScopeNone()


def coerce_scope(value: Any, strict: bool = False) -> ScopeNone | ScopeList | ScopeCategorized:
    """Build a scope variant from stored JSON, a bare tag or an existing variant.

    Categories whose value is not an array are dropped, so a lookup against
    them fails the same way a missing category does. With ``strict`` they
    raise ``TypeError`` instead.
    """
    if isinstance(value, (ScopeNone, ScopeList, ScopeCategorized)):
        return value
    if value is None:
        return UNRESTRICTED
    if isinstance(value, str):
        return ScopeList(tags=(value,))
    if isinstance(value, (list, tuple, set, frozenset)):
        return ScopeList(tags=tuple(str(tag) for tag in value))
    if isinstance(value, dict):
        if strict:
            for category, tags in value.items():
                if not isinstance(tags, (list, tuple)):
                    raise TypeError(f"Scope category {category!r} must be an array")
        return ScopeCategorized(
            categories={
                str(category): tuple(str(tag) for tag in tags)
                for category, tags in value.items()
                if isinstance(tags, (list, tuple))
            }
        )
    raise TypeError(f"Unsupported scope value: {type(value).__name__}")


def scope_to_json(scope: ScopeNone | ScopeList | ScopeCategorized) -> list[str] | dict[str, list[str]] | None:
    """Inverse of ``coerce_scope`` for persistence."""
    if isinstance(scope, ScopeList):
        return list(scope.tags)
    if isinstance(scope, ScopeCategorized):
        return {category: list(tags) for category, tags in scope.categories.items()}
    return None
