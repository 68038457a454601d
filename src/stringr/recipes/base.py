# recipes/base.py
from __future__ import annotations

from typing import Dict, Iterator, Mapping, Optional, Protocol

from ..actions import StepLog
from ..errors import RecipeError


class Recipe(Protocol):
    """
    A pluggable, named action handler.

    run() receives the step's string parameters and its log sink. It returns
    None on success and raises RecipeError (or another ActionError) on failure.
    """
    name: str

    def run(self, params: Mapping[str, str], log: StepLog) -> None:
        ...


class RecipeRegistry:
    """Name -> handler lookup used by the action dispatcher."""

    def __init__(self, recipes: Optional[Mapping[str, Recipe]] = None):
        self._recipes: Dict[str, Recipe] = dict(recipes or {})

    def register(self, recipe: Recipe, name: str | None = None) -> Recipe:
        key = name or recipe.name
        if not key:
            raise ValueError("recipe must have a non-empty name")
        self._recipes[key] = recipe
        return recipe

    def get(self, name: str) -> Optional[Recipe]:
        return self._recipes.get(name)

    def names(self) -> list[str]:
        return sorted(self._recipes)

    def __contains__(self, name: object) -> bool:
        return name in self._recipes

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


# ---------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------

def require(params: Mapping[str, str], key: str, kind: str) -> str:
    value = params.get(key)
    if not value:
        raise RecipeError(kind, f"missing required parameter '{key}'", parameter=key)
    return value


def split_list(value: str | None) -> list[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def is_true(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() == "true"
