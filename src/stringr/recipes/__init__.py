from .base import Recipe, RecipeRegistry
from .cache import CacheRecipe, CacheStore
from .docker import DockerRecipe, docker_command
from .http import HttpRecipe
from .slack import SlackRecipe


def default_registry() -> RecipeRegistry:
    """Registry with every built-in recipe."""
    registry = RecipeRegistry()
    for recipe in (DockerRecipe(), CacheRecipe(), HttpRecipe(), SlackRecipe()):
        registry.register(recipe)
    return registry


__all__ = [
    "Recipe",
    "RecipeRegistry",
    "CacheRecipe",
    "CacheStore",
    "DockerRecipe",
    "HttpRecipe",
    "SlackRecipe",
    "default_registry",
    "docker_command",
]
