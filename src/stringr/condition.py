# condition.py
from __future__ import annotations

import os
from typing import Callable, Mapping, Optional

from .model import Always, Condition, EnvEquals, EnvExists, FileExists, Never


def should_run(
    condition: Optional[Condition],
    env: Mapping[str, str] | None = None,
    exists: Callable[[str], bool] = os.path.exists,
) -> bool:
    """
    Decide whether a step's action runs.

    Pure apart from the two read-only probes:
      env:    environment snapshot (defaults to the current process environment)
      exists: filesystem existence check (defaults to os.path.exists)

    A missing condition behaves like Always.
    """
    if condition is None or isinstance(condition, Always):
        return True
    if isinstance(condition, Never):
        return False

    if env is None:
        env = os.environ

    if isinstance(condition, EnvEquals):
        # unset and "set to something else" are both false
        return env.get(condition.variable) == condition.value
    if isinstance(condition, EnvExists):
        return condition.variable in env
    if isinstance(condition, FileExists):
        return bool(exists(condition.path))

    raise TypeError(f"Unknown condition type: {type(condition).__name__}")


def describe(condition: Optional[Condition]) -> str:
    """Short human readable form, used in skip messages."""
    if condition is None or isinstance(condition, Always):
        return "always"
    if isinstance(condition, Never):
        return "never"
    if isinstance(condition, EnvEquals):
        return f"env {condition.variable} == {condition.value!r}"
    if isinstance(condition, EnvExists):
        return f"env {condition.variable} is set"
    if isinstance(condition, FileExists):
        return f"file {condition.path} exists"
    return type(condition).__name__
