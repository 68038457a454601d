# tests/conftest.py
"""
Shared builders for pipelines and steps.

Steps default to a shell `true`, so tests only spell out what they care
about. The console fixture installs a fresh non-debug Console so output
assertions go through capsys.
"""
from __future__ import annotations

import pytest

from stringr.actions import StepLog
from stringr.model import Pipeline, ShellAction, Step
from stringr.ui.console import Console, set_console


def make_step(step_id, deps=(), command="true", **kwargs):
    kwargs.setdefault("action", ShellAction(command=command))
    return Step(id=step_id, name=kwargs.pop("name", step_id), depends_on=tuple(deps), **kwargs)


def make_pipeline(*steps, environment=None, name="test-pipeline"):
    return Pipeline(name=name, description="", steps=tuple(steps), environment=environment)


@pytest.fixture
def step():
    return make_step


@pytest.fixture
def pipeline():
    return make_pipeline


@pytest.fixture
def console():
    c = Console(debug=False)
    set_console(c)
    return c


@pytest.fixture
def log(tmp_path):
    with StepLog(tmp_path / "step.log") as sink:
        yield sink
