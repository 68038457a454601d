# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union


# ----------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ShellAction:
    """Run a command through the shell, optionally inside working_dir."""
    command: str
    working_dir: str | None = None


class OptimizeMode(str, Enum):
    DEBUG = "Debug"
    RELEASE_SAFE = "ReleaseSafe"
    RELEASE_FAST = "ReleaseFast"
    RELEASE_SMALL = "ReleaseSmall"


@dataclass(frozen=True)
class CompileAction:
    """Build an executable with the configured toolchain."""
    source_file: str
    output_name: str
    optimize: OptimizeMode = OptimizeMode.DEBUG


@dataclass(frozen=True)
class TestAction:
    """Run a test file, optionally narrowed by a name filter."""
    __test__ = False  # keep pytest from collecting this class

    test_file: str
    filter: str | None = None


@dataclass(frozen=True)
class CheckoutAction:
    """Shallow clone of `repository` at `branch` into `path`."""
    repository: str
    branch: str
    path: str


@dataclass(frozen=True)
class ArtifactAction:
    """Copy a file, creating the destination's parent directories."""
    source_path: str
    destination: str


@dataclass(frozen=True)
class RecipeAction:
    """
    Pluggable action resolved by name against the recipe registry at dispatch time.

    `type_name` is free-form; an unregistered name is a step failure, not a
    planning error.
    """
    type_name: str
    parameters: Dict[str, str] = field(default_factory=dict)


Action = Union[ShellAction, CompileAction, TestAction, CheckoutAction, ArtifactAction, RecipeAction]

# Actions that run with the merged (process + global + step) environment.
ENV_AWARE_ACTIONS = (ShellAction, CompileAction, TestAction, CheckoutAction)


# ----------------------------------------------------------------------
# Conditions
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Always:
    pass


@dataclass(frozen=True)
class Never:
    pass


@dataclass(frozen=True)
class EnvEquals:
    variable: str
    value: str


@dataclass(frozen=True)
class EnvExists:
    variable: str


@dataclass(frozen=True)
class FileExists:
    path: str


Condition = Union[Always, Never, EnvEquals, EnvExists, FileExists]


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    """
    A named unit of work: one action, its dependencies, env overrides and an
    optional condition (absent means Always).

    Dependency field: `depends_on` (ids of steps that must finish BEFORE this one)
    """
    id: str
    name: str
    action: Action
    depends_on: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    condition: Optional[Condition] = None


@dataclass(frozen=True)
class Pipeline:
    """
    Immutable pipeline definition. Step order is significant: it breaks ties
    when several steps become runnable at the same time.
    """
    name: str
    description: str
    steps: Tuple[Step, ...]
    environment: Dict[str, str] | None = None

    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps]


# ----------------------------------------------------------------------
# Derived: plan + results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ExecutionPlan:
    """
    Ordered levels of step indices. Every dependency of a step in level N
    lies in levels 0..N-1; steps inside one level may run concurrently.
    """
    levels: Tuple[Tuple[int, ...], ...]

    def __iter__(self) -> Iterator[Tuple[int, ...]]:
        return iter(self.levels)

    def __len__(self) -> int:
        return len(self.levels)

    def level_of(self, index: int) -> int:
        for n, level in enumerate(self.levels):
            if index in level:
                return n
        raise KeyError(index)

    def as_ids(self, pipeline: Pipeline) -> List[List[str]]:
        return [[pipeline.steps[i].id for i in level] for level in self.levels]


class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step_id: str
    name: str
    status: StepStatus
    error: Optional[BaseException] = None
    log_path: str | None = None
    log: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED

    @property
    def error_kind(self) -> str | None:
        if self.error is None:
            return None
        return getattr(self.error, "kind", None) or type(self.error).__name__


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class RunOutcome:
    """Success, or Failed(first failing step id, error kind)."""
    status: RunStatus
    results: Tuple[StepResult, ...] = ()
    failed_step: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def result_for(self, step_id: str) -> StepResult:
        for r in self.results:
            if r.step_id == step_id:
                return r
        raise KeyError(step_id)
