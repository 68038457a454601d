# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence


@dataclass
class StringrError(Exception):
    """
    Structured error with enough context for:
      - clean CLI output
      - naming the offending step without a traceback
    """
    kind: str
    message: str
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Planning (fatal, raised before any step runs)
# ----------------------------------------------------------------------

class PlanningError(StringrError):
    pass


class InvalidDependency(PlanningError):
    def __init__(self, step: str, dependency: str, known: Sequence[str]):
        super().__init__(
            kind="InvalidDependency",
            message=f"Step '{step}' depends on missing step '{dependency}'",
            step=step,
            details={"dependency": dependency, "known": sorted(known)},
        )
        self.dependency = dependency


class CircularDependency(PlanningError):
    def __init__(self, stuck: Sequence[str]):
        super().__init__(
            kind="CircularDependency",
            message="Dependency graph has a cycle",
            step=stuck[0] if stuck else None,
            details={"stuck": list(stuck)},
        )
        self.stuck = list(stuck)


class EmptyPipeline(PlanningError):
    def __init__(self, pipeline: str):
        super().__init__(
            kind="EmptyPipeline",
            message=f"Pipeline '{pipeline}' has no steps",
        )


class DuplicateStepId(PlanningError):
    def __init__(self, step: str):
        super().__init__(
            kind="DuplicateStepId",
            message=f"Duplicate step id: {step}",
            step=step,
        )


# ----------------------------------------------------------------------
# Actions (per step, fail the run but never the plan)
# ----------------------------------------------------------------------

class ActionError(StringrError):
    pass


class _ProcessError(ActionError):
    KIND = "ProcessFailed"

    def __init__(self, argv: Sequence[str], exit_code: int | None, hint: str | None = None):
        if exit_code is None:
            message = f"could not start: {argv[0]}"
        elif exit_code < 0:
            message = f"terminated by signal {-exit_code}: {' '.join(argv)}"
        else:
            message = f"exit={exit_code}: {' '.join(argv)}"
        details = {"exit_code": exit_code}
        if hint:
            details["hint"] = hint
        super().__init__(kind=self.KIND, message=message, details=details)
        self.argv = list(argv)
        self.exit_code = exit_code


class CommandFailed(_ProcessError):
    KIND = "CommandFailed"


class CompileFailed(_ProcessError):
    KIND = "CompileFailed"


class TestsFailed(_ProcessError):
    __test__ = False
    KIND = "TestsFailed"


class CheckoutFailed(_ProcessError):
    KIND = "CheckoutFailed"


class RecipeNotImplemented(ActionError):
    def __init__(self, type_name: str):
        super().__init__(
            kind="NotImplemented",
            message=f"Recipe '{type_name}' not yet implemented",
            details={"recipe": type_name},
        )
        self.type_name = type_name


class RecipeError(ActionError):
    """Raised by recipe handlers; `kind` names the specific failure."""

    def __init__(self, kind: str, message: str, **details):
        super().__init__(kind=kind, message=message, details=details)


# ----------------------------------------------------------------------
# Input files
# ----------------------------------------------------------------------

class DefinitionError(StringrError):
    pass


class EnvFileError(StringrError):
    pass
