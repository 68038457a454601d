from .actions import StepLog, execute, merge_env
from .condition import should_run
from .dag import plan
from .loader import load_pipeline, parse_definition
from .model import (
    ArtifactAction,
    CheckoutAction,
    CompileAction,
    ExecutionPlan,
    OptimizeMode,
    Pipeline,
    RecipeAction,
    RunOutcome,
    ShellAction,
    Step,
    StepResult,
    StepStatus,
    TestAction,
)
from .runner import Engine, run_pipeline

__version__ = "0.1.0"

__all__ = [
    "ArtifactAction",
    "CheckoutAction",
    "CompileAction",
    "Engine",
    "ExecutionPlan",
    "OptimizeMode",
    "Pipeline",
    "RecipeAction",
    "RunOutcome",
    "ShellAction",
    "Step",
    "StepLog",
    "StepResult",
    "StepStatus",
    "TestAction",
    "execute",
    "load_pipeline",
    "merge_env",
    "parse_definition",
    "plan",
    "run_pipeline",
    "should_run",
]
