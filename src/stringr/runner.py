# runner.py
from __future__ import annotations

import os
import re
import tempfile
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import ExitStack
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from . import settings
from .actions import StepLog, execute, merge_env
from .condition import should_run
from .dag import plan as build_plan
from .model import (
    ENV_AWARE_ACTIONS,
    ExecutionPlan,
    Pipeline,
    RunOutcome,
    RunStatus,
    StepResult,
    StepStatus,
)
from .ui.console import Console, get_console

# plan ---> level 0 (fork/join) ---> level 1 ---> ... ---> outcome


class EngineState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", name).strip("-") or "pipeline"


class Engine:
    """
    Executes one pipeline, level by level.

    Levels run strictly in sequence. Inside a level every step gets its own
    worker, environment copy and log file; the level ends at a barrier where
    all workers are joined. Results are then reported in declared order, and
    the first failure stops the run before the next level starts. Siblings of
    a failing step are never cancelled.

    An Engine is single-use: Pending -> Running -> Completed | Failed.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        *,
        registry=None,
        max_workers: int | None = None,
        log_dir: str | Path | None = None,
        console: Console | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.pipeline = pipeline
        self.registry = registry
        self.max_workers = max_workers if max_workers is not None else settings.MAX_WORKERS
        self.log_dir = log_dir if log_dir is not None else settings.LOG_DIR
        self.console = console or get_console()
        self.environ = environ
        self.state = EngineState.PENDING

    # ------------------------------------------------------------------
    # One step
    # ------------------------------------------------------------------

    def _run_step(self, index: int, log_root: Path) -> StepResult:
        step = self.pipeline.steps[index]
        path = log_root / f"step_{step.id}.log"
        try:
            if path.exists():
                path.unlink()
            log = StepLog(path)
        except OSError as e:
            # no log sink: the step fails before its action runs
            return StepResult(
                step_id=step.id,
                name=step.name,
                status=StepStatus.FAILED,
                error=e,
                log_path=str(path),
            )

        env_snapshot = os.environ if self.environ is None else self.environ
        status, error = StepStatus.SUCCESS, None

        with log:
            try:
                if not should_run(step.condition, env_snapshot):
                    status = StepStatus.SKIPPED
                else:
                    env = None
                    if isinstance(step.action, ENV_AWARE_ACTIONS):
                        env = merge_env(self.pipeline.environment, step.env, base=env_snapshot)
                    execute(step.action, env, log, registry=self.registry)
            except Exception as e:
                # any failure inside the unit belongs to this step
                status, error = StepStatus.FAILED, e
            text = log.read()

        return StepResult(
            step_id=step.id,
            name=step.name,
            status=status,
            error=error,
            log_path=str(path),
            log=text,
        )

    # ------------------------------------------------------------------
    # One level
    # ------------------------------------------------------------------

    def _run_level(self, level: Tuple[int, ...], log_root: Path) -> List[StepResult]:
        if len(level) == 1:
            return [self._run_step(level[0], log_root)]

        workers = len(level)
        if self.max_workers:
            workers = max(1, min(workers, self.max_workers))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stringr-step") as pool:
            # dispatch in declared order
            futures = [pool.submit(self._run_step, i, log_root) for i in level]
            wait(futures)

        return [f.result() for f in futures]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, plan: ExecutionPlan | None = None) -> RunOutcome:
        if self.state is not EngineState.PENDING:
            raise RuntimeError(f"Engine already used (state={self.state.value})")

        self.state = EngineState.RUNNING
        try:
            if plan is None:
                plan = build_plan(self.pipeline)
            outcome = self._execute(plan)
        except BaseException:
            self.state = EngineState.FAILED
            raise

        self.state = EngineState.COMPLETED if outcome.ok else EngineState.FAILED
        return outcome

    def _execute(self, plan: ExecutionPlan) -> RunOutcome:
        console = self.console
        pipeline = self.pipeline

        console.print_run_started(
            pipeline=pipeline.name,
            description=pipeline.description,
            step_count=len(pipeline.steps),
            level_count=len(plan),
        )

        results: List[StepResult] = []
        failed: Optional[StepResult] = None

        with ExitStack() as stack:
            if self.log_dir:
                log_root = Path(self.log_dir).expanduser().resolve()
                log_root.mkdir(parents=True, exist_ok=True)
            else:
                tmp = stack.enter_context(
                    tempfile.TemporaryDirectory(prefix=f"stringr-{_safe_name(pipeline.name)}-")
                )
                log_root = Path(tmp)
            console.print_debug(f"Step logs: {log_root}")

            for n, level in enumerate(plan):
                console.print_level(n, [pipeline.steps[i].id for i in level])

                level_results = self._run_level(level, log_root)

                # barrier passed: report in declared order
                for result in level_results:
                    console.print_step_result(result)
                    if failed is None and result.status is StepStatus.FAILED:
                        failed = result
                results.extend(level_results)

                if failed is not None:
                    break

        console.print_results(results)

        if failed is not None:
            return RunOutcome(
                status=RunStatus.FAILED,
                results=tuple(results),
                failed_step=failed.step_id,
                error_kind=failed.error_kind,
            )
        return RunOutcome(status=RunStatus.SUCCESS, results=tuple(results))


def run_pipeline(pipeline: Pipeline, **kwargs) -> RunOutcome:
    """Plan and run in one call. Planning errors raise before any step runs."""
    plan = build_plan(pipeline)
    return Engine(pipeline, **kwargs).run(plan)
