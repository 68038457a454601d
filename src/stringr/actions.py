# actions.py
from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Sequence, Type

from . import settings
from .errors import (
    ActionError,
    CheckoutFailed,
    CommandFailed,
    CompileFailed,
    RecipeNotImplemented,
    TestsFailed,
)
from .model import (
    Action,
    ArtifactAction,
    CheckoutAction,
    CompileAction,
    RecipeAction,
    ShellAction,
    TestAction,
)


TOOL_HINTS = {
    "sh": "Install a POSIX shell or set STRINGR_SHELL.",
    "bash": "Install bash or set STRINGR_SHELL.",
    "git": "Install Git or fix PATH.",
    "zig": "Install the Zig toolchain or set STRINGR_TOOLCHAIN.",
    "docker": "Install Docker and ensure the daemon is running.",
}


# ----------------------------------------------------------------------
# Log sink
# ----------------------------------------------------------------------

class StepLog:
    """
    Append-only log sink for one step, backed by a file.

    Every write is flushed, so the content is retrievable even if the step
    fails halfway through.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")

    def write(self, text: str) -> int:
        self._fh.write(text)
        self._fh.flush()
        return len(text)

    def line(self, text: str = "") -> None:
        self.write(text + "\n")

    def read(self) -> str:
        if not self._fh.closed:
            self._fh.flush()
        return self.path.read_text(encoding="utf-8")

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> "StepLog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


# ----------------------------------------------------------------------
# Environment
# ----------------------------------------------------------------------

def merge_env(
    global_env: Mapping[str, str] | None,
    step_env: Mapping[str, str] | None,
    base: Mapping[str, str] | None = None,
) -> Dict[str, str]:
    """
    Build the environment for one step: process env, overlaid by pipeline
    globals, overlaid last by step entries (step wins on collision).

    Always returns a fresh dict owned by the caller.
    """
    env = dict(os.environ if base is None else base)
    env.update(global_env or {})
    env.update(step_env or {})
    return env


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _spawn(
    argv: Sequence[str],
    *,
    env: Mapping[str, str],
    log: StepLog,
    error: Type[ActionError],
    cwd: str | None = None,
) -> None:
    """Run one external process, copy combined stdout/stderr into the log."""
    try:
        proc = subprocess.run(
            list(argv),
            cwd=cwd,
            env=dict(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,  # interleaved, as the tool wrote it
        )
    except (FileNotFoundError, PermissionError) as e:
        tool = os.path.basename(argv[0])
        log.line(f"Could not start {argv[0]}: {e.strerror or e}")
        raise error(argv, None, hint=TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")) from e

    output = proc.stdout.decode("utf-8", errors="replace") if proc.stdout else ""
    if output:
        log.write(output if output.endswith("\n") else output + "\n")

    if proc.returncode != 0:
        if proc.returncode < 0:
            log.line(f"Process terminated abnormally (signal {-proc.returncode})")
        else:
            log.line(f"Process failed with exit code {proc.returncode}")
        raise error(argv, proc.returncode)


def _run_shell(action: ShellAction, env: Mapping[str, str], log: StepLog) -> None:
    cwd = None
    if action.working_dir:
        cwd = str(Path(action.working_dir).resolve())
        if not os.path.isdir(cwd):
            raise FileNotFoundError(f"working_dir not found: {cwd}")
    _spawn([settings.SHELL, "-c", action.command], env=env, log=log, error=CommandFailed, cwd=cwd)


def _run_compile(action: CompileAction, env: Mapping[str, str], log: StepLog) -> None:
    mode = getattr(action.optimize, "value", action.optimize)
    argv = [
        settings.TOOLCHAIN,
        "build-exe",
        action.source_file,
        f"-O{mode}",
        "--name",
        action.output_name,
    ]
    _spawn(argv, env=env, log=log, error=CompileFailed)


def _run_test(action: TestAction, env: Mapping[str, str], log: StepLog) -> None:
    argv = [settings.TOOLCHAIN, "test", action.test_file]
    if action.filter:
        argv.extend(["--test-filter", action.filter])
    _spawn(argv, env=env, log=log, error=TestsFailed)


def _run_checkout(action: CheckoutAction, env: Mapping[str, str], log: StepLog) -> None:
    argv = [
        "git",
        "clone",
        "--branch",
        action.branch,
        "--depth",
        "1",
        action.repository,
        action.path,
    ]
    _spawn(argv, env=env, log=log, error=CheckoutFailed)


def _run_artifact(action: ArtifactAction, log: StepLog) -> None:
    # filesystem errors propagate unchanged
    dest = Path(action.destination)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(action.source_path, dest)
    shutil.copymode(action.source_path, dest)
    log.line(f"Artifact copied: {action.source_path} -> {action.destination}")


def _run_recipe(action: RecipeAction, log: StepLog, registry) -> None:
    from .recipes import default_registry

    if registry is None:
        registry = default_registry()

    handler = registry.get(action.type_name)
    if handler is None:
        log.line(f"Recipe '{action.type_name}' not yet implemented")
        raise RecipeNotImplemented(action.type_name)

    handler.run(dict(action.parameters), log)


_ENV_HANDLERS: Dict[type, Callable[[Action, Mapping[str, str], StepLog], None]] = {
    ShellAction: _run_shell,
    CompileAction: _run_compile,
    TestAction: _run_test,
    CheckoutAction: _run_checkout,
}


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def execute(
    action: Action,
    env: Optional[Mapping[str, str]],
    log: StepLog,
    *,
    registry=None,
) -> None:
    """
    Run one step's action synchronously.

    env is the merged step environment (see merge_env); Artifact and Recipe
    actions ignore it. Returns None on success, raises ActionError (or an
    OSError for artifact filesystem problems) on failure.
    """
    handler = _ENV_HANDLERS.get(type(action))
    if handler is not None:
        handler(action, merge_env(None, None) if env is None else env, log)
        return

    if isinstance(action, ArtifactAction):
        _run_artifact(action, log)
        return

    if isinstance(action, RecipeAction):
        _run_recipe(action, log, registry)
        return

    raise TypeError(f"Unknown action type: {type(action).__name__}")


def describe(action: Action) -> str:
    """One-line summary for plan output."""
    if isinstance(action, ShellAction):
        return f"shell: {action.command}"
    if isinstance(action, CompileAction):
        return f"compile: {action.source_file} -> {action.output_name}"
    if isinstance(action, TestAction):
        return f"test: {action.test_file}"
    if isinstance(action, CheckoutAction):
        return f"checkout: {action.repository}@{action.branch}"
    if isinstance(action, ArtifactAction):
        return f"artifact: {action.source_path} -> {action.destination}"
    if isinstance(action, RecipeAction):
        return f"recipe: {action.type_name}"
    return type(action).__name__

