# loader.py
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .errors import DefinitionError
from .model import (
    Action,
    Always,
    ArtifactAction,
    CheckoutAction,
    CompileAction,
    Condition,
    EnvEquals,
    EnvExists,
    FileExists,
    Never,
    OptimizeMode,
    Pipeline,
    RecipeAction,
    ShellAction,
    Step,
    TestAction,
)

_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


def _fail(kind: str, message: str, step: str | None = None, **details) -> DefinitionError:
    return DefinitionError(kind=kind, message=message, step=step, details=details)


def _string(obj: Mapping[str, Any], key: str, where: str, *, step: str | None = None,
            required: bool = True, non_empty: bool = True) -> str | None:
    if key not in obj or obj[key] is None:
        if required:
            raise _fail("MissingField", f"Missing required field '{key}' in {where}", step, field=key)
        return None
    value = obj[key]
    if not isinstance(value, str):
        raise _fail("InvalidFieldValue", f"Field '{key}' must be a string in {where}", step, field=key)
    if non_empty and not value:
        raise _fail("InvalidFieldValue", f"Field '{key}' must be a non-empty string in {where}", step, field=key)
    return value


def _string_map(value: Any, field: str, where: str, step: str | None = None) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _fail("InvalidFieldValue", f"Field '{field}' must be an object in {where}", step, field=field)
    out: Dict[str, str] = {}
    for k, v in value.items():
        if not isinstance(v, str):
            raise _fail(
                "InvalidFieldValue",
                f"'{field}.{k}' must be a string in {where}",
                step,
                field=f"{field}.{k}",
            )
        out[k] = v
    return out


# ----------------------------------------------------------------------
# Actions / conditions
# ----------------------------------------------------------------------

def _parse_action(data: Any, step_id: str) -> Action:
    where = f"action of step '{step_id}'"
    if not isinstance(data, dict):
        raise _fail("MissingField", f"Missing required field 'action' in step '{step_id}'", step_id, field="action")

    kind = _string(data, "type", where, step=step_id)

    if kind == "shell":
        return ShellAction(
            command=_string(data, "command", where, step=step_id),
            working_dir=_string(data, "working_dir", where, step=step_id, required=False),
        )

    if kind == "compile":
        raw_mode = _string(data, "optimize", where, step=step_id)
        try:
            mode = OptimizeMode(raw_mode)
        except ValueError:
            raise _fail(
                "InvalidFieldValue",
                f"Invalid optimize mode '{raw_mode}' in {where} "
                f"(expected one of: {', '.join(m.value for m in OptimizeMode)})",
                step_id,
                field="optimize",
            )
        return CompileAction(
            source_file=_string(data, "source_file", where, step=step_id),
            output_name=_string(data, "output_name", where, step=step_id),
            optimize=mode,
        )

    if kind == "test":
        return TestAction(
            test_file=_string(data, "test_file", where, step=step_id),
            filter=_string(data, "filter", where, step=step_id, required=False),
        )

    if kind == "checkout":
        return CheckoutAction(
            repository=_string(data, "repository", where, step=step_id),
            branch=_string(data, "branch", where, step=step_id),
            path=_string(data, "path", where, step=step_id),
        )

    if kind == "artifact":
        return ArtifactAction(
            source_path=_string(data, "source_path", where, step=step_id),
            destination=_string(data, "destination", where, step=step_id),
        )

    # anything else is a recipe, resolved at dispatch time
    return RecipeAction(
        type_name=kind,
        parameters=_string_map(data.get("parameters"), "parameters", where, step_id),
    )


def _parse_condition(data: Any, step_id: str) -> Condition | None:
    if data is None:
        return None
    where = f"condition of step '{step_id}'"
    if not isinstance(data, dict):
        raise _fail("InvalidFieldValue", f"Field 'condition' must be an object in step '{step_id}'", step_id)

    kind = _string(data, "type", where, step=step_id)
    if kind == "always":
        return Always()
    if kind == "never":
        return Never()
    if kind == "env_equals":
        return EnvEquals(
            variable=_string(data, "variable", where, step=step_id),
            value=_string(data, "value", where, step=step_id, non_empty=False),
        )
    if kind == "env_exists":
        return EnvExists(variable=_string(data, "variable", where, step=step_id))
    if kind == "file_exists":
        return FileExists(path=_string(data, "path", where, step=step_id))

    raise _fail("InvalidFieldValue", f"Unknown condition type '{kind}' in step '{step_id}'", step_id, field="condition")


# ----------------------------------------------------------------------
# Steps / pipeline
# ----------------------------------------------------------------------

def _parse_step(data: Any, index: int) -> Step:
    if not isinstance(data, dict):
        raise _fail("InvalidFieldValue", f"Step at index {index} must be an object", index=index)

    step_id = _string(data, "id", f"step at index {index}")
    if not _ID_RE.fullmatch(step_id):
        raise _fail(
            "InvalidFieldValue",
            f"Step ID '{step_id}' contains invalid characters. "
            "Only alphanumeric, underscore, and hyphen are allowed",
            step_id,
            field="id",
        )
    where = f"step '{step_id}'"
    name = _string(data, "name", where, step=step_id)

    raw_deps = data.get("depends_on") or []
    if not isinstance(raw_deps, list):
        raise _fail("InvalidFieldValue", f"Field 'depends_on' must be a list in {where}", step_id)
    deps: List[str] = []
    for i, dep in enumerate(raw_deps):
        if not isinstance(dep, str) or not dep:
            raise _fail(
                "InvalidFieldValue",
                f"Dependency at index {i} must be a non-empty string in {where}",
                step_id,
                field="depends_on",
            )
        deps.append(dep)

    return Step(
        id=step_id,
        name=name,
        action=_parse_action(data.get("action"), step_id),
        depends_on=tuple(deps),
        env=_string_map(data.get("env"), "env", where, step_id),
        condition=_parse_condition(data.get("condition"), step_id),
    )


def parse_definition(data: str | Mapping[str, Any]) -> Pipeline:
    """
    Build a Pipeline from a JSON document (text or already-decoded dict).

    Structural problems raise DefinitionError; dependency resolution and
    cycles are left to the planner.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise _fail("InvalidJson", f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise _fail("InvalidJson", "Pipeline definition must be a JSON object")

    name = _string(data, "name", "pipeline")
    description = _string(data, "description", "pipeline", required=False, non_empty=False) or ""

    raw_steps = data.get("steps")
    if raw_steps is None:
        raise _fail("MissingField", "Missing required field 'steps' in pipeline", field="steps")
    if not isinstance(raw_steps, list):
        raise _fail("InvalidFieldValue", "Field 'steps' must be a list", field="steps")
    if not raw_steps:
        raise _fail("EmptyPipeline", "Pipeline must contain at least one step")

    steps: List[Step] = []
    seen = set()
    for i, raw in enumerate(raw_steps):
        step = _parse_step(raw, i)
        if step.id in seen:
            raise _fail("DuplicateStepId", f"Duplicate step ID '{step.id}'", step.id)
        seen.add(step.id)
        steps.append(step)

    environment = data.get("environment")
    return Pipeline(
        name=name,
        description=description,
        steps=tuple(steps),
        environment=_string_map(environment, "environment", "pipeline") if environment is not None else None,
    )


def load_pipeline(path: str | Path) -> Pipeline:
    """Load a pipeline definition from a JSON file."""
    def_path = Path(path).expanduser().resolve()
    if not def_path.exists():
        raise FileNotFoundError(f"Pipeline definition not found: {def_path}")

    text = def_path.read_text(encoding="utf-8")
    if not text.strip():
        raise _fail("InvalidJson", f"File '{def_path.name}' is empty")
    return parse_definition(text)
