# cli.py
from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import click

from stringr import __version__
from stringr.actions import describe
from stringr.dag import plan as build_plan
from stringr.envfile import parse_env_file
from stringr.errors import DefinitionError, EnvFileError, PlanningError
from stringr.loader import load_pipeline
from stringr.model import ExecutionPlan, Pipeline
from stringr.runner import Engine
from stringr.ui.console import Console, get_console, set_console

DEFAULT_DEFINITION = "pipeline.json"


def find_definition_files() -> list[Path]:
    """
    Find all pipeline definitions in the current directory.

    Returns:
        List of Path objects for definition files
    """
    definition_files = []
    current_dir = Path(".")

    default_definition = current_dir / DEFAULT_DEFINITION
    if default_definition.exists():
        return [default_definition]

    for path in current_dir.glob("*.pipeline.json"):
        definition_files.append(path)

    return sorted(definition_files)


def discover_definition(definition_arg: str | None) -> Path:
    """
    Discover the pipeline definition from argument or default.

    Raises:
        SystemExit: If no definition can be found or several are ambiguous
    """
    console = get_console()

    if definition_arg:
        definition_path = Path(definition_arg)
        if not definition_path.exists() and definition_path.suffix != ".json":
            definition_path = Path(str(definition_path) + ".json")
        if not definition_path.exists():
            console.print_error(
                "Pipeline definition not found",
                f"Could not find pipeline definition: {definition_arg}",
                suggestion="Create a definition file or specify a different path:\n  stringr run my.pipeline.json",
            )
            sys.exit(1)
        return definition_path

    definition_files = find_definition_files()

    if len(definition_files) == 0:
        console.print_error(
            "No pipeline definition found",
            "Could not find any pipeline definition.",
            details=[
                "Looked for:",
                f"  {DEFAULT_DEFINITION}",
                "  *.pipeline.json",
            ],
            suggestion=f"Create a definition file:\n  {DEFAULT_DEFINITION}\n\n"
                       "Or specify one explicitly:\n  stringr run my.pipeline.json",
        )
        sys.exit(1)

    if len(definition_files) > 1:
        file_list = "\n".join(f"  {f}" for f in definition_files)
        console.print_error(
            "Multiple pipeline definitions found",
            "Found multiple pipeline definitions. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a definition explicitly:\n  stringr run {definition_files[0]}",
        )
        sys.exit(1)

    return definition_files[0]


def _load(definition_path: Path, env_file: str | None = None) -> Pipeline:
    """Load the definition and overlay the env file onto its globals (file wins)."""
    console = get_console()
    try:
        pipeline = load_pipeline(definition_path)
    except (DefinitionError, FileNotFoundError, OSError) as e:
        console.print_error(
            "Failed to load pipeline",
            f"Could not load pipeline from {definition_path}",
            details=str(e).splitlines(),
        )
        sys.exit(1)

    if env_file:
        try:
            overrides = parse_env_file(env_file)
        except (EnvFileError, OSError) as e:
            console.print_error(
                "Failed to load env file",
                f"Could not parse {env_file}",
                details=str(e).splitlines(),
                suggestion="Use one KEY=VALUE per line; keys may contain letters, digits and '_'.",
            )
            sys.exit(1)
        merged = dict(pipeline.environment or {})
        merged.update(overrides)
        pipeline = replace(pipeline, environment=merged)
        console.print_debug(f"Loaded {len(overrides)} variable(s) from {env_file}")

    return pipeline


def _plan(pipeline: Pipeline) -> ExecutionPlan:
    console = get_console()
    try:
        return build_plan(pipeline)
    except PlanningError as e:
        details = [f"{k}={v}" for k, v in e.details.items()]
        if e.step:
            details.insert(0, f"step={e.step}")
        console.print_error(f"Invalid pipeline ({e.kind})", e.message, details=details)
        sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
def cli(debug):
    """stringr: run a pipeline of steps in dependency order, level by level."""
    console = Console(debug=debug)
    set_console(console)


@cli.command()
@click.argument("definition", required=False)
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="KEY=VALUE file merged into the pipeline environment")
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Maximum parallel steps per level")
@click.option("--log-dir", default=None, type=click.Path(file_okay=False), help="Keep step logs in this directory")
def run(definition, env_file, workers, log_dir):
    """Run a pipeline definition."""
    console = get_console()

    definition_path = discover_definition(definition)
    pipeline = _load(definition_path, env_file)
    plan = _plan(pipeline)

    try:
        outcome = Engine(pipeline, max_workers=workers, log_dir=log_dir, console=console).run(plan)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    if not outcome.ok:
        console.print_error(
            "Pipeline failed",
            f"Step '{outcome.failed_step}' failed: {outcome.error_kind}",
        )
        sys.exit(outcome.exit_code)


@cli.command()
@click.argument("definition", required=False)
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="KEY=VALUE file merged into the pipeline environment")
def plan(definition, env_file):
    """Print the execution levels without running anything."""
    console = get_console()

    definition_path = discover_definition(definition)
    pipeline = _load(definition_path, env_file)
    execution_plan = _plan(pipeline)

    console.print_header(f"Plan: {pipeline.name}")
    levels = []
    for level in execution_plan:
        entries = []
        for i in level:
            step = pipeline.steps[i]
            summary = describe(step.action)
            if step.depends_on:
                summary += f"; after {', '.join(step.depends_on)}"
            entries.append((step.id, summary))
        levels.append(entries)
    console.print_plan(levels)


@cli.command()
@click.argument("definition", required=False)
def validate(definition):
    """Load and plan a pipeline definition, reporting any problem."""
    console = get_console()

    definition_path = discover_definition(definition)
    pipeline = _load(definition_path)
    execution_plan = _plan(pipeline)

    console.print_info(
        f"✓ {definition_path}: {len(pipeline.steps)} step(s) in {len(execution_plan)} level(s)"
    )


@cli.command()
def version():
    """Print the stringr version."""
    click.echo(f"stringr {__version__}")


if __name__ == "__main__":
    cli()
