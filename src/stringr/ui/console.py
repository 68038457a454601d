"""Console output formatting utilities for stringr."""

from __future__ import annotations

import sys
from typing import Iterable, Optional, Sequence

from ..model import StepResult, StepStatus


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        description: str,
        step_count: int,
        level_count: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Pipeline: {pipeline}")
        if description:
            print(f"Description: {description}")
        print(f"Steps: {step_count}")
        print(f"Levels: {level_count}")
        print()

    def print_level(self, number: int, step_ids: Sequence[str]) -> None:
        print(f"\n=== Level {number}: [{', '.join(step_ids)}] ===")

    def print_step_output(self, text: str) -> None:
        """Replay a step's captured log."""
        if not text:
            return
        print(text, end="" if text.endswith("\n") else "\n")

    def print_step_success(self, name: str) -> None:
        print(f"✓ {name} completed")

    def print_step_skipped(self, name: str, reason: str = "condition not met") -> None:
        print(f"⏭ {name} skipped ({reason})")

    def print_step_failure(
        self,
        name: str,
        kind: str,
        error: BaseException,
    ) -> None:
        """
        Print failure message.

        Shows the first line of the error normally, the full structured
        error (every detail line) in debug mode.
        """
        print(f"✗ {name} failed: {kind}")
        details = getattr(error, "details", None) or {}
        if self.debug:
            print(f"Error details: {error}")
            return
        message = getattr(error, "message", None) or str(error)
        first_line = message.split("\n")[0] if message else "Unknown error"
        print(f"Error: {first_line}")
        if details.get("hint"):
            print(f"Hint: {details['hint']}")

    def print_step_result(self, result: StepResult) -> None:
        """Captured log first, then the status line."""
        self.print_step_output(result.log)
        if result.status is StepStatus.SUCCESS:
            self.print_step_success(result.name)
        elif result.status is StepStatus.SKIPPED:
            self.print_step_skipped(result.name)
        else:
            self.print_step_failure(result.name, result.error_kind or "Error", result.error)

    def print_plan(self, levels: Iterable[Sequence[tuple]]) -> None:
        """
        Print an execution plan.

        Args:
            levels: per level, (step_id, summary) pairs
        """
        for n, level in enumerate(levels):
            print(f"Level {n}:")
            for step_id, summary in level:
                print(f"  {step_id} ({summary})")

    def print_results(self, results: Iterable[StepResult]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for r in results:
            print(f"  {r.step_id}: {r.status.value.upper()}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
