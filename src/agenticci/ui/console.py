"""Console output formatting utilities for agenticci."""

from __future__ import annotations

import sys
from typing import Iterable, List, Optional


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

    def print_compiled(self, source: str, target: str, job_count: int) -> None:
        """Print compile result information."""
        print("\nCOMPILED")
        print(f"Workflow: {source}")
        print(f"Lock file: {target}")
        print(f"Jobs: {job_count}")

    def print_levels(self, levels: List[List[str]], needs: dict[str, list[str]]) -> None:
        """Print the job graph one topological level per block."""
        for i, level in enumerate(levels):
            print(f"\nLEVEL {i}")
            for name in level:
                deps = needs.get(name) or []
                if deps:
                    print(f"  {name} <- {', '.join(deps)}")
                else:
                    print(f"  {name}")

    def print_warning(self, check: str, message: str) -> None:
        """Print a non-fatal validation finding."""
        print(f"WARNING ({check}): {message}", file=sys.stderr)

    def print_warnings(self, warnings: Iterable) -> None:
        for warning in warnings:
            self.print_warning(warning.check, warning.message)

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

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (initialized by the CLI)
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
