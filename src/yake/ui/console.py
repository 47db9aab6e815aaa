"""Console output formatting utilities for yake."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

import click


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, color: Optional[bool] = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            color: Force colors on/off; None lets click decide per stream
        """
        self.debug = debug
        self.color = color
        # Parallel runs print whole steps at once; keep them from interleaving.
        self._lock = threading.Lock()

    def _echo(self, message: str = "", err: bool = False) -> None:
        click.echo(message, err=err, color=self.color)

    def print_target_start(self, path: str, doc: str) -> None:
        self._echo(click.style(f"▶ {path}", bold=True) + (f"  {doc}" if doc else ""))

    def print_step(
        self,
        path: str,
        index: int,
        command: str,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """
        Print an executed step with its captured output.

        Every output line is prefixed with `┆` (green on stdout, red on stderr).
        """
        lines = command.strip().splitlines() or [""]
        head = lines[0] + (" …" if len(lines) > 1 else "")
        with self._lock:
            self._echo(
                f"{click.style('↪ Executing', fg='blue', bold=True)} "
                f"{click.style(head, fg='green', bold=True)}:"
            )
            self.print_debug(f"{path} step {index}:\n{command}")
            for line in stdout.splitlines():
                self._echo(f"{click.style('┆', fg='green', bold=True)}  {line}")
            for line in stderr.splitlines():
                self._echo(f"{click.style('┆', fg='red', bold=True)}  {line}", err=True)

    def print_target_done(self, path: str) -> None:
        self._echo(click.style(f"↪ Done {path}", fg="blue", bold=True))

    def print_stage(self, index: int, paths: List[str]) -> None:
        self._echo(f"=== Stage {index}: {', '.join(paths)} ===")

    def print_plan_step(self, index: int, command: str) -> None:
        """Print one rendered step of a dry-run plan."""
        lines = command.rstrip().splitlines() or [""]
        self._echo(f"  [{index}] {lines[0]}")
        for line in lines[1:]:
            self._echo(f"      {line}")

    def print_targets(self, title: str, entries: Iterable[tuple]) -> None:
        """Print (name, type, doc) entries as an aligned listing."""
        entries = list(entries)
        self._echo(title)
        if not entries:
            self._echo("  (no targets)")
            return
        width = max(len(name) for name, _kind, _doc in entries)
        for name, kind, doc in entries:
            self._echo(f"  {name.ljust(width)}  [{kind}]  {doc}")

    def print_results(self, results: Dict[str, str]) -> None:
        """Print final results summary."""
        self._echo("\n" + "=" * 40)
        self._echo("RESULTS")
        self._echo("=" * 40)
        for path, status in results.items():
            color = {"ok": "green", "failed": "red"}.get(status, "yellow")
            status_display = "SUCCESS" if status == "ok" else status.upper()
            self._echo(f"  {path}: {click.style(status_display, fg=color)}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[List[str]] = None,
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
        self._echo(click.style(f"\nERROR: {title}", fg="red", bold=True), err=True)
        self._echo(message, err=True)
        if details:
            for detail in details:
                self._echo(f"  {detail}", err=True)
        if suggestion:
            self._echo(f"\n{suggestion}", err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._echo(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._echo(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._echo(f"[DEBUG] {message}", err=True)


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
