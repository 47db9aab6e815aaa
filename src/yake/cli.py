# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from yake import __version__, settings
from yake.dag import build_order, execution_levels
from yake.env import snapshot_environ
from yake.errors import EXIT_INTERRUPTED, ResolutionError, YakeError
from yake.loader import load_yakefile
from yake.model import Target, Tree
from yake.runner import Executor
from yake.ui.console import Console, get_console, set_console


def list_children(tree: Tree, node: Target) -> None:
    """Help-like listing of a group's immediate children."""
    console = get_console()
    title = f"{node.path}: {node.doc}" if node.path else f"{tree.meta.doc} (version {tree.meta.version})"
    console.print_targets(
        title,
        [(child.name, child.kind.value, child.doc) for child in tree.children_of(node)],
    )


def list_callables(tree: Tree) -> None:
    get_console().print_targets(
        "Available targets:",
        [(n.path, n.kind.value, n.doc) for n in tree.callables()],
    )


def check_tree(tree: Tree, executor: Executor) -> int:
    """
    Plan every callable without running anything.

    Returns the number of callables checked; raises the first structural error.
    """
    console = get_console()
    callables = tree.callables()
    for node in callables:
        executor.plan(node)
        console.print_debug(f"ok: {node.path}")
    return len(callables)


def print_plan(tree: Tree, executor: Executor, node: Target) -> None:
    console = get_console()
    plans = {p.path: p for p in executor.plan(node)}
    for i, level in enumerate(execution_levels(tree, node), start=1):
        console.print_stage(i, [n.path for n in level])
        for target in level:
            console.print_info(target.path)
            for index, step in enumerate(plans[target.path].steps):
                console.print_plan_step(index, step)


def report_error(e: YakeError) -> None:
    console = get_console()
    suggestion = None
    if isinstance(e, ResolutionError):
        suggestion = "List the available targets with:\n  yake --list"
    console.print_error(e.kind, e.message, details=str(e).splitlines()[1:], suggestion=suggestion)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("target", required=False, default="")
@click.option(
    "-f",
    "--file",
    "yakefile",
    default=settings.YAKEFILE,
    envvar="YAKE_FILE",
    show_default=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Yakefile to load",
)
@click.option("--shell", default=settings.SHELL, envvar="YAKE_SHELL", show_default=True,
              help="Shell each step runs in (invoked as SHELL -c STEP)")
@click.option("-j", "--workers", default=settings.WORKERS, envvar="YAKE_WORKERS", type=click.IntRange(min=1),
              show_default=True, help="Run up to N independent targets in parallel")
@click.option("--list", "list_targets", is_flag=True, default=False, help="List all callable targets")
@click.option("--check", is_flag=True, default=False, help="Validate the whole Yakefile without running anything")
@click.option("--dry-run", is_flag=True, default=False, help="Print the rendered steps instead of running them")
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.version_option(__version__, prog_name="yake")
def cli(target, yakefile, shell, workers, list_targets, check, dry_run, debug):
    """yake: make with yaml files.

    Runs TARGET (a dotted path such as `docker.postgres`) after its
    dependencies. A group TARGET, or none, lists the available targets.
    """
    console = Console(debug=debug)
    set_console(console)
    environ = snapshot_environ()

    try:
        tree = load_yakefile(yakefile)
        console.print_debug(f"loaded {yakefile} ({len(tree.nodes) - 1} targets)")

        if list_targets:
            list_callables(tree)
            return

        executor = Executor(tree, environ=environ, shell=shell, workers=workers, console=console)

        if check:
            count = check_tree(tree, executor)
            console.print_info(f"{yakefile}: {count} callable target(s) OK")
            return

        node = tree.resolve(target)
        if not node.is_callable:
            list_children(tree, node)
            return

        if dry_run:
            print_plan(tree, executor, node)
            return

        if debug:
            console.print_debug(f"order: {[n.path for n in build_order(tree, node)]}")
        result = executor.run(node)
        console.print_results(result.results)

        if result.failure is not None:
            failure = result.failure
            console.print_error(
                "Execution failed",
                str(failure),
                details=failure.stderr.splitlines()[-10:] if console.debug else None,
            )
        if result.exit_code != 0:
            sys.exit(result.exit_code)

    except YakeError as e:
        report_error(e)
        if debug:
            console.print_exception(e)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
