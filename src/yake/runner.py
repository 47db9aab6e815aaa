# runner.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from . import settings
from .dag import build_graph, build_order
from .env import effective_env, snapshot_environ
from .errors import EXIT_INTERRUPTED, ExecutionError
from .model import Target, Tree
from .template import render
from .ui.console import Console, get_console

# Seconds between checks for a peer failure while a step is running.
POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class PlannedTarget:
    """A callable ready to run: composed environment plus rendered steps."""
    target: Target
    env: Dict[str, str]
    steps: List[str]

    @property
    def path(self) -> str:
        return self.target.path


@dataclass
class RunResult:
    """
    Outcome of `Executor.run`.

    `results` maps every target of the execution order to one of
      ok | failed | cancelled (started, not finished) | skipped (never started)
    """
    target: str
    results: Dict[str, str] = field(default_factory=dict)
    failure: Optional[ExecutionError] = None
    interrupted: bool = False

    @property
    def exit_code(self) -> int:
        if self.failure is not None:
            return self.failure.exit_code
        if self.interrupted:
            return EXIT_INTERRUPTED
        return 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class _Cancelled(Exception):
    """A target stopped before (or while) running a step because the run was cancelled."""


class Executor:
    """
    Runs a callable and its transitive dependencies.

    The ambient environment is snapshotted once, at construction, and only
    ever read. With `workers > 1` independent branches run concurrently; a
    target still never starts before all of its dependencies succeeded.
    """

    def __init__(
        self,
        tree: Tree,
        *,
        environ: Optional[Mapping[str, str]] = None,
        shell: str = settings.SHELL,
        workers: int = 1,
        cwd: Union[str, Path, None] = None,
        console: Optional[Console] = None,
    ):
        self.tree = tree
        self.environ = dict(environ) if environ is not None else snapshot_environ()
        self.shell = shell
        self.workers = max(1, workers)
        self.cwd = str(cwd) if cwd is not None else None
        self.console = console or get_console()
        self._stop = threading.Event()
        self._abort = threading.Event()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _target(self, target: Union[Target, str]) -> Target:
        return self.tree.resolve(target) if isinstance(target, str) else target

    def prepare(self, target: Target) -> PlannedTarget:
        """Compose the environment and render every step of one callable."""
        return PlannedTarget(
            target=target,
            env=effective_env(self.tree, target, self.environ),
            steps=[
                render(step, self.tree.meta, target, index=i)
                for i, step in enumerate(target.steps)
            ],
        )

    def plan(self, target: Union[Target, str]) -> List[PlannedTarget]:
        """
        Execution order of `target` with every step rendered.

        Nothing runs; all structural errors (resolution, cycle, template)
        surface here.
        """
        order = build_order(self.tree, self._target(target))
        return [self.prepare(node) for node in order]

    # ------------------------------------------------------------------
    # Execution primitives
    # ------------------------------------------------------------------

    def cancel(self, terminate_running: bool = False) -> None:
        """
        Stop before the next not-yet-started step. With `terminate_running`,
        steps already running are terminated too.
        """
        self._stop.set()
        if terminate_running:
            self._abort.set()

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: int) -> None:
        """Signal the step's whole process group (the shell and its children)."""
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass

    def _communicate(self, proc: subprocess.Popen) -> tuple:
        while True:
            try:
                return proc.communicate(timeout=POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                if self._abort.is_set():
                    self._signal(proc, signal.SIGTERM)
                    proc.communicate()
                    raise _Cancelled() from None

    def _run_step(self, planned: PlannedTarget, index: int, command: str) -> None:
        try:
            proc = subprocess.Popen(
                [self.shell, "-c", command],
                env=planned.env,
                cwd=self.cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError(
                planned.path,
                f"cannot start shell '{self.shell}': {e}",
                index=index,
                step=command,
                returncode=127,
            ) from e

        with proc:
            try:
                stdout, stderr = self._communicate(proc)
            except BaseException:
                self._signal(proc, signal.SIGKILL)
                raise

        self.console.print_step(planned.path, index, command, stdout, stderr)

        returncode = proc.returncode
        if returncode < 0:
            # killed by signal N -> 128 + N, as the shell reports it
            returncode = 128 - returncode
        if returncode != 0:
            raise ExecutionError(
                planned.path,
                "step failed",
                index=index,
                step=command,
                returncode=returncode,
                stdout=stdout[-settings.OUTPUT_TAIL:],
                stderr=stderr[-settings.OUTPUT_TAIL:],
            )

    def _run_target(self, planned: PlannedTarget, results: Dict[str, str]) -> str:
        with self._lock:
            results[planned.path] = "running"
        self.console.print_target_start(planned.path, planned.target.doc)
        for index, command in enumerate(planned.steps):
            if self._stop.is_set():
                raise _Cancelled()
            self._run_step(planned, index, command)
        self.console.print_target_done(planned.path)
        return planned.path

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _run_sequential(self, plans: List[PlannedTarget], result: RunResult) -> None:
        for planned in plans:
            if self._stop.is_set():
                return
            try:
                self._run_target(planned, result.results)
            except ExecutionError as e:
                result.results[planned.path] = "failed"
                result.failure = e
                return
            except _Cancelled:
                result.results[planned.path] = "cancelled"
                return
            result.results[planned.path] = "ok"

    def _run_parallel(self, plans: List[PlannedTarget], result: RunResult) -> None:
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            try:
                self._schedule(pool, plans, result)
            except BaseException:
                # the pool joins its workers on exit; running steps must end first
                self.cancel(terminate_running=True)
                raise

    def _schedule(
        self,
        pool: ThreadPoolExecutor,
        plans: List[PlannedTarget],
        result: RunResult,
    ) -> None:
        by_id = {p.target.id: p for p in plans}
        position = {p.target.id: i for i, p in enumerate(plans)}
        adj = build_graph(self.tree, [p.target for p in plans])
        indeg: Dict[int, int] = {node_id: 0 for node_id in by_id}
        for dependents in adj.values():
            for d in dependents:
                indeg[d] += 1

        ready: List[int] = [node_id for node_id in by_id if indeg[node_id] == 0]
        in_flight: Dict = {}

        while ready or in_flight:
            # schedule all currently ready, in execution order
            ready.sort(key=position.__getitem__)
            while ready and not self._stop.is_set():
                node_id = ready.pop(0)
                fut = pool.submit(self._run_target, by_id[node_id], result.results)
                in_flight[fut] = node_id

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready targets
            fut = next(as_completed(list(in_flight.keys())))
            node_id = in_flight.pop(fut)
            path = by_id[node_id].path

            try:
                fut.result()
            except ExecutionError as e:
                result.results[path] = "failed"
                if result.failure is None:
                    result.failure = e
                self.cancel(terminate_running=True)
                continue
            except _Cancelled:
                result.results[path] = "cancelled"
                continue

            result.results[path] = "ok"
            for nxt in adj[node_id]:
                indeg[nxt] -= 1
                if indeg[nxt] == 0:
                    ready.append(nxt)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, target: Union[Target, str]) -> RunResult:
        """
        Run `target` after its transitive dependencies.

        Fail-fast: the first non-zero step stops the run; its exit code is the
        run's. Structural errors raise before any step runs. A step failure
        does not raise: it is reported through the returned RunResult.
        """
        node = self._target(target)
        plans = self.plan(node)
        self._stop.clear()
        self._abort.clear()

        result = RunResult(target=node.path, results={p.path: "pending" for p in plans})
        try:
            if self.workers > 1 and len(plans) > 1:
                self._run_parallel(plans, result)
            else:
                self._run_sequential(plans, result)
        except KeyboardInterrupt:
            self.cancel(terminate_running=True)
            result.interrupted = True

        for path, status in result.results.items():
            if status == "running":
                result.results[path] = "cancelled"
            elif status == "pending":
                result.results[path] = "skipped"
        if not result.interrupted and result.failure is None and self._stop.is_set():
            result.interrupted = True
        return result


def run_target(tree: Tree, target: str, **kwargs) -> RunResult:
    """Convenience: Executor(tree, **kwargs).run(target)."""
    return Executor(tree, **kwargs).run(target)
