"""
Scheduler
=========

Drives execution of a package script across a dependency graph.

Key Features:
- Serial, parallel and staged execution from a single scheduling routine
- Worker pool bounded by an asyncio semaphore (unbounded when no limit is set)
- Stage barriers: every task of a stage settles before the next stage starts
- Conditional gating before each dispatch, with cascading eligibility
- Fast-exit: stops dispatching new work after the first failure
- Progress callbacks for stage and task lifecycle events
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Set
import asyncio
import logging
import time

from wsrun.errors import InvalidTransitionError
from wsrun.execution_plan import ExecutionMode, ExecutionPlanBuilder, ExecutionStage
from wsrun.parallel.abort_coordinator import AbortCoordinator
from wsrun.parallel.command_executor import (
    SPAWN_FAILED,
    CommandExecutor,
    CommandResult,
    ShellCommandExecutor,
)
from wsrun.parallel.condition_gate import ConditionGate
from wsrun.parallel.dependency_resolver import DependencyGraph
from wsrun.report import ExecutionReport, TaskResult, TaskState

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], Awaitable[None]]

_TRANSITIONS = {
    TaskState.NOT_STARTED: {TaskState.ELIGIBILITY_CHECKED},
    TaskState.ELIGIBILITY_CHECKED: {TaskState.SKIPPED, TaskState.RUNNING},
    TaskState.RUNNING: {TaskState.SUCCEEDED, TaskState.FAILED},
}


@dataclass
class TaskRun:
    """
    Mutable state of one package task while it is in flight.

    Attributes:
        name: Package name
        state: Current lifecycle state
        eligible: Verdict of the conditional gate
        command_result: Result of the package script, once it ran
        error: Diagnostic for failures that produced no command result
        started_at: When the task was dispatched
    """
    name: str
    state: TaskState = TaskState.NOT_STARTED
    eligible: bool = False
    command_result: Optional[CommandResult] = None
    error: Optional[str] = None
    started_at: float = field(default_factory=time.time)

    def advance(self, state: TaskState) -> None:
        if state not in _TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(
                f"Task {self.name}: cannot move from {self.state.value} to {state.value}"
            )
        self.state = state

    def finalize(self) -> TaskResult:
        if not self.state.terminal:
            raise InvalidTransitionError(f"Task {self.name} is not finished ({self.state.value})")

        ran = self.state in (TaskState.SUCCEEDED, TaskState.FAILED)
        result = self.command_result
        exit_code = None
        if ran:
            exit_code = result.exit_code if result is not None else SPAWN_FAILED

        return TaskResult(
            name=self.name,
            eligible=self.eligible,
            ran=ran,
            exit_code=exit_code,
            state=self.state,
            stdout=result.stdout if result is not None else "",
            stderr=result.stderr if result is not None else "",
            error=self.error or (result.error if result is not None else None),
            duration=time.time() - self.started_at
        )


@dataclass
class _RunContext:
    graph: DependencyGraph
    args: Sequence[str]
    report: ExecutionReport
    abort: AbortCoordinator
    semaphore: Optional[asyncio.Semaphore]
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    eligible: Set[str] = field(default_factory=set)
    precomputed: Optional[Dict[str, bool]] = None
    dispatched: Set[str] = field(default_factory=set)


class Scheduler:
    """
    Runs a script for every package of a graph under an execution mode.

    The scheduler never raises because of a single task: script failures,
    spawn failures and unexpected executor exceptions all become failed
    TaskResults. Only the report and the abort coordinator decide the
    overall outcome.
    """

    def __init__(
        self,
        executor: Optional[CommandExecutor] = None,
        concurrency: Optional[int] = None,
        fast_exit: bool = False,
        condition_enabled: bool = True,
        cascade: bool = False,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """
        Initialize scheduler.

        Args:
            executor: Command executor for scripts and conditions
            concurrency: Maximum tasks in flight for parallel and staged modes,
                None for no limit
            fast_exit: Stop dispatching after the first failed task
            condition_enabled: Evaluate package condition commands
            cascade: Make dependents of eligible packages eligible
            progress_callback: Async callback receiving lifecycle events
        """
        if concurrency is not None and concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self.executor = executor or ShellCommandExecutor()
        self.concurrency = concurrency
        self.fast_exit = fast_exit
        self.progress_callback = progress_callback
        self.gate = ConditionGate(self.executor, enabled=condition_enabled, cascade=cascade)
        self.plan_builder = ExecutionPlanBuilder()

        logger.debug(
            f"Scheduler initialized (concurrency={concurrency}, fast_exit={fast_exit}, "
            f"condition_enabled={condition_enabled}, cascade={cascade})"
        )

    async def run(
        self,
        graph: DependencyGraph,
        mode: ExecutionMode,
        args: Sequence[str] = ()
    ) -> ExecutionReport:
        """
        Execute the script for every package in the graph.

        Args:
            graph: Graph (or selected subgraph) to run
            mode: Serial, parallel or staged execution
            args: Trailing arguments appended to every script invocation

        Returns:
            ExecutionReport with one result per dispatched package
        """
        mode = ExecutionMode(mode)
        plan = self.plan_builder.build(graph, mode)

        ctx = _RunContext(
            graph=graph,
            args=list(args),
            report=ExecutionReport(),
            abort=AbortCoordinator(self.fast_exit),
            semaphore=self._make_pool(mode)
        )

        logger.info(
            f"Starting {mode.value} run: {plan.total_packages} packages, "
            f"{len(plan.stages)} stages"
        )
        start_time = time.time()

        if mode is ExecutionMode.PARALLEL and self.gate.enabled and self.gate.cascade:
            ctx.precomputed = await self.gate.evaluate_all(graph, ctx.semaphore)

        for stage in plan.stages:
            if not ctx.abort.should_dispatch():
                logger.info(f"Abort requested, not starting stage {stage.stage_id}")
                break

            await self._notify_progress("stage_started", {
                "stage_id": stage.stage_id,
                "packages": list(stage.packages),
                "stages_remaining": len(plan.stages) - stage.stage_id
            })

            await self._run_stage(ctx, stage)

            await self._notify_progress("stage_completed", {
                "stage_id": stage.stage_id,
                "aborted": ctx.abort.aborted
            })

        report = ctx.report
        report.not_dispatched = [name for name in plan.order if name not in ctx.dispatched]
        ctx.abort.finalize(report)

        duration = time.time() - start_time
        logger.info(
            f"Run complete: {len(report.ran)} ran, {len(report.failed)} failed, "
            f"{len(report.skipped)} skipped, {len(report.not_dispatched)} not dispatched "
            f"in {duration:.1f}s"
        )
        if report.aborted:
            logger.error(f"Run aborted after failure of {ctx.abort.failed_package}")

        return report

    def _make_pool(self, mode: ExecutionMode) -> Optional[asyncio.Semaphore]:
        if mode is ExecutionMode.SERIAL:
            return asyncio.Semaphore(1)
        if self.concurrency is None:
            return None
        return asyncio.Semaphore(self.concurrency)

    async def _run_stage(self, ctx: _RunContext, stage: ExecutionStage) -> None:
        """Dispatch every member of a stage and wait for all of them to settle."""
        if len(stage.packages) == 1:
            await self._dispatch(ctx, stage.packages[0])
            return

        outcomes = await asyncio.gather(
            *(self._dispatch(ctx, name) for name in stage.packages),
            return_exceptions=True
        )
        for name, outcome in zip(stage.packages, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Task {name} raised outside its handler: {outcome}")

    async def _dispatch(self, ctx: _RunContext, name: str) -> None:
        if ctx.semaphore is None:
            await self._execute(ctx, name)
            return
        async with ctx.semaphore:
            await self._execute(ctx, name)

    async def _execute(self, ctx: _RunContext, name: str) -> None:
        """
        Run one package task through its whole lifecycle.

        The abort flag is checked here, after a worker slot is acquired, so
        tasks still waiting for the pool are not dispatched once a failure
        has tripped fast-exit.
        """
        if not ctx.abort.should_dispatch():
            logger.debug(f"Skipping dispatch of {name}: run aborted")
            return

        ctx.dispatched.add(name)
        package = ctx.graph.package(name)
        task = TaskRun(name=name)

        try:
            if ctx.precomputed is not None:
                task.eligible = ctx.precomputed.get(name, False)
            else:
                task.eligible = await self.gate.decide(package, ctx.eligible)
        except Exception as e:
            logger.error(f"Condition check for {name} failed: {e}", exc_info=True)
            task.error = f"condition check failed: {e}"
            task.eligible = False
        task.advance(TaskState.ELIGIBILITY_CHECKED)

        if not task.eligible:
            logger.info(f"Skipping {name}: condition not met")
            task.advance(TaskState.SKIPPED)
            await self._finalize(ctx, task)
            return

        ctx.eligible.add(name)
        task.advance(TaskState.RUNNING)
        await self._notify_progress("task_started", {"package": name})
        logger.info(f"Starting {name}")

        try:
            if package.command is None:
                task.command_result = CommandResult(
                    exit_code=SPAWN_FAILED,
                    error="missing script"
                )
            else:
                task.command_result = await self.executor.run(package.command, package.path, ctx.args)
        except Exception as e:
            logger.error(f"Task {name} execution failed: {e}", exc_info=True)
            task.error = f"executor error: {e}"

        if task.command_result is not None and task.command_result.success:
            task.advance(TaskState.SUCCEEDED)
        else:
            task.advance(TaskState.FAILED)

        await self._finalize(ctx, task)

    async def _finalize(self, ctx: _RunContext, task: TaskRun) -> None:
        result = task.finalize()
        async with ctx.lock:
            ctx.report.record(result)
            ctx.abort.observe(result)

        if result.state is TaskState.FAILED:
            detail = result.error or f"exit code {result.exit_code}"
            logger.warning(f"{result.name} failed: {detail}")
        elif result.state is TaskState.SUCCEEDED:
            logger.info(f"{result.name} completed in {result.duration:.1f}s")

        await self._notify_progress("task_completed", {
            "package": result.name,
            "state": result.state.value,
            "result": result
        })

    async def _notify_progress(self, event: str, data: Dict[str, Any]) -> None:
        """Send progress update to callback."""
        if self.progress_callback:
            try:
                await self.progress_callback({'type': event, **data})
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")
