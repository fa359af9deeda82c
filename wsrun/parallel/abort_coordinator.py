"""
Abort Coordinator
=================

Implements fast-exit: once any task fails, no further package is
dispatched. Tasks already running are left to finish; cancellation is
cooperative and only affects future dispatch decisions.
"""

from typing import Optional
import asyncio
import logging

from wsrun.report import ExecutionReport, TaskResult, TaskState

logger = logging.getLogger(__name__)

ABORT_MESSAGE = "Aborted execution due to previous error"


class AbortCoordinator:
    """
    Observes finalized task results and trips a shared abort flag.

    The scheduler consults should_dispatch() before every dispatch decision.
    """

    def __init__(self, fast_exit: bool = False):
        self.fast_exit = fast_exit
        self.abort_event = asyncio.Event()
        self.failed_package: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    def should_dispatch(self) -> bool:
        return not self.abort_event.is_set()

    def observe(self, result: TaskResult) -> None:
        """Record a finalized result, tripping the abort flag on failure under fast-exit."""
        if not self.fast_exit or result.state is not TaskState.FAILED:
            return
        if self.abort_event.is_set():
            return

        self.failed_package = result.name
        self.abort_event.set()
        logger.warning(f"Package {result.name} failed, stopping further dispatch (fast-exit)")

    def finalize(self, report: ExecutionReport) -> None:
        """Mark the report aborted and attach the abort diagnostic."""
        if not self.aborted:
            return
        report.aborted = True
        if ABORT_MESSAGE not in report.diagnostics:
            report.diagnostics.append(ABORT_MESSAGE)
