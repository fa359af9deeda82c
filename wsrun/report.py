"""
Execution Report
================

Aggregates per-package task results into the outcome of a run.

The report is filled by the scheduler while a run is in progress and is
read-only afterwards. Overall success is false when any package ran and
failed, or when fast-exit aborted the run.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    """Lifecycle of a single package task."""
    NOT_STARTED = "not_started"
    ELIGIBILITY_CHECKED = "eligibility_checked"
    SKIPPED = "skipped"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskState.SKIPPED, TaskState.SUCCEEDED, TaskState.FAILED)


@dataclass(frozen=True)
class TaskResult:
    """
    Final outcome of one package's task.

    Attributes:
        name: Package name
        eligible: Whether the conditional gate allowed the script to run
        ran: Whether the script was invoked
        exit_code: Exit status of the script, None when it did not run
        state: Terminal task state
        stdout: Captured standard output of the script
        stderr: Captured standard error of the script
        error: Executor-level diagnostic (spawn failure, missing script)
        duration: Wall time spent on the task in seconds
    """
    name: str
    eligible: bool
    ran: bool
    exit_code: Optional[int] = None
    state: TaskState = TaskState.SKIPPED
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.ran and self.exit_code == 0

    @property
    def failed(self) -> bool:
        return self.ran and not self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["succeeded"] = self.succeeded
        return data


@dataclass
class ExecutionReport:
    """
    Terminal aggregate of a run.

    Attributes:
        results: Task results in completion order
        aborted: Whether fast-exit stopped further dispatch
        not_dispatched: Packages never dispatched because of the abort
        diagnostics: Lines to surface on the error stream
    """
    results: List[TaskResult] = field(default_factory=list)
    aborted: bool = False
    not_dispatched: List[str] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)

    def record(self, result: TaskResult) -> None:
        if not result.state.terminal:
            raise ValueError(f"Cannot record non-terminal result for {result.name}: {result.state.value}")
        if any(r.name == result.name for r in self.results):
            raise ValueError(f"Result for {result.name} already recorded")
        self.results.append(result)

    @property
    def success(self) -> bool:
        return not self.aborted and not any(r.failed for r in self.results)

    @property
    def completion_order(self) -> List[str]:
        return [r.name for r in self.results]

    @property
    def ran(self) -> List[str]:
        return [r.name for r in self.results if r.ran]

    @property
    def skipped(self) -> List[str]:
        return [r.name for r in self.results if not r.ran]

    @property
    def failed(self) -> List[str]:
        return [r.name for r in self.results if r.failed]

    def get(self, name: str) -> Optional[TaskResult]:
        return next((r for r in self.results if r.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "success": self.success,
            "aborted": self.aborted,
            "results": [r.to_dict() for r in self.results],
            "not_dispatched": list(self.not_dispatched),
            "diagnostics": list(self.diagnostics),
        }

    def summary_lines(self) -> List[str]:
        """Human-readable per-package summary."""
        lines = []
        for result in self.results:
            if not result.ran:
                status = "skipped"
            elif result.succeeded:
                status = "ok"
            elif result.error:
                status = f"failed ({result.error})"
            else:
                status = f"failed (exit {result.exit_code})"
            lines.append(f"  {result.name}: {status} [{result.duration:.2f}s]")

        for name in self.not_dispatched:
            lines.append(f"  {name}: not run (aborted)")

        lines.append(
            f"{len(self.ran)} ran, {len(self.failed)} failed, "
            f"{len(self.skipped)} skipped, {len(self.not_dispatched)} not dispatched"
        )
        return lines
