"""
Workspace Runner
================

Ties the pieces of a run together: builds the graph from package records,
applies exclusions and root selection, then hands the result to the
scheduler.

Configuration errors (cycles, duplicate names, unknown packages) are raised
here before any task is dispatched.
"""

from typing import Iterable, Optional, Sequence
import logging

from wsrun.config import RunConfig
from wsrun.errors import UnknownPackageError
from wsrun.parallel.command_executor import CommandExecutor
from wsrun.parallel.dependency_resolver import DependencyGraph, DependencyResolver, PackageRecord
from wsrun.parallel.scheduler import ProgressCallback, Scheduler
from wsrun.report import ExecutionReport

logger = logging.getLogger(__name__)


class WorkspaceRunner:
    """Runs one script across a workspace according to a RunConfig."""

    def __init__(
        self,
        config: RunConfig,
        executor: Optional[CommandExecutor] = None,
        progress_callback: Optional[ProgressCallback] = None
    ):
        self.config = config
        self.resolver = DependencyResolver()
        self.scheduler = Scheduler(
            executor=executor,
            concurrency=config.concurrency,
            fast_exit=config.fast_exit,
            condition_enabled=config.condition_enabled,
            cascade=config.cascade,
            progress_callback=progress_callback
        )

    def build_graph(self, records: Iterable[PackageRecord]) -> DependencyGraph:
        """
        Build the graph of packages to run.

        Raises:
            CycleError, DuplicateNameError, UnknownPackageError
        """
        graph = self.resolver.resolve(records)

        if self.config.exclude:
            unknown = [name for name in self.config.exclude if name not in graph]
            if unknown:
                logger.warning(f"Ignoring unknown excluded packages: {sorted(unknown)}")
            graph = graph.without(self.config.exclude)

        if self.config.packages:
            missing = [name for name in self.config.packages if name not in graph]
            if missing:
                raise UnknownPackageError(missing)
            graph = self.resolver.select(graph, self.config.packages, self.config.recursive)

        return graph

    async def run(self, records: Iterable[PackageRecord], args: Sequence[str] = ()) -> ExecutionReport:
        graph = self.build_graph(records)
        return await self.scheduler.run(graph, self.config.mode, args)

    def describe(self, records: Iterable[PackageRecord]) -> str:
        """Render the stages that a run would go through, without running anything."""
        graph = self.build_graph(records)
        return self.resolver.to_ascii(graph)
