"""
Condition Gate
==============

Decides whether a package's script is allowed to run in this invocation.

A package without a condition is always eligible. A package with a
condition is eligible when the condition command exits 0 in the package
directory. With cascading enabled, a package is also eligible when any of
its direct dependencies is eligible, which makes eligibility flow from a
dependency to every transitive dependent.
"""

from typing import AbstractSet, Dict, Iterable, Optional, Set
import asyncio
import logging

from wsrun.parallel.command_executor import CommandExecutor
from wsrun.parallel.dependency_resolver import DependencyGraph, Package

logger = logging.getLogger(__name__)


class ConditionGate:
    """
    Evaluates per-package eligibility.

    Serial and staged runs call decide() with the set of packages already
    found eligible; dependencies are always decided before their dependents
    there. Parallel runs have no such ordering and call evaluate_all() once
    up front.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        enabled: bool = True,
        cascade: bool = False
    ):
        """
        Args:
            executor: Executor used to run condition commands
            enabled: Evaluate condition commands at all
            cascade: Propagate eligibility from dependencies to dependents
        """
        self.executor = executor
        self.enabled = enabled
        self.cascade = cascade

    async def check_condition(self, package: Package) -> bool:
        """
        Evaluate a package's own condition.

        Output of the condition command is discarded; only its exit status
        matters.
        """
        if not self.enabled or not package.condition:
            return True

        result = await self.executor.run(package.condition, package.path, ())
        if result.error:
            logger.debug(f"Condition for {package.name} could not run: {result.error}")
        logger.debug(f"Condition for {package.name} exited {result.exit_code}")
        return result.exit_code == 0

    async def decide(self, package: Package, eligible: AbstractSet[str]) -> bool:
        """
        Decide eligibility given the packages already determined eligible.

        Args:
            package: Package to decide
            eligible: Names of packages found eligible so far in this run

        Returns:
            True if the package's script may run
        """
        if self.cascade and any(dep in eligible for dep in package.dependencies):
            logger.debug(f"{package.name} eligible through an eligible dependency")
            return True
        return await self.check_condition(package)

    async def evaluate_all(
        self,
        graph: DependencyGraph,
        pool: Optional[asyncio.Semaphore] = None
    ) -> Dict[str, bool]:
        """
        Decide eligibility for every package in a graph at once.

        All condition commands are run first, then cascading is applied as
        a fixed point over the graph.

        Args:
            graph: Graph to evaluate
            pool: Worker pool bounding concurrent condition commands

        Returns:
            Mapping of package name to eligibility
        """
        names = graph.names
        outcomes = await asyncio.gather(
            *(self._check_in_pool(graph.package(name), pool) for name in names)
        )
        seeds = {name for name, ok in zip(names, outcomes) if ok}

        eligible = self.propagate(graph, seeds) if self.cascade else seeds
        logger.info(f"Eligible packages: {len(eligible)}/{len(names)}")
        return {name: name in eligible for name in names}

    async def _check_in_pool(self, package: Package, pool: Optional[asyncio.Semaphore]) -> bool:
        if pool is None:
            return await self.check_condition(package)
        async with pool:
            return await self.check_condition(package)

    @staticmethod
    def propagate(graph: DependencyGraph, seeds: Iterable[str]) -> Set[str]:
        """
        Spread eligibility from dependencies to dependents until nothing changes.

        Args:
            graph: Graph whose edges eligibility flows along
            seeds: Packages eligible on their own

        Returns:
            Final eligible set
        """
        eligible = set(seeds)
        changed = True
        while changed:
            changed = False
            for name in graph.names:
                if name in eligible:
                    continue
                if any(dep in eligible for dep in graph.dependencies_of(name)):
                    eligible.add(name)
                    changed = True
        return eligible
