"""
Execution Plan Builder
======================

Turns a dependency graph and an execution mode into the ordered list of
stages the scheduler drives.

- Serial: one stage per package, in topological order (leaves first)
- Parallel: a single unordered stage holding every selected package
- Staged: one stage per topological generation
"""

from dataclasses import dataclass
from enum import Enum
from typing import List
import logging

from wsrun.parallel.dependency_resolver import DependencyGraph

logger = logging.getLogger(__name__)


class ExecutionMode(str, Enum):
    """How packages are dispatched relative to each other."""
    SERIAL = "serial"
    PARALLEL = "parallel"
    STAGED = "staged"


@dataclass
class ExecutionStage:
    """
    A group of packages dispatched together.

    Attributes:
        stage_id: Position of the stage in the plan
        packages: Package names in this stage
    """
    stage_id: int
    packages: List[str]


@dataclass
class ExecutionPlan:
    """
    Complete execution plan for one run.

    Attributes:
        mode: Execution mode the plan was built for
        stages: Stages in dispatch order
    """
    mode: ExecutionMode
    stages: List[ExecutionStage]

    @property
    def total_packages(self) -> int:
        return sum(len(s.packages) for s in self.stages)

    @property
    def order(self) -> List[str]:
        """All package names in dispatch order."""
        return [name for stage in self.stages for name in stage.packages]


class ExecutionPlanBuilder:
    """Builds execution plans from dependency graphs."""

    def build(self, graph: DependencyGraph, mode: ExecutionMode) -> ExecutionPlan:
        """
        Build the plan for a graph under the given mode.

        Args:
            graph: Graph (or selected subgraph) to run
            mode: Execution mode

        Returns:
            ExecutionPlan with stages in dispatch order
        """
        mode = ExecutionMode(mode)

        if mode is ExecutionMode.SERIAL:
            stages = [
                ExecutionStage(stage_id=i, packages=[name])
                for i, name in enumerate(graph.topological_order())
            ]
        elif mode is ExecutionMode.PARALLEL:
            stages = [ExecutionStage(stage_id=0, packages=graph.names)] if len(graph) else []
        else:
            stages = [
                ExecutionStage(stage_id=i, packages=list(generation))
                for i, generation in enumerate(graph.generations())
            ]

        plan = ExecutionPlan(mode=mode, stages=stages)

        logger.info(f"Execution plan built: {plan.total_packages} packages in "
                    f"{len(plan.stages)} stages (mode={mode.value})")
        return plan
