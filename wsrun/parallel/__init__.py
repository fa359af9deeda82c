"""
Parallel Execution Module
==========================

Dependency-aware scheduling of package scripts.

Main Components:
- DependencyResolver: Builds the package graph and its topological stages
- ConditionGate: Decides per-package eligibility from condition commands
- AbortCoordinator: Stops further dispatch after a failure (fast-exit)
- ShellCommandExecutor: Runs commands in package directories
- Scheduler (wsrun.parallel.scheduler): Drives serial, parallel and staged runs

Usage:
    from wsrun.parallel import DependencyResolver
    from wsrun.parallel.scheduler import Scheduler

    graph = DependencyResolver().resolve(records)
    report = await Scheduler(concurrency=4).run(graph, ExecutionMode.STAGED)
"""

from wsrun.parallel.dependency_resolver import DependencyGraph, DependencyResolver, Package
from wsrun.parallel.condition_gate import ConditionGate
from wsrun.parallel.abort_coordinator import ABORT_MESSAGE, AbortCoordinator
from wsrun.parallel.command_executor import CommandExecutor, CommandResult, ShellCommandExecutor

__all__ = [
    'DependencyGraph',
    'DependencyResolver',
    'Package',
    'ConditionGate',
    'ABORT_MESSAGE',
    'AbortCoordinator',
    'CommandExecutor',
    'CommandResult',
    'ShellCommandExecutor',
]
