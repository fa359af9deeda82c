"""
wsrun
=====

Runs a named script across the packages of a multi-package workspace,
honoring the dependency graph between packages.

Usage:
    from wsrun import RunConfig, WorkspaceRunner, load_workspace

    config = RunConfig(mode=ExecutionMode.STAGED, fast_exit=True)
    records = load_workspace(".", "build")
    report = await WorkspaceRunner(config).run(records)
"""

from wsrun.config import RunConfig, load_config
from wsrun.errors import (
    ConfigurationError,
    CycleError,
    DuplicateNameError,
    UnknownPackageError,
    WorkspaceError,
    WsrunError,
)
from wsrun.execution_plan import ExecutionMode, ExecutionPlan, ExecutionPlanBuilder
from wsrun.parallel.dependency_resolver import DependencyGraph, DependencyResolver, Package
from wsrun.parallel.scheduler import Scheduler
from wsrun.report import ExecutionReport, TaskResult, TaskState
from wsrun.runner import WorkspaceRunner
from wsrun.workspace import load_workspace

__version__ = "0.1.0"

__all__ = [
    'RunConfig',
    'load_config',
    'ConfigurationError',
    'CycleError',
    'DuplicateNameError',
    'UnknownPackageError',
    'WorkspaceError',
    'WsrunError',
    'ExecutionMode',
    'ExecutionPlan',
    'ExecutionPlanBuilder',
    'DependencyGraph',
    'DependencyResolver',
    'Package',
    'Scheduler',
    'ExecutionReport',
    'TaskResult',
    'TaskState',
    'WorkspaceRunner',
    'load_workspace',
]
