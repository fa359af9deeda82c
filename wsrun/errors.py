"""
Errors
======

Exception hierarchy shared by the workspace runner.

Configuration errors are raised while the dependency graph is being built
or selected, before any task is dispatched. Task failures are never raised;
they are captured into TaskResult entries by the scheduler.
"""

from typing import List, Sequence


class WsrunError(Exception):
    """Base exception for workspace runner errors."""
    pass


class ConfigurationError(WsrunError):
    """Raised when the run cannot start because its input is invalid."""
    pass


class CycleError(ConfigurationError):
    """Raised when the package dependency graph contains a cycle."""

    def __init__(self, cycles: Sequence[Sequence[str]]):
        self.cycles: List[tuple] = [tuple(c) for c in cycles]
        rendered = "; ".join(" -> ".join(cycle) for cycle in self.cycles)
        super().__init__(f"Circular dependency detected: {rendered}")


class DuplicateNameError(ConfigurationError):
    """Raised when two package records share a name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate package name: {name}")


class UnknownPackageError(ConfigurationError):
    """Raised when a selected root package is not part of the workspace."""

    def __init__(self, names: Sequence[str]):
        self.names = sorted(names)
        super().__init__(f"Unknown package(s): {', '.join(self.names)}")


class WorkspaceError(WsrunError):
    """Raised when workspace manifests cannot be read."""
    pass


class InvalidTransitionError(WsrunError):
    """Raised when a task is moved to a state it cannot reach."""
    pass
