"""
Dependency Resolver
===================

Builds the package dependency graph for a workspace and computes its
topological generations (stages) using Kahn's algorithm.

Key Features:
- Drops dependency references to packages outside the workspace
- Detects circular dependencies and reports the offending cycle paths
- Rejects duplicate package names
- Selects the dependency closure around one or more root packages
- Generates an ASCII rendering of the computed stages
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple, Union
import logging

from wsrun.errors import CycleError, DuplicateNameError, UnknownPackageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Package:
    """
    A workspace unit.

    Attributes:
        name: Unique package name
        dependencies: Names of workspace packages this package depends on
        command: Script command to execute, None if the package lacks the script
        condition: Optional predicate command gating the script
        path: Working directory for the package's commands
    """
    name: str
    dependencies: FrozenSet[str] = field(default_factory=frozenset)
    command: Optional[str] = None
    condition: Optional[str] = None
    path: str = "."


PackageRecord = Union[Package, Mapping[str, Any]]


class DependencyGraph:
    """
    Immutable dependency graph addressed by package name.

    An edge A -> B means "A depends on B". Both directions are stored so
    dependents can be found without scanning.
    """

    def __init__(self, packages: Mapping[str, Package]):
        self._packages: Dict[str, Package] = dict(packages)
        self._dependencies: Dict[str, FrozenSet[str]] = {
            name: frozenset(pkg.dependencies) for name, pkg in self._packages.items()
        }
        dependents: Dict[str, Set[str]] = {name: set() for name in self._packages}
        for name, deps in self._dependencies.items():
            for dep in deps:
                dependents[dep].add(name)
        self._dependents: Dict[str, FrozenSet[str]] = {
            name: frozenset(names) for name, names in dependents.items()
        }
        self._generations: Optional[List[List[str]]] = None

    def __len__(self) -> int:
        return len(self._packages)

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __iter__(self):
        return iter(sorted(self._packages))

    @property
    def names(self) -> List[str]:
        return sorted(self._packages)

    def package(self, name: str) -> Package:
        return self._packages[name]

    def dependencies_of(self, name: str) -> FrozenSet[str]:
        return self._dependencies[name]

    def dependents_of(self, name: str) -> FrozenSet[str]:
        return self._dependents[name]

    def edges(self) -> Set[Tuple[str, str]]:
        """Return every (dependent, dependency) pair."""
        return {(name, dep) for name, deps in self._dependencies.items() for dep in deps}

    def transitive_dependencies(self, names: Iterable[str]) -> Set[str]:
        """Return everything the given packages need, directly or indirectly."""
        seen: Set[str] = set()
        stack = list(names)
        while stack:
            current = stack.pop()
            for dep in self._dependencies[current]:
                if dep not in seen:
                    seen.add(dep)
                    stack.append(dep)
        return seen

    def transitive_dependents(self, names: Iterable[str]) -> Set[str]:
        """Return every package that depends on the given ones, directly or indirectly."""
        seen: Set[str] = set()
        stack = list(names)
        while stack:
            current = stack.pop()
            for dependent in self._dependents[current]:
                if dependent not in seen:
                    seen.add(dependent)
                    stack.append(dependent)
        return seen

    def subgraph(self, names: Iterable[str]) -> "DependencyGraph":
        """
        Return the induced subgraph over the given names.

        Edges leading outside the selection are dropped.
        """
        keep = set(names)
        return DependencyGraph({
            name: replace(pkg, dependencies=frozenset(pkg.dependencies & keep))
            for name, pkg in self._packages.items()
            if name in keep
        })

    def without(self, names: Iterable[str]) -> "DependencyGraph":
        """Return the graph with the given packages removed."""
        drop = set(names)
        return self.subgraph(name for name in self._packages if name not in drop)

    def generations(self) -> List[List[str]]:
        """
        Compute topological generations using Kahn's algorithm.

        Each generation holds the packages whose dependencies all lie in
        earlier generations. Members are sorted by name.

        Returns:
            List of generations, leaves first
        """
        if self._generations is not None:
            return [list(g) for g in self._generations]

        in_degree: Dict[str, int] = {name: len(deps) for name, deps in self._dependencies.items()}
        queue = sorted(name for name, degree in in_degree.items() if degree == 0)
        generations: List[List[str]] = []

        while queue:
            current = queue
            generations.append(current)
            next_queue = []
            for name in current:
                for dependent in self._dependents[name]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        next_queue.append(dependent)
            queue = sorted(next_queue)

        processed = sum(len(g) for g in generations)
        if processed != len(self._packages):
            remaining = [name for name, degree in in_degree.items() if degree > 0]
            raise CycleError(_detect_cycles(remaining, self._dependencies))

        self._generations = generations
        return [list(g) for g in generations]

    def topological_order(self) -> List[str]:
        """Flatten the generations into one order, dependencies first."""
        return [name for generation in self.generations() for name in generation]


class DependencyResolver:
    """
    Builds DependencyGraph instances from package records.

    Records come from the workspace provider as mappings (or Package
    instances). The resolver trusts the record list to be the complete
    workspace.
    """

    def __init__(self):
        self.last_graph: Optional[DependencyGraph] = None

    def resolve(self, records: Iterable[PackageRecord]) -> DependencyGraph:
        """
        Build a validated dependency graph.

        Args:
            records: Package records with name, dependencies, command,
                condition and path fields

        Returns:
            DependencyGraph with external dependencies removed

        Raises:
            DuplicateNameError: If two records share a name
            CycleError: If the dependency graph has a cycle
        """
        raw: Dict[str, Package] = {}
        for record in records:
            pkg = _to_package(record)
            if pkg.name in raw:
                raise DuplicateNameError(pkg.name)
            raw[pkg.name] = pkg

        if not raw:
            logger.info("No packages provided, returning empty graph")

        packages: Dict[str, Package] = {}
        for name, pkg in raw.items():
            internal = frozenset(dep for dep in pkg.dependencies if dep in raw and dep != name)
            external = pkg.dependencies - internal - {name}
            if external:
                logger.debug(f"Package {name}: ignoring external dependencies {sorted(external)}")
            if name in pkg.dependencies:
                raise CycleError([(name, name)])
            packages[name] = replace(pkg, dependencies=internal)

        graph = DependencyGraph(packages)
        generations = graph.generations()

        logger.info(f"Resolved {len(graph)} packages into {len(generations)} stages")
        logger.debug(f"Stage sizes: {[len(g) for g in generations]}")

        self.last_graph = graph
        return graph

    def select(
        self,
        graph: DependencyGraph,
        roots: Iterable[str],
        recursive: bool = False
    ) -> DependencyGraph:
        """
        Select the packages to run around a set of root packages.

        Args:
            graph: Full workspace graph
            roots: Names of the selected packages
            recursive: Include the transitive closure of the roots' dependencies

        Returns:
            Induced subgraph for the selection

        Raises:
            UnknownPackageError: If a root is not in the graph
            ValueError: If no roots are given
        """
        roots = set(roots)
        if not roots:
            raise ValueError("At least one root package is required")

        unknown = [name for name in roots if name not in graph]
        if unknown:
            raise UnknownPackageError(unknown)

        selected = set(roots)
        if recursive:
            selected |= graph.transitive_dependencies(roots)

        logger.info(
            f"Selected {len(selected)} packages from roots {sorted(roots)} "
            f"(recursive={recursive})"
        )
        return graph.subgraph(selected)

    def to_ascii(self, graph: Optional[DependencyGraph] = None) -> str:
        """
        Render the stages of a graph as text.

        Args:
            graph: Graph to render, defaults to the last resolved graph

        Returns:
            ASCII diagram string
        """
        graph = graph or self.last_graph
        if graph is None or not len(graph):
            return "No dependency graph available"

        lines = ["=" * 70, "DEPENDENCY STAGES", "=" * 70]
        generations = graph.generations()
        for index, generation in enumerate(generations):
            lines.append(f"\nSTAGE {index} (can run in parallel):")
            lines.append("-" * 70)
            for name in generation:
                deps = sorted(graph.dependencies_of(name))
                lines.append(f"  {name}")
                lines.append(f"      Depends on: {', '.join(deps) if deps else 'None'}")

        lines.append("\n" + "=" * 70)
        lines.append(f"Total: {len(graph)} packages in {len(generations)} stages")
        lines.append("=" * 70)
        return '\n'.join(lines)


def _to_package(record: PackageRecord) -> Package:
    if isinstance(record, Package):
        return replace(record, dependencies=frozenset(record.dependencies))

    name = record.get('name')
    if not name or not isinstance(name, str):
        raise ValueError(f"Package record without a valid name: {record!r}")

    return Package(
        name=name,
        dependencies=frozenset(record.get('dependencies') or []),
        command=record.get('command'),
        condition=record.get('condition'),
        path=str(record.get('path') or '.'),
    )


def _detect_cycles(remaining: List[str], dependencies: Mapping[str, FrozenSet[str]]) -> List[Tuple]:
    """
    Find dependency cycles among packages Kahn's algorithm could not order.

    Args:
        remaining: Packages left with unsatisfied dependencies
        dependencies: Dependency adjacency of the whole graph

    Returns:
        List of tuples, each a cycle path that starts and ends on the same name
    """
    cycles: List[Tuple] = []
    visited: Set[str] = set()
    rec_stack: Set[str] = set()

    # rec_stack always holds exactly the names on path
    def dfs(name: str, path: List[str]) -> None:
        visited.add(name)
        rec_stack.add(name)
        path.append(name)

        for dep in sorted(dependencies.get(name, ())):
            if dep in rec_stack:
                cycle = tuple(path[path.index(dep):] + [dep])
                if cycle not in cycles:
                    cycles.append(cycle)
            elif dep not in visited:
                dfs(dep, path)

        path.pop()
        rec_stack.remove(name)

    for name in sorted(remaining):
        if name not in visited:
            dfs(name, [])

    logger.warning(f"Circular dependencies detected: {cycles}")
    return cycles
