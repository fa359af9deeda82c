"""
Test DependencyResolver implementation
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from wsrun.errors import CycleError, DuplicateNameError, UnknownPackageError
from wsrun.parallel.dependency_resolver import DependencyGraph, DependencyResolver, Package


def workspace_records():
    """p1 -> p2 -> {p3, p4}, p3 -> {p4, p5}, p4 -> p5"""
    return [
        {'name': 'p1', 'dependencies': ['p2']},
        {'name': 'p2', 'dependencies': ['p3', 'p4']},
        {'name': 'p3', 'dependencies': ['p4', 'p5']},
        {'name': 'p4', 'dependencies': ['p5']},
        {'name': 'p5', 'dependencies': []},
    ]


def test_independent_packages_share_one_stage():
    """Test packages without dependencies land in a single generation"""
    print("\n=== Test 1: Independent Packages ===")

    resolver = DependencyResolver()
    graph = resolver.resolve([{'name': n} for n in ('c', 'a', 'b')])

    print(f"Generations: {graph.generations()}")

    assert graph.generations() == [['a', 'b', 'c']], "Members should be sorted by name"
    assert graph.edges() == set()

    print("[PASS]")


def test_workspace_generations():
    """Test the workspace chain resolves leaves first"""
    print("\n=== Test 2: Workspace Generations ===")

    graph = DependencyResolver().resolve(workspace_records())

    print(f"Generations: {graph.generations()}")

    assert graph.generations() == [['p5'], ['p4'], ['p3'], ['p2'], ['p1']]
    assert graph.topological_order() == ['p5', 'p4', 'p3', 'p2', 'p1']
    assert graph.dependents_of('p4') == frozenset({'p2', 'p3'})

    print("[PASS]")


def test_diamond_dependencies():
    """Test diamond: top -> {left, right} -> base"""
    print("\n=== Test 3: Diamond ===")

    graph = DependencyResolver().resolve([
        {'name': 'top', 'dependencies': ['left', 'right']},
        {'name': 'left', 'dependencies': ['base']},
        {'name': 'right', 'dependencies': ['base']},
        {'name': 'base'},
    ])

    assert graph.generations() == [['base'], ['left', 'right'], ['top']]

    print("[PASS]")


def test_external_dependencies_are_dropped():
    """Test references to packages outside the workspace are ignored"""
    print("\n=== Test 4: External Dependencies ===")

    graph = DependencyResolver().resolve([
        {'name': 'app', 'dependencies': ['lib', 'left-pad', 'react']},
        {'name': 'lib', 'dependencies': ['lodash']},
    ])

    print(f"Edges: {graph.edges()}")

    assert graph.edges() == {('app', 'lib')}
    assert graph.dependencies_of('lib') == frozenset()

    print("[PASS]")


def test_circular_dependency_detection():
    """Test circular dependency A -> B -> A is rejected"""
    print("\n=== Test 5: Circular Dependencies ===")

    resolver = DependencyResolver()
    with pytest.raises(CycleError) as exc_info:
        resolver.resolve([
            {'name': 'a', 'dependencies': ['b']},
            {'name': 'b', 'dependencies': ['a']},
            {'name': 'c'},
        ])

    print(f"Error: {exc_info.value}")

    assert exc_info.value.cycles == [('a', 'b', 'a')]
    assert "Circular dependency detected: a -> b -> a" in str(exc_info.value)
    assert resolver.last_graph is None

    print("[PASS]")


def test_longer_cycle_behind_valid_packages():
    """Test a cycle is found even when other packages resolve fine"""
    graph_records = [
        {'name': 'root'},
        {'name': 'x', 'dependencies': ['root', 'z']},
        {'name': 'y', 'dependencies': ['x']},
        {'name': 'z', 'dependencies': ['y']},
    ]

    with pytest.raises(CycleError) as exc_info:
        DependencyResolver().resolve(graph_records)

    cycle = exc_info.value.cycles[0]
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {'x', 'y', 'z'}

    print("[PASS]")


def test_cycle_reached_from_several_packages():
    """Test a cycle hanging below packages that are visited later"""
    print("\n=== Test: Cycle Below Other Packages ===")

    with pytest.raises(CycleError) as exc_info:
        DependencyResolver().resolve([
            {'name': 'a', 'dependencies': ['c']},
            {'name': 'b', 'dependencies': ['a']},
            {'name': 'c', 'dependencies': ['d']},
            {'name': 'd', 'dependencies': ['c']},
        ])

    print(f"Cycles: {exc_info.value.cycles}")

    assert exc_info.value.cycles == [('c', 'd', 'c')]

    print("[PASS]")


def test_two_independent_cycles_are_reported():
    with pytest.raises(CycleError) as exc_info:
        DependencyResolver().resolve([
            {'name': 'a', 'dependencies': ['b']},
            {'name': 'b', 'dependencies': ['a']},
            {'name': 'x', 'dependencies': ['y']},
            {'name': 'y', 'dependencies': ['x']},
        ])

    assert exc_info.value.cycles == [('a', 'b', 'a'), ('x', 'y', 'x')]


def test_self_dependency_is_a_cycle():
    """Test a package depending on itself"""
    with pytest.raises(CycleError) as exc_info:
        DependencyResolver().resolve([{'name': 'solo', 'dependencies': ['solo']}])

    assert exc_info.value.cycles == [('solo', 'solo')]

    print("[PASS]")


def test_duplicate_names_rejected():
    """Test two records with the same name"""
    with pytest.raises(DuplicateNameError) as exc_info:
        DependencyResolver().resolve([{'name': 'dup'}, {'name': 'dup'}])

    assert exc_info.value.name == 'dup'

    print("[PASS]")


def test_record_without_name_rejected():
    with pytest.raises(ValueError):
        DependencyResolver().resolve([{'dependencies': ['x']}])


def test_package_instances_accepted():
    """Test Package objects can be mixed with mapping records"""
    graph = DependencyResolver().resolve([
        Package(name='lib', command='make'),
        {'name': 'app', 'dependencies': ['lib'], 'command': 'make app', 'path': '/ws/app'},
    ])

    assert graph.package('lib').command == 'make'
    assert graph.package('app').path == '/ws/app'
    assert graph.package('lib').path == '.'

    print("[PASS]")


def test_empty_workspace():
    graph = DependencyResolver().resolve([])

    assert len(graph) == 0
    assert graph.generations() == []


def test_resolution_is_deterministic():
    """Test building twice from the same records gives the same graph"""
    first = DependencyResolver().resolve(workspace_records())
    second = DependencyResolver().resolve(list(reversed(workspace_records())))

    assert first.edges() == second.edges()
    assert first.generations() == second.generations()

    print("[PASS]")


def test_select_recursive_includes_closure():
    """Test -p p3 -r selects p3 and everything it needs"""
    print("\n=== Test: Recursive Selection ===")

    resolver = DependencyResolver()
    graph = resolver.resolve(workspace_records())
    selected = resolver.select(graph, ['p3'], recursive=True)

    print(f"Selected: {selected.names}")

    assert selected.names == ['p3', 'p4', 'p5']
    assert selected.generations() == [['p5'], ['p4'], ['p3']]

    print("[PASS]")


def test_select_non_recursive_drops_outside_edges():
    """Test selecting without recursion keeps only the roots"""
    resolver = DependencyResolver()
    graph = resolver.resolve(workspace_records())
    selected = resolver.select(graph, ['p2', 'p4'])

    assert selected.names == ['p2', 'p4']
    assert selected.edges() == {('p2', 'p4')}
    assert selected.generations() == [['p4'], ['p2']]

    print("[PASS]")


def test_select_unknown_root():
    resolver = DependencyResolver()
    graph = resolver.resolve(workspace_records())

    with pytest.raises(UnknownPackageError) as exc_info:
        resolver.select(graph, ['p3', 'nope', 'also-nope'])

    assert exc_info.value.names == ['also-nope', 'nope']


def test_select_requires_roots():
    resolver = DependencyResolver()
    graph = resolver.resolve(workspace_records())

    with pytest.raises(ValueError):
        resolver.select(graph, [])


def test_transitive_queries():
    graph = DependencyResolver().resolve(workspace_records())

    assert graph.transitive_dependencies(['p2']) == {'p3', 'p4', 'p5'}
    assert graph.transitive_dependents(['p4']) == {'p1', 'p2', 'p3'}
    assert graph.transitive_dependents(['p1']) == set()


def test_without_removes_packages_and_edges():
    graph = DependencyResolver().resolve(workspace_records())
    trimmed = graph.without(['p4'])

    assert 'p4' not in trimmed
    assert trimmed.dependencies_of('p3') == frozenset({'p5'})
    assert trimmed.dependencies_of('p2') == frozenset({'p3'})
    assert trimmed.generations() == [['p5'], ['p3'], ['p2'], ['p1']]


def test_ascii_rendering():
    """Test stage rendering"""
    print("\n=== Test: ASCII Rendering ===")

    resolver = DependencyResolver()
    resolver.resolve(workspace_records())
    output = resolver.to_ascii()

    print(output)

    assert 'DEPENDENCY STAGES' in output
    assert 'STAGE 0' in output
    assert 'STAGE 4' in output
    assert 'Depends on: p4, p5' in output
    assert 'Total: 5 packages in 5 stages' in output

    print("[PASS]")


def test_ascii_rendering_without_graph():
    assert DependencyResolver().to_ascii() == "No dependency graph available"
    assert DependencyResolver().to_ascii(DependencyGraph({})) == "No dependency graph available"


if __name__ == "__main__":
    test_independent_packages_share_one_stage()
    test_workspace_generations()
    test_diamond_dependencies()
    test_external_dependencies_are_dropped()
    test_circular_dependency_detection()
    test_select_recursive_includes_closure()
    test_ascii_rendering()
    print("\n=== All dependency resolver tests passed ===")
