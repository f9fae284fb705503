"""Topological sort and cycle detection for attribute dependency graphs."""

from collections import defaultdict, deque


class CircularDependencyError(Exception):
    """Raised when circular dependencies are detected between attributes."""

    pass


def topological_sort(dependencies: dict[str, set[str]]) -> list[str]:
    """
    Topological sort of attributes based on their dependencies.

    Uses Kahn's algorithm so every attribute comes after everything it
    depends on. Dependencies that are not keys of the mapping are treated
    as leaves and included in the order.

    Args:
        dependencies: Mapping of attribute -> set of attributes it reads

    Returns:
        List of attribute names in evaluation order

    Raises:
        CircularDependencyError: If circular dependencies exist
    """
    nodes = set(dependencies)
    for deps in dependencies.values():
        nodes.update(deps)

    graph = defaultdict(list)  # attr -> attrs that depend on it
    in_degree = {name: 0 for name in nodes}
    for name, deps in dependencies.items():
        for dep in deps:
            graph[dep].append(name)
            in_degree[name] += 1

    queue = sorted(name for name, degree in in_degree.items() if degree == 0)
    order = []

    while queue:
        # Sort for deterministic ordering
        queue.sort()
        node = queue.pop(0)
        order.append(node)

        for dependent in graph[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(order) != len(nodes):
        ordered = set(order)
        remaining = sorted(n for n in nodes if n not in ordered)
        raise CircularDependencyError(
            f"Circular dependency detected involving: {remaining}"
        )

    return order


def find_path(dependents: dict[str, set[str]], start: str, goal: str) -> list[str] | None:
    """Breadth-first search along dependent edges.

    Args:
        dependents: Mapping of attribute -> attributes that read it
        start: Attribute to start from
        goal: Attribute to reach

    Returns:
        The path from start to goal (inclusive), or None if unreachable
    """
    if start == goal:
        return [start]
    parents: dict[str, str] = {}
    seen = {start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        for nxt in dependents.get(node, ()):
            if nxt in seen:
                continue
            parents[nxt] = node
            if nxt == goal:
                path = [goal]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            seen.add(nxt)
            queue.append(nxt)
    return None
