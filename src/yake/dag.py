# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, Iterator, List, Set, Tuple

from .errors import ConfigError, CycleDetected
from .model import Target, Tree

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


def build_order(tree: Tree, target: Target) -> List[Target]:
    """
    One valid execution order for `target`: transitive dependencies first,
    `target` last, every node exactly once.

    Depth-first over `depends` edges. Independent branches keep declaration
    order: the dependencies of `a` in `depends: [a, b]` all run before those
    of `b` (unless shared, in which case they ran already).

    Raises CycleDetected (never a partial order) if the relation is cyclic.
    """
    if not target.is_callable:
        raise ConfigError(target.path, "only callable targets can be executed")

    state: Dict[int, int] = {target.id: _IN_PROGRESS}
    order: List[Target] = []
    # DFS frames: (node, iterator over its not yet visited deps)
    stack: List[Tuple[Target, Iterator[Target]]] = [(target, iter(tree.dependencies(target)))]

    while stack:
        node, deps = stack[-1]
        dep = next(deps, None)
        if dep is None:
            stack.pop()
            state[node.id] = _DONE
            order.append(node)
            continue

        mark = state.get(dep.id, _UNVISITED)
        if mark == _DONE:
            continue
        if mark == _IN_PROGRESS:
            start = next(i for i, (n, _) in enumerate(stack) if n.id == dep.id)
            cycle = [n.path for n, _ in stack[start:]] + [dep.path]
            raise CycleDetected(
                cycle[0],
                "dependency cycle detected",
                cycle=cycle,
            )

        state[dep.id] = _IN_PROGRESS
        stack.append((dep, iter(tree.dependencies(dep))))

    return order


def build_graph(tree: Tree, order: List[Target]) -> Dict[int, Set[int]]:
    """
    Adjacency dep -> dependents, restricted to the nodes of `order`.
    """
    members = {n.id for n in order}
    adj: Dict[int, Set[int]] = {n.id: set() for n in order}
    for node in order:
        for dep in tree.dependencies(node):
            if dep.id in members:
                adj[dep.id].add(node.id)
    return adj


def execution_levels(tree: Tree, target: Target) -> List[List[Target]]:
    """
    Topological "levels" (stages) of `target`'s dependency graph. Every node
    of a level only depends on nodes of earlier levels, so a level can run in
    parallel. Within a level, nodes keep their `build_order` position.
    """
    order = build_order(tree, target)
    position = {n.id: i for i, n in enumerate(order)}
    adj = build_graph(tree, order)

    indeg: Dict[int, int] = {n.id: 0 for n in order}
    for dependents in adj.values():
        for d in dependents:
            indeg[d] += 1

    q = deque(sorted((i for i, d in indeg.items() if d == 0), key=position.__getitem__))
    levels: List[List[Target]] = []
    while q:
        level: List[Target] = []
        ready: List[int] = []
        for _ in range(len(q)):
            node_id = q.popleft()
            level.append(tree.get(node_id))
            for child in adj[node_id]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    ready.append(child)
        levels.append(level)
        q.extend(sorted(ready, key=position.__getitem__))
    return levels
