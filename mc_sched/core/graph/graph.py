from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, Optional

from mc_sched.core.errors import CycleError
from mc_sched.core.model import Task, TaskStatus

if TYPE_CHECKING:
    from mc_sched.core.graph.layout import LayoutResult


logger = logging.getLogger(__name__)

# Edges are (dependent, dependency) pairs of task ids: E maps a task to the tasks it
# depends on, E_inv maps a task to the tasks that depend on it.
Edge = tuple[int, int]


def invert_edges(vertices: Iterable[int], E: Mapping[int, list[int]]) -> dict[int, list[int]]:
    E_inv: dict[int, list[int]] = {v: [] for v in vertices}
    for dependent, depends_on in E.items():
        for dependency in depends_on:
            E_inv[dependency].append(dependent)
    return E_inv


def topo_sort(vertices: Iterable[int], E: Mapping[int, list[int]]) -> list[int]:
    """Depth-first topological sort; every dependency precedes its dependents.

    Iterative, so chain length is not bounded by the recursion limit.
    Raises CycleError on the first back-edge found.
    """
    UNVISITED, DISCOVERED, FINISHED = 0, 1, 2
    state: dict[int, int] = {v: UNVISITED for v in vertices}
    topo: list[int] = []

    for root in list(state.keys()):
        if state[root] != UNVISITED:
            continue
        state[root] = DISCOVERED
        stack: list[int] = [root]
        frames: list[Iterator[int]] = [iter(E.get(root, []))]
        while frames:
            v = stack[-1]
            for u in frames[-1]:
                if u not in state:
                    continue
                if state[u] == DISCOVERED:
                    # cycle: u ... v -> u
                    raise CycleError(stack[stack.index(u):] + [u])
                if state[u] == UNVISITED:
                    state[u] = DISCOVERED
                    stack.append(u)
                    frames.append(iter(E.get(u, [])))
                    break
            else:
                frames.pop()
                stack.pop()
                state[v] = FINISHED
                topo.append(v)
    return topo


class Graph:
    """Task arena plus dependency edges and a maintained topological order.

    Invariant: for every edge (dependent, dependency) the dependency sits at or
    before the dependent in ``topo``.
    """

    def __init__(
        self,
        tasks: dict[int, Task],
        E: dict[int, list[int]],
        E_inv: dict[int, list[int]],
        topo: list[int],
    ) -> None:
        self.tasks = tasks
        self.E = E
        self.E_inv = E_inv
        self.topo = topo
        self.all_edges: list[Edge] = [(k, v) for k, vs in E.items() for v in vs]

    def __contains__(self, tid: object) -> bool:
        return tid in self.tasks

    def __len__(self) -> int:
        return len(self.tasks)

    def task(self, tid: int) -> Task:
        try:
            return self.tasks[tid]
        except KeyError:
            raise KeyError(f"task {tid} is not in the graph") from None

    def ordered_tasks(self) -> list[Task]:
        return [self.tasks[t] for t in self.topo]

    def edges(self, tid: int) -> list[int]:
        return self.E.get(tid, [])

    def inv_edges(self, tid: int) -> list[int]:
        return self.E_inv.get(tid, [])

    def topo_index(self, tid: int) -> int:
        return self.topo.index(tid)

    def add_edge(self, dependent: int, dependency: int) -> bool:
        """Make ``dependent`` depend on ``dependency``.

        Returns False, leaving the graph untouched, when the edge would put the
        dependency after its dependent in ``topo``; re-sort and retry in that case.
        """
        self.task(dependent)
        self.task(dependency)
        if dependent == dependency:
            logger.warning("rejected self-dependency on task %s", dependent)
            return False
        fidx, tidx = self.topo_index(dependent), self.topo_index(dependency)
        if fidx < tidx:
            logger.warning(
                "rejected edge %s@%d -> %s@%d: dependency comes after its dependent",
                dependent,
                fidx,
                dependency,
                tidx,
            )
            return False

        is_new = False
        edges = self.E.setdefault(dependent, [])
        if dependency not in edges:
            edges.append(dependency)
            is_new = True
        inv_edges = self.E_inv.setdefault(dependency, [])
        if dependent not in inv_edges:
            inv_edges.append(dependent)
            is_new = True
        if is_new:
            self.all_edges.append((dependent, dependency))
        return True

    def remove_edge(self, dependent: int, dependency: int) -> bool:
        edges = self.edges(dependent)
        found = dependency in edges
        if found:
            edges.remove(dependency)
        inv_edges = self.inv_edges(dependency)
        if dependent in inv_edges:
            inv_edges.remove(dependent)
        try:
            self.all_edges.remove((dependent, dependency))
        except ValueError:
            pass
        return found

    def _add_vertex(self, task: Task) -> None:
        if task.id in self.tasks:
            raise ValueError(f"task {task.id} is already in the graph")
        self.tasks[task.id] = task
        self.E[task.id] = []
        self.E_inv[task.id] = []

    def insert_before(self, task: Task, anchor: Optional[int] = None) -> None:
        """Splice an edge-less task into ``topo`` just before ``anchor`` (or first)."""
        idx = 0 if anchor is None else self.topo_index(anchor)
        self._add_vertex(task)
        self.topo.insert(idx, task.id)

    def insert_after(self, task: Task, anchor: Optional[int] = None) -> None:
        """Splice an edge-less task into ``topo`` just after ``anchor`` (or last)."""
        idx = len(self.topo) if anchor is None else self.topo_index(anchor) + 1
        self._add_vertex(task)
        self.topo.insert(idx, task.id)

    def insert_upstream(
        self,
        task: Task,
        target: int,
        dependents: Optional[Iterable[int]] = None,
        branch: bool = False,
    ) -> None:
        """Create ``task`` right before ``target`` and make ``dependents`` wait on it.

        Unless branching, the new task also takes over the target's dependencies.
        """
        self.insert_before(task, target)
        if not branch:
            for dependency in list(self.edges(target)):
                self.add_edge(task.id, dependency)
                self.remove_edge(target, dependency)
        for dependent in dependents if dependents is not None else [target]:
            self.add_edge(dependent, task.id)

    def insert_downstream(
        self,
        task: Task,
        target: int,
        dependencies: Optional[Iterable[int]] = None,
        branch: bool = False,
    ) -> None:
        """Create ``task`` right after ``target`` and make it wait on ``dependencies``.

        Unless branching, the new task also takes over the target's dependents.
        """
        self.insert_after(task, target)
        if not branch:
            for dependent in list(self.inv_edges(target)):
                self.add_edge(dependent, task.id)
                self.remove_edge(dependent, target)
        for dependency in dependencies if dependencies is not None else [target]:
            self.add_edge(task.id, dependency)

    def next(self, tid: Optional[int] = None) -> int:
        if tid is None:
            return self.topo[0]
        return self.topo[(self.topo_index(tid) + 1) % len(self.topo)]

    def prev(self, tid: Optional[int] = None) -> int:
        if tid is None:
            return self.topo[-1]
        return self.topo[self.topo_index(tid) - 1]

    def sub_graph(self, ids: Iterable[int]) -> Graph:
        """Graph over ``ids`` only: edges with both ends inside, relative order kept."""
        vs = set(ids)
        E_new = {v: [u for u in self.edges(v) if u in vs] for v in vs}
        E_inv_new = {v: [u for u in self.inv_edges(v) if u in vs] for v in vs}
        topo = [v for v in self.topo if v in vs]
        return Graph({v: self.tasks[v] for v in vs}, E_new, E_inv_new, topo)

    def copy(self) -> Graph:
        return Graph(
            dict(self.tasks),
            {k: list(vs) for k, vs in self.E.items()},
            {k: list(vs) for k, vs in self.E_inv.items()},
            list(self.topo),
        )

    def remove_sub_component(self, ids: Iterable[int]) -> Graph:
        vs = set(ids)
        g = self.sub_graph(vs)
        for v in vs:
            self.remove_node(v, heal_edges=False)
        return g

    def remove_node(self, tid: int, heal_edges: bool) -> Task:
        """Delete a task and every edge touching it.

        With ``heal_edges`` each former dependent is wired straight to each former
        dependency, so reachability through the removed task survives.
        """
        task = self.task(tid)
        self.topo = [v for v in self.topo if v != tid]
        del self.tasks[tid]
        required_by = self.E_inv.pop(tid, [])
        depends_on = self.E.pop(tid, [])
        for r in required_by:
            incoming = self.E.get(r)
            if incoming and tid in incoming:
                incoming.remove(tid)
        for d in depends_on:
            outgoing = self.E_inv.get(d)
            if outgoing and tid in outgoing:
                outgoing.remove(tid)
        self.all_edges = [(f, t) for f, t in self.all_edges if f != tid and t != tid]
        if heal_edges:
            for r in required_by:
                for d in depends_on:
                    self.add_edge(r, d)
        return task

    def shift_up(self, ids: Iterable[int]) -> None:
        """Move each task one row earlier unless that would pass one of its dependencies."""
        for tid in sorted(ids, key=self.topo_index):
            latest_dep = max((self.topo_index(d) for d in self.edges(tid)), default=-1)
            idx = self.topo_index(tid)
            if idx - 1 > latest_dep:
                self.topo[idx - 1], self.topo[idx] = tid, self.topo[idx - 1]

    def shift_down(self, ids: Iterable[int]) -> None:
        """Move each task one row later unless that would pass one of its dependents."""
        for tid in sorted(ids, key=self.topo_index, reverse=True):
            first_req = min((self.topo_index(d) for d in self.inv_edges(tid)), default=len(self.topo))
            idx = self.topo_index(tid)
            if idx + 1 < first_req:
                self.topo[idx], self.topo[idx + 1] = self.topo[idx + 1], tid

    def blocked(self, tid: int) -> bool:
        return self.status(tid) == "blocked"

    def status(self, tid: int) -> TaskStatus:
        t = self.task(tid)
        if t.finished is not None:
            return "finished"
        if t.started is not None:
            return "started"
        if all(self.tasks[p].finished is not None for p in self.edges(tid)):
            return "ready"
        return "blocked"

    def layout_x(self) -> LayoutResult:
        from mc_sched.core.graph.layout import layout_x

        return layout_x(self)


def main_graph(tasks: Iterable[Task], edges: Mapping[int, Iterable[int]]) -> Graph:
    """Build a graph from tasks and their dependencies, sorting it topologically.

    Raises CycleError if the dependencies are not a DAG.
    """
    arena = {t.id: t for t in tasks}
    E: dict[int, list[int]] = {v: [] for v in arena}
    for dependent, depends_on in edges.items():
        for dependency in depends_on:
            if dependency not in E[dependent]:
                E[dependent].append(dependency)
    E_inv = invert_edges(arena.keys(), E)
    topo = topo_sort(arena.keys(), E)
    order = {v: i for i, v in enumerate(topo)}
    for vs in E.values():
        vs.sort(key=order.__getitem__)
    for vs in E_inv.values():
        vs.sort(key=order.__getitem__)
    return Graph(arena, E, E_inv, topo)
