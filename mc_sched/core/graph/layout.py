"""Column assignment for drawing the dependency graph.

Read top to bottom in topological order, the task graph looks like a commit
history: each task continues the column of a dependency when it can, and columns
are recycled once nothing further down still needs them.
"""

from __future__ import annotations

import logging
from bisect import insort
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from mc_sched.core.model import TaskLayout

if TYPE_CHECKING:
    from mc_sched.core.graph.graph import Edge, Graph


logger = logging.getLogger(__name__)


@dataclass
class _Column:
    first: int
    x: int
    last: int = field(init=False)

    def __post_init__(self) -> None:
        self.last = self.first


@dataclass(frozen=True)
class LayoutResult:
    column_count: int
    columns: dict[int, int]
    rows: list[list[Edge]]


def layout_x(g: Graph) -> LayoutResult:
    """Assign every task a column and row, and record the rows each edge spans.

    We keep a list of open columns, each ending in a "tip" that still has dependents
    further down. A tip is reference counted through a working copy of the graph:
    every visited dependent consumes one of its inverse edges, and once none are
    left the column is closed and its index goes back to the free list.
    """
    unclaimed = g.copy()
    order = {v: i for i, v in enumerate(g.topo)}
    columns: list[_Column] = []
    column_of: dict[int, _Column] = {}
    free_cols: list[int] = []
    next_x = 0

    def crosses(p: int, t: int, x: int) -> bool:
        for i in range(order[p] + 1, order[t]):
            if column_of[g.topo[i]].x == x:
                return True
        return False

    def crosses_any(t: int, x: int, parents: list[int], except_: Optional[int] = None) -> bool:
        return any(crosses(p, t, x) for p in parents if p != except_)

    def free_col(t: int, parents: list[int]) -> int:
        nonlocal next_x
        parent_xs = {column_of[p].x for p in parents}
        for i, x in enumerate(free_cols):
            if x in parent_xs or crosses_any(t, x, parents):
                continue
            del free_cols[i]
            return x
        next_x += 1
        return next_x - 1

    def end_column(col: _Column) -> None:
        assert col.x not in free_cols, f"column {col.x} freed twice"
        insort(free_cols, col.x)
        columns.remove(col)

    def first_dependent(p: int) -> int:
        return min(g.inv_edges(p), key=order.__getitem__)

    def get_column(t: int) -> _Column:
        parents = g.edges(t)
        for p in parents:
            if first_dependent(p) != t:
                continue
            col = column_of[p]
            if crosses_any(t, col.x, parents, p):
                continue
            return col
        col = _Column(first=t, x=free_col(t, parents))
        columns.append(col)
        return col

    for t in g.topo:
        col = get_column(t)
        col.last = t
        column_of[t] = col
        for p in g.edges(t):
            unclaimed.remove_edge(t, p)
        for c in list(columns):
            if not unclaimed.inv_edges(c.last):
                end_column(c)

    rows: list[list[Edge]] = [[] for _ in g.topo]
    for dependent, depends_on in g.E.items():
        for dependency in depends_on:
            # The connecting line is visible on every row from the dependency down to the dependent.
            for i in range(order[dependency], order[dependent] + 1):
                rows[i].append((dependency, dependent))

    for i, t in enumerate(g.topo):
        g.tasks[t].layout = TaskLayout(column=column_of[t].x, row=i, visible_paths=tuple(rows[i]))

    logger.debug("laid out %d tasks in %d columns", len(g.topo), next_x)
    return LayoutResult(
        column_count=next_x,
        columns={t: c.x for t, c in column_of.items()},
        rows=rows,
    )
