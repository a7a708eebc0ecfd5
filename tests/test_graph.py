from datetime import date

import pytest

from mc_sched.core.errors import CycleError
from mc_sched.core.graph.graph import Graph, main_graph, topo_sort
from mc_sched.core.model import Task


def _chain(n: int) -> tuple[Graph, list[Task]]:
    tasks = [Task(name=f"t{i}") for i in range(n)]
    edges = {tasks[i].id: [tasks[i - 1].id] for i in range(1, n)}
    return main_graph(tasks, edges), tasks


def _edge_invariant_holds(g: Graph) -> bool:
    for dependent, depends_on in g.E.items():
        for dependency in depends_on:
            if g.topo_index(dependency) > g.topo_index(dependent):
                return False
            if dependent not in g.inv_edges(dependency):
                return False
    return True


def test_topo_sort_orders_dependencies_first():
    E = {1: [2], 2: [3], 3: []}
    assert topo_sort([1, 2, 3], E) == [3, 2, 1]


def test_topo_sort_reports_cycle():
    with pytest.raises(CycleError) as exc:
        topo_sort([1, 2, 3], {1: [3], 2: [1], 3: [2]})
    assert exc.value.cycle[0] == exc.value.cycle[-1]
    assert set(exc.value.cycle) == {1, 2, 3}


def test_main_graph_dedupes_edges_and_inverts():
    a, b = Task(name="a"), Task(name="b")
    g = main_graph([a, b], {b.id: [a.id, a.id]})
    assert g.edges(b.id) == [a.id]
    assert g.inv_edges(a.id) == [b.id]
    assert g.all_edges == [(b.id, a.id)]
    assert g.topo == [a.id, b.id]


def test_add_edge_rejects_order_violation():
    g, (a, b, c) = _chain(3)
    assert g.add_edge(a.id, c.id) is False
    assert c.id not in g.edges(a.id)
    assert g.add_edge(c.id, a.id) is True
    assert _edge_invariant_holds(g)


def test_add_edge_is_idempotent():
    g, (a, b) = _chain(2)
    before = list(g.all_edges)
    assert g.add_edge(b.id, a.id) is True
    assert g.all_edges == before
    assert g.edges(b.id) == [a.id]


def test_add_edge_rejects_self_and_unknown():
    g, (a, _) = _chain(2)
    assert g.add_edge(a.id, a.id) is False
    with pytest.raises(KeyError):
        g.add_edge(a.id, -1)


def test_remove_edge():
    g, (a, b) = _chain(2)
    assert g.remove_edge(b.id, a.id) is True
    assert g.edges(b.id) == []
    assert g.inv_edges(a.id) == []
    assert g.all_edges == []
    assert g.remove_edge(b.id, a.id) is False


def test_remove_node_heals_edges():
    g, (a, b, c) = _chain(3)
    removed = g.remove_node(b.id, heal_edges=True)
    assert removed is b
    assert b.id not in g
    assert g.edges(c.id) == [a.id]
    assert g.inv_edges(a.id) == [c.id]
    assert g.all_edges == [(c.id, a.id)]
    assert g.topo == [a.id, c.id]


def test_remove_node_without_healing():
    g, (a, b, c) = _chain(3)
    g.remove_node(b.id, heal_edges=False)
    assert g.edges(c.id) == []
    assert g.inv_edges(a.id) == []
    assert g.all_edges == []


def test_insert_before_and_after():
    g, (a, b) = _chain(2)
    x, y, first, last = Task(name="x"), Task(name="y"), Task(name="first"), Task(name="last")
    g.insert_before(x, b.id)
    g.insert_after(y, a.id)
    g.insert_before(first)
    g.insert_after(last)
    assert g.topo == [first.id, a.id, y.id, x.id, b.id, last.id]
    assert g.edges(x.id) == [] and g.inv_edges(x.id) == []
    with pytest.raises(ValueError):
        g.insert_after(x, a.id)


def test_insert_upstream_takes_over_dependencies():
    g, (a, b) = _chain(2)
    n = Task(name="new")
    g.insert_upstream(n, b.id)
    assert g.topo == [a.id, n.id, b.id]
    assert g.edges(n.id) == [a.id]
    assert g.edges(b.id) == [n.id]
    assert _edge_invariant_holds(g)


def test_insert_upstream_branch_keeps_dependencies():
    g, (a, b) = _chain(2)
    n = Task(name="new")
    g.insert_upstream(n, b.id, branch=True)
    assert g.edges(n.id) == []
    assert set(g.edges(b.id)) == {a.id, n.id}


def test_insert_downstream_takes_over_dependents():
    g, (a, b) = _chain(2)
    n = Task(name="new")
    g.insert_downstream(n, a.id)
    assert g.topo == [a.id, n.id, b.id]
    assert g.edges(n.id) == [a.id]
    assert g.edges(b.id) == [n.id]
    assert _edge_invariant_holds(g)


def test_next_and_prev_wrap():
    g, (a, b, c) = _chain(3)
    assert g.next() == a.id
    assert g.next(c.id) == a.id
    assert g.prev() == c.id
    assert g.prev(a.id) == c.id
    assert g.prev(b.id) == a.id


def test_sub_graph_keeps_inner_edges_and_order():
    g, (a, b, c) = _chain(3)
    sub = g.sub_graph([a.id, c.id, b.id])
    assert sub.topo == g.topo
    sub2 = g.sub_graph([a.id, c.id])
    assert sub2.topo == [a.id, c.id]
    assert sub2.edges(c.id) == []
    assert sub2.all_edges == []


def test_copy_is_independent():
    g, (a, b) = _chain(2)
    h = g.copy()
    h.remove_edge(b.id, a.id)
    assert g.edges(b.id) == [a.id]


def test_remove_sub_component():
    g, (a, b, c) = _chain(3)
    removed = g.remove_sub_component([b.id, c.id])
    assert g.topo == [a.id]
    assert g.inv_edges(a.id) == []
    assert removed.edges(c.id) == [b.id]


def test_shift_up_and_down_respect_edges():
    a, b, c = Task(name="a"), Task(name="b"), Task(name="c")
    g = main_graph([a, b, c], {c.id: [a.id]})
    assert g.topo == [a.id, b.id, c.id]
    g.shift_up([c.id])
    assert g.topo == [a.id, c.id, b.id]
    g.shift_up([c.id])
    assert g.topo == [a.id, c.id, b.id]
    g.shift_down([a.id])
    assert g.topo == [a.id, c.id, b.id]
    g.shift_down([c.id])
    assert g.topo == [a.id, b.id, c.id]
    g.shift_up([b.id])
    assert g.topo == [b.id, a.id, c.id]
    assert _edge_invariant_holds(g)


def test_status_and_toggle():
    g, (a, b) = _chain(2)
    assert g.status(a.id) == "ready"
    assert g.blocked(b.id)
    a.toggle_status(date(2024, 2, 5))
    assert g.status(a.id) == "started"
    a.toggle_status(date(2024, 2, 7))
    assert g.status(a.id) == "finished"
    assert a.finished == date(2024, 2, 7)
    assert g.status(b.id) == "ready"
    a.toggle_status(date(2024, 2, 8))
    assert a.started is None and a.finished is None


def test_main_graph_handles_chains_longer_than_recursion_limit():
    tasks = [Task(name=f"t{i}") for i in range(1500)]
    edges = {tasks[i].id: [tasks[i - 1].id] for i in range(1, len(tasks))}
    g = main_graph(list(reversed(tasks)), edges)
    assert g.topo == [t.id for t in tasks]
    assert _edge_invariant_holds(g)


def test_long_cycle_is_reported():
    n = 1500
    E = {i: [i + 1] for i in range(n)}
    E[n] = [0]
    with pytest.raises(CycleError) as exc:
        topo_sort(range(n + 1), E)
    assert exc.value.cycle[0] == exc.value.cycle[-1] == 0
    assert len(exc.value.cycle) == n + 2


def test_remove_node_heals_every_dependent_dependency_pair():
    d1, d2, mid, r1, r2 = (Task(name=n) for n in ("d1", "d2", "mid", "r1", "r2"))
    g = main_graph(
        [d1, d2, mid, r1, r2],
        {mid.id: [d1.id, d2.id], r1.id: [mid.id], r2.id: [mid.id]},
    )
    g.remove_node(mid.id, heal_edges=True)
    for r in (r1, r2):
        assert sorted(g.edges(r.id)) == sorted([d1.id, d2.id])
    for d in (d1, d2):
        assert sorted(g.inv_edges(d.id)) == sorted([r1.id, r2.id])
    assert len(g.all_edges) == 4
    assert _edge_invariant_holds(g)
