from mc_sched.core.graph.graph import main_graph
from mc_sched.core.model import Task


def test_chain_uses_one_column():
    a, b, c = Task(name="a"), Task(name="b"), Task(name="c")
    g = main_graph([a, b, c], {b.id: [a.id], c.id: [b.id]})
    result = g.layout_x()
    assert result.column_count == 1
    assert [t.layout.column for t in g.ordered_tasks()] == [0, 0, 0]
    assert [t.layout.row for t in g.ordered_tasks()] == [0, 1, 2]


def test_fork_needs_two_columns():
    a, b, c = Task(name="a"), Task(name="b"), Task(name="c")
    g = main_graph([a, b, c], {b.id: [a.id], c.id: [a.id]})
    result = g.layout_x()
    assert result.column_count == 2
    assert result.columns == {a.id: 0, b.id: 0, c.id: 1}


def test_diamond_rejoins_first_column():
    a, b, c, d = Task(name="a"), Task(name="b"), Task(name="c"), Task(name="d")
    g = main_graph([a, b, c, d], {b.id: [a.id], c.id: [a.id], d.id: [b.id, c.id]})
    result = g.layout_x()
    assert result.column_count == 2
    assert d.layout.column == 0
    assert c.layout.column == 1


def test_unrelated_tasks_reuse_freed_columns():
    a, b = Task(name="a"), Task(name="b")
    g = main_graph([a, b], {})
    result = g.layout_x()
    assert result.column_count == 1


def test_visible_paths_span_rows():
    a, b, c = Task(name="a"), Task(name="b"), Task(name="c")
    g = main_graph([a, b, c], {c.id: [a.id]})
    result = g.layout_x()
    edge = (a.id, c.id)
    assert all(edge in row for row in result.rows)
    assert b.layout.visible_paths == (edge,)
    # a's column stays open until c claims it, so b gets its own.
    assert c.layout.column == a.layout.column
    assert b.layout.column != a.layout.column
