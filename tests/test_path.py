import pytest

from hlda.config import HLDAConfig
from hlda.node import TopicTree
from hlda.path import SPAWN, Existing, TopicPath, deepest_existing, enumerate_paths, validate_steps


@pytest.fixture
def tree():
    return TopicTree(HLDAConfig(max_depth=3), vocabulary_size=4)


def _full_tree(tree):
    c1 = tree.spawn_child(tree.root_id)
    c1a = tree.spawn_child(c1.id)
    c1b = tree.spawn_child(c1.id)
    c2 = tree.spawn_child(tree.root_id)
    c2a = tree.spawn_child(c2.id)
    c2b = tree.spawn_child(c2.id)
    return c1.id, c1a.id, c1b.id, c2.id, c2a.id, c2b.id


def test_enumerate_single_root(tree):
    root = Existing(tree.root_id)
    assert enumerate_paths(tree, 3) == [(root, SPAWN, SPAWN)]


def test_enumerate_full_tree_order(tree):
    c1, c1a, c1b, c2, c2a, c2b = _full_tree(tree)
    r = Existing(tree.root_id)
    assert enumerate_paths(tree, 3) == [
        (r, Existing(c1), Existing(c1a)),
        (r, Existing(c1), Existing(c1b)),
        (r, Existing(c1), SPAWN),
        (r, Existing(c2), Existing(c2a)),
        (r, Existing(c2), Existing(c2b)),
        (r, Existing(c2), SPAWN),
        (r, SPAWN, SPAWN),
    ]


def test_deepest_existing():
    assert deepest_existing([Existing(0), Existing(4), SPAWN]) == (4, True)
    assert deepest_existing([Existing(0), Existing(4), Existing(7)]) == (7, False)


def test_new_path_holds_only_root(tree):
    path = TopicPath(tree, 3)
    assert path.node_ids == [tree.root_id]
    assert path.depth == 1


def test_materialize_spawns_for_every_remaining_level(tree):
    path = TopicPath(tree, 3)
    node_ids = path.materialize([Existing(tree.root_id), SPAWN, SPAWN])
    assert len(node_ids) == 3
    assert node_ids[0] == tree.root_id
    assert tree.node(node_ids[1]).parent_id == tree.root_id
    assert tree.node(node_ids[2]).parent_id == node_ids[1]
    assert len(tree) == 3


def test_materialize_reuses_existing_nodes(tree):
    c1, c1a, *_ = _full_tree(tree)
    path = TopicPath(tree, 3)
    assert path.materialize([Existing(tree.root_id), Existing(c1), Existing(c1a)]) == [tree.root_id, c1, c1a]
    assert len(tree) == 7


def test_materialize_spawns_under_last_real_node(tree):
    c1, *_ = _full_tree(tree)
    path = TopicPath(tree, 3)
    node_ids = path.materialize([Existing(tree.root_id), Existing(c1), SPAWN])
    assert node_ids[1] == c1
    assert tree.node(node_ids[2]).parent_id == c1
    assert tree.node(c1).children[-1] == node_ids[2]


@pytest.mark.parametrize("steps", [
    [SPAWN, SPAWN, SPAWN],
    [Existing(0), SPAWN],
    [Existing(0), SPAWN, Existing(1)],
    [Existing(0), Existing(99), SPAWN],
])
def test_materialize_rejects_malformed_steps(tree, steps):
    path = TopicPath(tree, 3)
    with pytest.raises(ValueError):
        path.materialize(steps)
    assert len(tree) == 1


def test_add_and_remove_document_mark_every_node(tree):
    path = TopicPath(tree, 3)
    path.materialize([Existing(tree.root_id), SPAWN, SPAWN])
    path.add_document(7)
    assert all(7 in node.documents_visiting for node in path.nodes())
    path.remove_document(7)
    assert all(node.popularity == 0 for node in path.nodes())


def test_add_and_remove_word_by_level(tree):
    path = TopicPath(tree, 3)
    path.materialize([Existing(tree.root_id), SPAWN, SPAWN])
    path.add_word(0, 2, level=1, count=3)
    assert path.node(1).word_counts[2] == 3
    assert path.node(0).total_word_count == 0
    path.remove_word(0, 2, level=1, count=3)
    assert path.node(1).total_word_count == 0


@pytest.mark.parametrize("level", [-1, 3])
def test_level_out_of_range_raises(tree, level):
    path = TopicPath(tree, 3)
    path.materialize([Existing(tree.root_id), SPAWN, SPAWN])
    with pytest.raises(ValueError):
        path.add_word(0, 1, level)


def test_level_beyond_materialized_depth_raises(tree):
    path = TopicPath(tree, 3)
    with pytest.raises(ValueError):
        path.node(1)


def test_validate_steps_accepts_nested_existing_nodes(tree):
    c1, c1a, _, _, _, _ = _full_tree(tree)
    validate_steps(tree, [Existing(tree.root_id), Existing(c1), Existing(c1a)], 3)
    validate_steps(tree, [Existing(tree.root_id), Existing(c1), SPAWN], 3)


def test_validate_steps_rejects_grandchild_under_root(tree):
    _, c1a, _, _, _, _ = _full_tree(tree)
    with pytest.raises(ValueError, match="not a child"):
        validate_steps(tree, [Existing(tree.root_id), Existing(c1a), SPAWN], 3)


def test_validate_steps_rejects_wrong_length(tree):
    c1, c1a, _, _, _, _ = _full_tree(tree)
    with pytest.raises(ValueError, match="needs 3 steps"):
        validate_steps(tree, [Existing(tree.root_id), Existing(c1), Existing(c1a), SPAWN], 3)
