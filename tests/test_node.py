import logging
import math

import pytest

from hlda.config import HLDAConfig
from hlda.node import TopicNode, TopicTree, new_topic_log_likelihood

VOCABULARY_SIZE = 5
DOCUMENT = {word_id: 1 for word_id in range(VOCABULARY_SIZE)}


def _node_with(documents):
    node = TopicNode(VOCABULARY_SIZE)
    for document_index in documents:
        node.set_visited(document_index)
        for word_id in DOCUMENT:
            node.add_word(document_index, word_id)
    return node


def test_add_then_remove_word_restores_counts():
    node = TopicNode(VOCABULARY_SIZE)
    node.add_word(0, 3, count=2)
    node.add_word(1, 3)
    assert node.word_counts[3] == 3
    assert node.total_word_count == 3
    assert node.document_word_total(0) == 2

    node.remove_word(0, 3, count=2)
    assert node.word_counts[3] == 1
    assert node.total_word_count == 1
    assert node.document_word_total(0) == 0
    assert 0 not in node.document_word_counts


def test_remove_word_clamps_at_zero(caplog):
    node = TopicNode(VOCABULARY_SIZE)
    node.add_word(0, 1)
    with caplog.at_level(logging.WARNING, logger="hlda.node"):
        node.remove_word(0, 1, count=3)
    assert node.word_counts[1] == 0
    assert node.total_word_count == 0
    assert "clamping" in caplog.text


def test_visits_are_idempotent():
    node = TopicNode(VOCABULARY_SIZE)
    node.set_visited(4)
    node.set_visited(4)
    assert node.popularity == 1
    node.remove_visited(4)
    node.remove_visited(4)
    assert node.popularity == 0


def test_word_log_likelihood_excludes_own_document():
    node = _node_with([0, 1])
    assert node.word_log_likelihood(DOCUMENT, 0, 0.1, VOCABULARY_SIZE) == pytest.approx(-9.50626035276342)


def test_word_log_likelihood_single_document():
    node = _node_with([0])
    assert node.word_log_likelihood(DOCUMENT, 0, 0.1, VOCABULARY_SIZE) == pytest.approx(-14.898374489664242)


def test_word_log_likelihood_eta_one():
    node = _node_with([0, 1])
    assert node.word_log_likelihood(DOCUMENT, 0, 1.0, VOCABULARY_SIZE) == pytest.approx(-8.92365779985749)


def test_word_log_likelihood_of_unplaced_document_matches_its_own_exclusion():
    # Scoring document 2 (not on the node) against a node holding document 1
    # equals scoring document 0 against a node holding both 0 and 1
    node = _node_with([1])
    assert node.word_log_likelihood(DOCUMENT, 2, 0.1, VOCABULARY_SIZE) == pytest.approx(-9.50626035276342)


def test_word_log_likelihood_without_words_is_neutral():
    node = _node_with([0, 1])
    assert node.word_log_likelihood({}, 0, 0.1, VOCABULARY_SIZE) == 0.0


def test_new_topic_log_likelihood_matches_empty_node():
    assert new_topic_log_likelihood(DOCUMENT, 0.1, VOCABULARY_SIZE) == pytest.approx(-14.898374489664242)
    assert new_topic_log_likelihood({}, 0.1, VOCABULARY_SIZE) == 0.0


def test_node_log_likelihood():
    node = _node_with([0])
    assert node.log_likelihood(0.1, VOCABULARY_SIZE) == pytest.approx(-14.898374489664242)
    assert TopicNode(VOCABULARY_SIZE).log_likelihood(0.1, VOCABULARY_SIZE) == 0.0


@pytest.fixture
def tree():
    return TopicTree(HLDAConfig(max_depth=3), VOCABULARY_SIZE)


def test_tree_starts_with_root(tree):
    assert len(tree) == 1
    assert tree.root.is_root()
    assert tree.root.level == 0


def test_spawn_child_links_both_ways(tree):
    child = tree.spawn_child(tree.root_id)
    assert child.parent_id == tree.root_id
    assert tree.root.children == [child.id]
    assert child.level == 1
    assert child.id in tree


def test_cannot_spawn_below_deepest_level(tree):
    child = tree.spawn_child(tree.root_id)
    leaf = tree.spawn_child(child.id)
    with pytest.raises(ValueError):
        tree.spawn_child(leaf.id)


def test_unknown_node_raises(tree):
    with pytest.raises(ValueError):
        tree.node(42)


def test_remove_node_detaches_from_parent(tree):
    child = tree.spawn_child(tree.root_id)
    tree.remove_node(child.id)
    assert tree.root.children == []
    assert child.id not in tree
    with pytest.raises(ValueError):
        tree.remove_node(tree.root_id)


def test_prune_collapses_empty_chains(tree):
    tree.root.set_visited(0)
    empty_branch = tree.spawn_child(tree.root_id)
    tree.spawn_child(empty_branch.id)

    kept_branch = tree.spawn_child(tree.root_id)
    kept_branch.set_visited(0)
    kept_leaf = tree.spawn_child(kept_branch.id)
    kept_leaf.set_visited(0)

    words_only = tree.spawn_child(tree.root_id)
    words_only.add_word(3, 1)

    assert tree.prune() == 2
    assert tree.root.children == [kept_branch.id, words_only.id]
    assert tree.node_ids() == [tree.root_id, kept_branch.id, kept_leaf.id, words_only.id]


def test_walk_is_depth_first(tree):
    first = tree.spawn_child(tree.root_id)
    first_leaf = tree.spawn_child(first.id)
    second = tree.spawn_child(tree.root_id)
    assert [node.id for node in tree.walk()] == [tree.root_id, first.id, first_leaf.id, second.id]


def test_new_branch_weight_at_root():
    tree = TopicTree(HLDAConfig(max_depth=2), VOCABULARY_SIZE)
    tree.root.set_visited(0)
    tree.root.set_visited(1)
    tree.propagate_weights()
    assert tree.root.weight == 0.0
    assert tree.root.new_branch_weight == pytest.approx(math.log(0.5))


@pytest.mark.parametrize("visitors, expected", [([0], math.log(0.5)), ([0, 1], 0.0)])
def test_child_weight_uses_total_documents(visitors, expected):
    tree = TopicTree(HLDAConfig(max_depth=2), VOCABULARY_SIZE)
    tree.root.set_visited(0)
    tree.root.set_visited(1)
    child = tree.spawn_child(tree.root_id)
    for document_index in visitors:
        child.set_visited(document_index)
    tree.propagate_weights()
    assert child.weight == pytest.approx(expected)
    # leaves cannot branch
    assert child.new_branch_weight == -math.inf


def test_new_branch_weight_below_child(tree):
    for document_index in range(3):
        tree.root.set_visited(document_index)
    child = tree.spawn_child(tree.root_id)
    child.set_visited(0)
    child.set_visited(1)
    tree.propagate_weights()
    assert child.weight == pytest.approx(math.log(2 / 3))
    assert child.new_branch_weight == pytest.approx(math.log(2 / 9))


def test_weights_on_sparse_branches_stay_probabilities():
    tree = TopicTree(HLDAConfig(max_depth=3, gamma=0.1), VOCABULARY_SIZE)
    leaves = []
    for document_index in range(2):
        branch = tree.spawn_child(tree.root_id)
        leaf = tree.spawn_child(branch.id)
        for node in (tree.root, branch, leaf):
            node.set_visited(document_index)
        leaves.append(leaf)
    tree.propagate_weights()
    for leaf in leaves:
        assert leaf.weight == pytest.approx(2 * math.log(1 / 1.1))
        assert math.exp(leaf.weight) <= 1.0


def test_zero_gamma_never_branches(tree):
    tree.root.set_visited(0)
    tree.root.set_visited(1)
    tree.propagate_weights(gamma=0.0)
    assert tree.root.new_branch_weight == -math.inf


def test_unvisited_child_has_no_prior_mass(tree):
    tree.root.set_visited(0)
    child = tree.spawn_child(tree.root_id)
    tree.propagate_weights()
    assert child.weight == -math.inf
