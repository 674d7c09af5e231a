"""Topic nodes and the registry that owns the topic tree."""

from collections import Counter, defaultdict
import logging
import math
from typing import Dict, Iterator, List, Mapping, Optional, Set

import numpy as np
from scipy.special import gammaln

from .datatypes import IdentifierObjectMapper

LOGGER = logging.getLogger(__name__)


def _marginal_log_likelihood(prior_counts, prior_total, word_counts, eta, vocabulary_size):
    """Dirichlet-multinomial log-likelihood of word_counts given prior_counts"""
    added = float(np.sum(word_counts))
    if added == 0:
        return 0.0
    eta_total = eta * vocabulary_size
    return float(
        gammaln(eta_total + prior_total)
        - gammaln(eta_total + prior_total + added)
        + np.sum(gammaln(eta + prior_counts + word_counts) - gammaln(eta + prior_counts))
    )


def _as_arrays(word_counts: Mapping[int, int]):
    word_ids = np.fromiter(word_counts.keys(), dtype=np.int64, count=len(word_counts))
    counts = np.fromiter(word_counts.values(), dtype=float, count=len(word_counts))
    return word_ids, counts


def new_topic_log_likelihood(word_counts: Mapping[int, int], eta, vocabulary_size):
    """Log-likelihood of word_counts under a topic that has no words yet"""
    if not word_counts:
        return 0.0
    _, counts = _as_arrays(word_counts)
    return _marginal_log_likelihood(np.zeros(counts.size), 0.0, counts, eta, vocabulary_size)


def _log_share(count, denominator):
    if count <= 0:
        return -math.inf
    if denominator <= 0:
        return 0.0
    return math.log(count / denominator)


class TopicNode:
    def __init__(self, vocabulary_size, level=0, parent_id=None):
        """
        One topic in the tree

        Args:
            vocabulary_size: Length of the dense word-count vector
            level: Depth of the node (root is 0)
            parent_id: Registry id of the parent, None for the root
        """
        self.id = -1
        self.level = level
        self.parent_id = parent_id
        self.children: List[int] = []
        self.word_counts = np.zeros(vocabulary_size, dtype=np.int64)
        self.total_word_count = 0
        # document index -> Counter of word id -> count placed here by that document
        self.document_word_counts: Dict[int, Counter] = defaultdict(Counter)
        self.documents_visiting: Set[int] = set()
        # Structure prior cache, refreshed by TopicTree.propagate_weights
        self.weight = 0.0
        self.new_branch_weight = -math.inf

    @property
    def popularity(self):
        return len(self.documents_visiting)

    def is_root(self):
        return self.parent_id is None

    def is_empty(self):
        return not self.documents_visiting and self.total_word_count == 0 and not self.children

    def set_visited(self, document_index):
        self.documents_visiting.add(document_index)

    def remove_visited(self, document_index):
        self.documents_visiting.discard(document_index)

    def add_word(self, document_index, word_id, count=1):
        self.word_counts[word_id] += count
        self.total_word_count += count
        self.document_word_counts[document_index][word_id] += count

    def remove_word(self, document_index, word_id, count=1):
        current = int(self.word_counts[word_id])
        if count > current:
            LOGGER.warning(
                "Node %d: removing %d of word %d but only %d assigned, clamping at zero",
                self.id, count, word_id, current,
            )
            count = current
        self.word_counts[word_id] -= count
        self.total_word_count -= count

        own = self.document_word_counts.get(document_index)
        if own is None:
            return
        own[word_id] -= count
        if own[word_id] <= 0:
            del own[word_id]
        if not own:
            del self.document_word_counts[document_index]

    def document_word_total(self, document_index):
        own = self.document_word_counts.get(document_index)
        return sum(own.values()) if own else 0

    def word_log_likelihood(self, word_counts: Mapping[int, int], document_index, eta, vocabulary_size):
        """
        Marginal log-likelihood of a document's words at this node

        The document's own words currently stored on the node are taken out
        before scoring, so a document is never scored against itself.

        Args:
            word_counts: word id -> count the document would place here
            document_index: The document being scored
            eta: Smoothing for this node's level
            vocabulary_size: Number of distinct words in the corpus

        Returns:
            float log-likelihood, 0.0 when word_counts is empty
        """
        if not word_counts:
            return 0.0
        word_ids, counts = _as_arrays(word_counts)
        prior_counts = self.word_counts[word_ids].astype(float)
        prior_total = float(self.total_word_count)

        own = self.document_word_counts.get(document_index)
        if own:
            prior_counts -= np.array([own.get(int(w), 0) for w in word_ids], dtype=float)
            prior_total -= sum(own.values())

        return _marginal_log_likelihood(prior_counts, prior_total, counts, eta, vocabulary_size)

    def log_likelihood(self, eta, vocabulary_size):
        """Marginal log-likelihood of all words on this node"""
        if self.total_word_count == 0:
            return 0.0
        eta_total = eta * vocabulary_size
        return float(
            gammaln(eta_total) - gammaln(eta_total + self.total_word_count)
            + np.sum(gammaln(self.word_counts + eta) - gammaln(eta))
        )

    def __repr__(self):
        return (f"TopicNode(id={self.id}, level={self.level}, docs={self.popularity}, "
                f"words={self.total_word_count}, children={self.children})")


class TopicTree:
    """
    Arena of TopicNodes addressed by registry id

    Parent and child links are ids, so removing a node is a registry delete
    plus an edit of its parent's child list.
    """

    def __init__(self, config, vocabulary_size):
        self.config = config
        self.vocabulary_size = vocabulary_size
        self.registry = IdentifierObjectMapper()
        self.root_id = self._register(TopicNode(vocabulary_size))

    def _register(self, node):
        node.id = self.registry.add(node)
        return node.id

    @property
    def root(self) -> TopicNode:
        return self.registry.object_at(self.root_id)

    def node(self, node_id) -> TopicNode:
        node = self.registry.object_at(node_id)
        if node is None:
            raise ValueError(f"unknown topic id {node_id}")
        return node

    def __contains__(self, node_id):
        return self.registry.contains_index(node_id)

    def __len__(self):
        return len(self.registry)

    def node_ids(self) -> List[int]:
        return sorted(self.registry.indexes())

    def spawn_child(self, parent_id) -> TopicNode:
        parent = self.node(parent_id)
        if parent.level >= self.config.max_depth - 1:
            raise ValueError(f"node {parent_id} is at the deepest level and cannot branch")
        child = TopicNode(self.vocabulary_size, level=parent.level + 1, parent_id=parent.id)
        self._register(child)
        parent.children.append(child.id)
        LOGGER.debug("Spawned node %d under node %d", child.id, parent.id)
        return child

    def remove_node(self, node_id):
        if node_id == self.root_id:
            raise ValueError("the root node cannot be removed")
        node = self.node(node_id)
        parent = self.node(node.parent_id)
        parent.children.remove(node_id)
        self.registry.delete_index(node_id)

    def prune(self) -> int:
        """Delete empty leaves until none remain; returns how many were removed"""
        removed = 0
        changed = True
        while changed:
            changed = False
            for node_id in self.node_ids():
                if node_id == self.root_id:
                    continue
                if self.node(node_id).is_empty():
                    self.remove_node(node_id)
                    removed += 1
                    changed = True
        if removed:
            LOGGER.debug("Pruned %d empty nodes, %d remain", removed, len(self))
        return removed

    def propagate_weights(self, gamma: Optional[float] = None):
        """
        Cache the nCRP log prior on every node, top-down from the root

        A child's weight is its parent's weight plus
        log(popularity(child) / (total_documents - 1 + gamma)); the parent's
        new-branch weight uses gamma in place of the popularity. The root
        is visited by every placed document, so its popularity is the total.
        """
        gamma = self.config.gamma if gamma is None else gamma
        root = self.root
        root.weight = 0.0
        denominator = root.popularity - 1 + gamma
        stack = [root]
        while stack:
            node = stack.pop()
            if node.level >= self.config.max_depth - 1:
                node.new_branch_weight = -math.inf
                continue
            node.new_branch_weight = node.weight + _log_share(gamma, denominator)
            for child_id in node.children:
                child = self.node(child_id)
                child.weight = node.weight + _log_share(child.popularity, denominator)
                stack.append(child)

    def walk(self, node_id=None) -> Iterator[TopicNode]:
        """Depth-first, children in creation order"""
        node = self.node(self.root_id if node_id is None else node_id)
        yield node
        for child_id in node.children:
            yield from self.walk(child_id)
