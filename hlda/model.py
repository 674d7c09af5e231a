"""
Hierarchical LDA on the nested Chinese Restaurant Process, fit with
collapsed Gibbs sampling.

Each document follows a root-to-leaf path of max_depth topics and every
word-type in the document is emitted by one topic on that path. A sweep
resamples each document's path (nCRP prior times word likelihood) and then
each word-type's level (stick-breaking prior times word probability), and
finally prunes topics nobody uses.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence

import networkx as nx
import numpy as np

from .config import HLDAConfig
from .datatypes import BoundedPriorityQueue, IdentifierObjectMapper, SparseDocument, UNASSIGNED
from .node import TopicTree, new_topic_log_likelihood
from .path import (
    SPAWN, Existing, PathStep, Spawn, TopicPath, deepest_existing, enumerate_paths, validate_steps,
)
from .sampler import WeightedSampler

LOGGER = logging.getLogger(__name__)


class HierarchicalLDAModel:
    def __init__(self, config: Optional[HLDAConfig] = None, seed=None):
        """
        Tree-structured topic model

        Args:
            config: HLDAConfig with max_depth, gamma, eta, m and pi
            seed: Seed for the model's random generator
        """
        self.config = config if config is not None else HLDAConfig()
        self.rng = np.random.default_rng(seed)
        self.vocabulary = IdentifierObjectMapper()
        self.documents: List[SparseDocument] = []
        self.paths: List[TopicPath] = []
        self.tree: Optional[TopicTree] = None
        self.initialized = False
        self.sweeps_done = 0

    @property
    def max_depth(self):
        return self.config.max_depth

    @property
    def vocabulary_size(self):
        return len(self.vocabulary)

    # ------------- Setup -------------

    def ingest(self, documents: Sequence[Sequence[str]]):
        """
        Read tokenized documents and reset the tree to a lone root

        Args:
            documents: List of documents, each a list of already-cleaned tokens
        """
        self.vocabulary = IdentifierObjectMapper()
        self.documents = []
        for words in documents:
            document = SparseDocument(self.vocabulary)
            document.read_document(words)
            self.documents.append(document)

        self.tree = TopicTree(self.config, self.vocabulary_size)
        self.paths = [TopicPath(self.tree, self.max_depth) for _ in self.documents]
        self.initialized = False
        self.sweeps_done = 0
        LOGGER.info("Ingested %d documents, vocabulary of %d words",
                    len(self.documents), self.vocabulary_size)

    def _require_tree(self):
        if self.tree is None:
            raise ValueError("no documents ingested; call ingest() first")

    def _check_document(self, document_index):
        if document_index < 0 or document_index >= len(self.documents):
            raise ValueError(
                f"document_index must be in [0, {len(self.documents)}), got {document_index}"
            )

    def _sample_initial_steps(self, gamma) -> List[PathStep]:
        """Walk down from the root choosing children by popularity, or a new branch by gamma"""
        steps: List[PathStep] = [Existing(self.tree.root_id)]
        node = self.tree.root
        for level in range(1, self.max_depth):
            sampler = WeightedSampler(len(node.children) + 1, rng=self.rng)
            for child_id in node.children:
                sampler.add(self.tree.node(child_id).popularity)
            sampler.add(gamma)
            choice = sampler.sample()
            if choice == len(node.children):
                steps.extend([SPAWN] * (self.max_depth - level))
                break
            node = self.tree.node(node.children[choice])
            steps.append(Existing(node.id))
        return steps

    def initialize(self):
        """Random initial tree: paths drawn from the nCRP, word levels uniform"""
        self._require_tree()
        self.tree = TopicTree(self.config, self.vocabulary_size)
        self.paths = [TopicPath(self.tree, self.max_depth) for _ in self.documents]

        for document_index, document in enumerate(self.documents):
            steps = self._sample_initial_steps(self.config.gamma)
            self.assign_path(document_index, steps)
            for word_id in document.word_ids:
                document.set_level_for_word(word_id, int(self.rng.integers(self.max_depth)))
            self._add_words(document_index)

        self.initialized = True
        LOGGER.debug("Initialized tree with %d nodes", len(self.tree))

    def assign_path(self, document_index, steps: Sequence[PathStep]) -> List[int]:
        """
        Move a document's visit markers onto the path described by steps

        Word counts are left alone; callers move them with the path.
        """
        self._require_tree()
        self._check_document(document_index)
        validate_steps(self.tree, steps, self.max_depth)
        path = self.paths[document_index]
        path.remove_document(document_index)
        node_ids = path.materialize(steps)
        path.add_document(document_index)
        return node_ids

    def _add_words(self, document_index):
        document = self.documents[document_index]
        path = self.paths[document_index]
        for word_id, count in document.word_counts.items():
            level = document.level_for_word(word_id)
            if level != UNASSIGNED:
                path.add_word(document_index, word_id, level, count)

    def _remove_words(self, document_index):
        document = self.documents[document_index]
        path = self.paths[document_index]
        for word_id, count in document.word_counts.items():
            level = document.level_for_word(word_id)
            if level != UNASSIGNED:
                path.remove_word(document_index, word_id, level, count)

    # ------------- Probabilities -------------

    def level_probabilities(self, level_counts) -> np.ndarray:
        """
        Stick-breaking distribution over levels for a document

        Args:
            level_counts: Word occurrences of the document at each level

        Returns:
            np.ndarray of max_depth probabilities summing to 1
        """
        counts = np.asarray(level_counts, dtype=float)
        if counts.shape != (self.max_depth,):
            raise ValueError(f"level_counts needs {self.max_depth} entries, got {counts.shape}")
        m, pi = self.config.m, self.config.pi
        remaining = np.cumsum(counts[::-1])[::-1]

        probabilities = np.zeros(self.max_depth)
        stick = 1.0
        for level in range(self.max_depth - 1):
            share = min((m * pi + counts[level]) / (pi + remaining[level]), 1.0)
            probabilities[level] = stick * share
            stick *= 1.0 - share
        # The last level takes whatever is left so the total is exactly 1
        probabilities[-1] = max(1.0 - probabilities[:-1].sum(), 0.0)
        return probabilities

    def word_probabilities(self, node_ids: Sequence[int], word_id) -> np.ndarray:
        """Smoothed probability of word_id at every level of a path"""
        self._require_tree()
        vocabulary_size = self.vocabulary_size
        probabilities = np.full(self.max_depth, 1.0 / vocabulary_size if vocabulary_size else 0.0)
        for level, node_id in enumerate(node_ids[:self.max_depth]):
            node = self.tree.node(node_id)
            eta = self.config.eta[level]
            probabilities[level] = (
                (node.word_counts[word_id] + eta)
                / (node.total_word_count + vocabulary_size * eta)
            )
        return probabilities

    def path_log_likelihood(self, document_index, steps: Sequence[PathStep],
                            level_words=None, cache=None) -> float:
        """
        Structure prior plus word likelihood of a document on a candidate path

        The prior comes from the weights cached by the last
        TopicTree.propagate_weights call. Raises ValueError when steps do
        not describe a path through the current tree.
        """
        self._require_tree()
        self._check_document(document_index)
        validate_steps(self.tree, steps, self.max_depth)
        return self._path_score(document_index, steps, level_words, cache)

    def _path_score(self, document_index, steps, level_words=None, cache=None):
        document = self.documents[document_index]
        deepest_id, spawns = deepest_existing(steps)
        deepest = self.tree.node(deepest_id)
        score = deepest.new_branch_weight if spawns else deepest.weight
        if score == -math.inf:
            return score

        if level_words is None:
            level_words = [document.words_at_level(level) for level in range(self.max_depth)]
        cache = {} if cache is None else cache
        for level, step in enumerate(steps):
            words = level_words[level]
            if not words:
                continue
            key = (level, None) if isinstance(step, Spawn) else (level, step.node_id)
            if key not in cache:
                eta = self.config.eta[level]
                if isinstance(step, Spawn):
                    cache[key] = new_topic_log_likelihood(words, eta, self.vocabulary_size)
                else:
                    cache[key] = self.tree.node(step.node_id).word_log_likelihood(
                        words, document_index, eta, self.vocabulary_size
                    )
            score += cache[key]
        return score

    # ------------- Gibbs sampling -------------

    def _resample_path(self, document_index, gamma=None):
        self.tree.propagate_weights(gamma)
        candidates = enumerate_paths(self.tree, self.max_depth)
        document = self.documents[document_index]
        level_words = [document.words_at_level(level) for level in range(self.max_depth)]
        cache = {}
        scores = [self._path_score(document_index, steps, level_words, cache)
                  for steps in candidates]
        sampler = WeightedSampler.normalize_log_likelihoods(scores, rng=self.rng)
        chosen = candidates[sampler.sample()]

        self._remove_words(document_index)
        self.assign_path(document_index, chosen)
        self._add_words(document_index)

    def _resample_levels(self, document_index):
        document = self.documents[document_index]
        path = self.paths[document_index]
        level_counts = np.zeros(self.max_depth)
        for level, count in document.level_counts().items():
            if level != UNASSIGNED:
                level_counts[level] += count

        for word_id, count in document.word_counts.items():
            old_level = document.level_for_word(word_id)
            if old_level != UNASSIGNED:
                path.remove_word(document_index, word_id, old_level, count)
                level_counts[old_level] -= count

            weights = self.level_probabilities(level_counts) * self.word_probabilities(path.node_ids, word_id)
            new_level = WeightedSampler.from_weights(weights, rng=self.rng).sample()

            path.add_word(document_index, word_id, new_level, count)
            document.set_level_for_word(word_id, new_level)
            level_counts[new_level] += count

    def run_sweeps(self, num_sweeps, log_every=20):
        """
        Run Gibbs sweeps, initializing first if needed

        Args:
            num_sweeps: Number of passes over all documents
            log_every: Print progress every this many sweeps (0 = silent)
        """
        if num_sweeps < 0:
            raise ValueError(f"num_sweeps must be >= 0, got {num_sweeps}")
        self._require_tree()
        if not self.initialized:
            self.initialize()
        if not self.documents:
            return

        for sweep in range(1, num_sweeps + 1):
            for document_index in range(len(self.documents)):
                self._resample_path(document_index)
                self._resample_levels(document_index)
            self.tree.prune()
            self.sweeps_done += 1

            if log_every and (sweep == 1 or sweep % log_every == 0):
                print(f"Iteration {sweep}: {len(self.tree)} topics, "
                      f"log-likelihood {self.log_likelihood():.2f}")

    def fit(self, documents, num_sweeps=100, log_every=20):
        self.ingest(documents)
        self.initialize()
        self.run_sweeps(num_sweeps, log_every=log_every)
        return self

    def log_likelihood(self) -> float:
        """Sum of every topic's Dirichlet-multinomial word log-likelihood"""
        self._require_tree()
        return sum(
            node.log_likelihood(self.config.eta[node.level], self.vocabulary_size)
            for node in self.tree.walk()
        )

    # ------------- Unseen documents -------------

    def inference(self, words, num_iterations, override_gamma=False):
        """
        Place an unseen document in the learned tree

        The document is sampled alone against the frozen rest of the corpus
        and removed again afterwards. Words outside the vocabulary are ignored.

        Args:
            words: Tokens of the new document
            num_iterations: Path and level resampling rounds
            override_gamma: Disallow new branches while sampling

        Returns:
            (node_ids, level_distribution); levels whose topic only existed
            for this document are reported as None
        """
        if num_iterations < 1:
            raise ValueError(f"num_iterations must be >= 1, got {num_iterations}")
        self._require_tree()
        if not self.initialized:
            raise ValueError("model must be initialized before inference")

        document = SparseDocument(self.vocabulary)
        document.read_document(words, add_unknown=False)
        if not document.word_counts:
            return [], []

        gamma = 0.0 if override_gamma else self.config.gamma
        known_ids = set(self.tree.node_ids())
        document_index = len(self.documents)
        self.documents.append(document)
        self.paths.append(TopicPath(self.tree, self.max_depth))
        try:
            self.assign_path(document_index, self._sample_initial_steps(gamma))
            for word_id in document.word_ids:
                document.set_level_for_word(word_id, int(self.rng.integers(self.max_depth)))
            self._add_words(document_index)

            for _ in range(num_iterations):
                self._resample_path(document_index, gamma)
                self._resample_levels(document_index)

            node_ids = [node_id if node_id in known_ids else None
                        for node_id in self.paths[document_index].node_ids]
            level_counts = np.zeros(self.max_depth)
            for level, count in document.level_counts().items():
                if level != UNASSIGNED:
                    level_counts[level] += count
            distribution = self.level_probabilities(level_counts)
        finally:
            self._remove_words(document_index)
            self.paths[document_index].remove_document(document_index)
            self.documents.pop()
            self.paths.pop()
            self.tree.prune()

        return node_ids, distribution.tolist()

    # ------------- Reporting -------------

    def document_path(self, document_index) -> List[int]:
        self._check_document(document_index)
        return list(self.paths[document_index].node_ids)

    def top_words_for_topic(self, topic_id, num_words) -> List[str]:
        """
        Most frequent words of a topic

        Args:
            topic_id: Node id in the tree
            num_words: How many words to return at most

        Returns:
            List of words, most frequent first; ties favor later vocabulary entries
        """
        if num_words <= 0:
            raise ValueError(f"num_words must be > 0, got {num_words}")
        self._require_tree()
        node = self.tree.node(topic_id)
        queue = BoundedPriorityQueue(num_words)
        for word_id in np.flatnonzero(node.word_counts):
            queue.add(int(node.word_counts[word_id]), int(word_id))
        return [self.vocabulary.object_at(word_id) for word_id in queue.elements()]

    def topics_summary(self, num_words, min_documents=1) -> Dict[int, List[str]]:
        """Top words of every topic visited by at least min_documents documents"""
        self._require_tree()
        return {
            node_id: self.top_words_for_topic(node_id, num_words)
            for node_id in self.tree.node_ids()
            if self.tree.node(node_id).popularity >= min_documents
        }

    def pretty_print_tree(self, num_words) -> str:
        self._require_tree()
        lines = []
        for node in self.tree.walk():
            words = ", ".join(self.top_words_for_topic(node.id, num_words))
            prefix = "-" + "--" * node.level
            lines.append(f"{prefix} Node {node.id}: {node.popularity} docs, words: [{words}]\n")
        return "".join(lines)

    def get_hierarchy(self) -> Dict[int, List[int]]:
        self._require_tree()
        return {node.id: list(node.children) for node in self.tree.walk()}

    def to_networkx(self) -> nx.DiGraph:
        """The topic tree as a directed graph, edges pointing from parent to child"""
        self._require_tree()
        graph = nx.DiGraph()
        for node in self.tree.walk():
            graph.add_node(node.id, level=node.level, documents=node.popularity,
                           words=node.total_word_count)
            if node.parent_id is not None:
                graph.add_edge(node.parent_id, node.id)
        return graph
