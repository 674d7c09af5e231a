"""
Flat LDA with a fixed number of topics, collapsed Gibbs over tokens

The non-hierarchical sibling of HierarchicalLDAModel: every token gets one
of num_topics topics, resampled with
p(k) ~ (n_wk + beta) / (n_k + V*beta) * (n_dk + alpha).
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy.special import gammaln

from .config import LDAConfig
from .datatypes import BoundedPriorityQueue, IdentifierObjectMapper
from .sampler import WeightedSampler

LOGGER = logging.getLogger(__name__)


class LDAModel:
    def __init__(self, config: LDAConfig, seed=None):
        self.config = config
        self.num_topics = config.num_topics
        self.alpha = config.alpha
        self.beta = config.beta
        self.rng = np.random.default_rng(seed)
        self.vocabulary = IdentifierObjectMapper()
        self.documents: List[np.ndarray] = []
        self.topic_assignments: List[np.ndarray] = []
        self.document_topic_counts: Optional[np.ndarray] = None
        self.word_topic_counts: Optional[np.ndarray] = None
        self.topic_totals: Optional[np.ndarray] = None
        self.initialized = False

    @property
    def vocabulary_size(self):
        return len(self.vocabulary)

    def ingest(self, documents: Sequence[Sequence[str]]):
        self.vocabulary = IdentifierObjectMapper()
        self.documents = [
            np.array([self.vocabulary.add(word) for word in words], dtype=np.int64)
            for words in documents
        ]
        self.initialized = False
        LOGGER.info("Ingested %d documents, vocabulary of %d words",
                    len(self.documents), self.vocabulary_size)

    def initialize(self):
        """Give every token a uniformly random topic and build the count tables"""
        n_docs = len(self.documents)
        self.document_topic_counts = np.zeros((n_docs, self.num_topics), dtype=np.int64)
        self.word_topic_counts = np.zeros((self.vocabulary_size, self.num_topics), dtype=np.int64)
        self.topic_totals = np.zeros(self.num_topics, dtype=np.int64)
        self.topic_assignments = []

        for doc_idx, words in enumerate(self.documents):
            topics = self.rng.integers(self.num_topics, size=len(words))
            self.topic_assignments.append(topics)
            np.add.at(self.document_topic_counts[doc_idx], topics, 1)
            np.add.at(self.word_topic_counts, (words, topics), 1)
            np.add.at(self.topic_totals, topics, 1)
        self.initialized = True

    def _topic_weights(self, word_id, doc_topic_counts):
        word_part = (self.word_topic_counts[word_id] + self.beta) / (
            self.topic_totals + self.vocabulary_size * self.beta
        )
        return word_part * (doc_topic_counts + self.alpha)

    def run_sweeps(self, num_sweeps, log_every=20):
        """
        Resample every token's topic num_sweeps times

        Args:
            num_sweeps: Number of passes over the corpus
            log_every: Print progress every this many sweeps (0 = silent)
        """
        if num_sweeps < 0:
            raise ValueError(f"num_sweeps must be >= 0, got {num_sweeps}")
        if not self.initialized:
            self.initialize()

        for sweep in range(1, num_sweeps + 1):
            for doc_idx, words in enumerate(self.documents):
                topics = self.topic_assignments[doc_idx]
                doc_counts = self.document_topic_counts[doc_idx]
                for position, word_id in enumerate(words):
                    old_topic = topics[position]
                    doc_counts[old_topic] -= 1
                    self.word_topic_counts[word_id, old_topic] -= 1
                    self.topic_totals[old_topic] -= 1

                    weights = self._topic_weights(word_id, doc_counts)
                    new_topic = WeightedSampler.from_weights(weights, rng=self.rng).sample()

                    topics[position] = new_topic
                    doc_counts[new_topic] += 1
                    self.word_topic_counts[word_id, new_topic] += 1
                    self.topic_totals[new_topic] += 1

            if log_every and (sweep == 1 or sweep % log_every == 0):
                print(f"Iteration {sweep}: log-likelihood {self.log_likelihood():.2f}")

    def fit(self, documents, num_sweeps=200, log_every=20):
        self.ingest(documents)
        self.initialize()
        self.run_sweeps(num_sweeps, log_every=log_every)
        return self

    def log_likelihood(self):
        v_beta = self.vocabulary_size * self.beta
        return float(
            np.sum(gammaln(v_beta) - gammaln(self.topic_totals + v_beta))
            + np.sum(gammaln(self.word_topic_counts + self.beta) - gammaln(self.beta))
        )

    def _check_trained(self):
        if not self.initialized:
            raise ValueError("model has not been initialized; call initialize() or run_sweeps()")

    def top_words_for_topic(self, topic_index, num_words) -> List[str]:
        if topic_index < 0 or topic_index >= self.num_topics:
            raise ValueError(f"topic_index must be in [0, {self.num_topics}), got {topic_index}")
        if num_words <= 0:
            raise ValueError(f"num_words must be > 0, got {num_words}")
        self._check_trained()
        queue = BoundedPriorityQueue(num_words)
        for word_id in range(self.vocabulary_size):
            queue.add(int(self.word_topic_counts[word_id, topic_index]), word_id)
        return [self.vocabulary.object_at(word_id) for word_id in queue.elements()]

    def get_topics(self, num_words) -> List[List[str]]:
        return [self.top_words_for_topic(topic, num_words) for topic in range(self.num_topics)]

    def topic_mixture(self, document_index) -> np.ndarray:
        if document_index < 0 or document_index >= len(self.documents):
            raise ValueError(
                f"document_index must be in [0, {len(self.documents)}), got {document_index}"
            )
        self._check_trained()
        return WeightedSampler.from_weights(
            self.document_topic_counts[document_index] + self.alpha
        ).probabilities

    def inference(self, words, num_iterations) -> np.ndarray:
        """
        Topic mixture of an unseen document, global counts held fixed

        Words outside the training vocabulary are ignored.
        """
        if num_iterations < 1:
            raise ValueError(f"num_iterations must be >= 1, got {num_iterations}")
        self._check_trained()
        word_ids = [self.vocabulary.index_of(word) for word in words]
        word_ids = np.array([w for w in word_ids if w != -1], dtype=np.int64)

        local_counts = np.zeros(self.num_topics, dtype=np.int64)
        topics = self.rng.integers(self.num_topics, size=len(word_ids))
        np.add.at(local_counts, topics, 1)

        for _ in range(num_iterations):
            for position, word_id in enumerate(word_ids):
                local_counts[topics[position]] -= 1
                weights = self._topic_weights(word_id, local_counts)
                topics[position] = WeightedSampler.from_weights(weights, rng=self.rng).sample()
                local_counts[topics[position]] += 1

        return WeightedSampler.from_weights(local_counts + self.alpha).probabilities
