"""Categorical sampling from weights or raw log-likelihoods."""

import logging

import numpy as np

LOGGER = logging.getLogger(__name__)


class WeightedSampler:
    def __init__(self, size, rng=None):
        """
        Draws an index with probability proportional to its weight

        Args:
            size: Maximum number of weights the sampler holds
            rng: numpy Generator used for draws (a fresh one if omitted)
        """
        if size < 1:
            raise ValueError(f"size must be >= 1, got {size}")
        self.size = size
        self.rng = rng if rng is not None else np.random.default_rng()
        self.weights = np.zeros(size, dtype=float)
        self.count = 0

    def add(self, weight):
        """Append a weight; weights past the fixed size are ignored"""
        if weight < 0:
            raise ValueError(f"weight must be >= 0, got {weight}")
        if self.count >= self.size:
            LOGGER.debug("Sampler full (%d), dropping weight %s", self.size, weight)
            return
        self.weights[self.count] = weight
        self.count += 1

    def clear(self):
        self.weights[:] = 0.0
        self.count = 0

    @property
    def total(self):
        return float(np.sum(self.weights[:self.count]))

    @property
    def probabilities(self):
        if self.count == 0:
            return np.zeros(0)
        total = self.total
        if total == 0.0:
            return np.full(self.count, 1.0 / self.count)
        return self.weights[:self.count] / total

    def sample(self):
        if self.count == 0:
            raise ValueError("cannot sample from an empty sampler")
        total = self.total
        if total == 0.0:
            # No evidence for any slot
            return int(self.rng.integers(self.count))
        cumulative = np.cumsum(self.weights[:self.count])
        index = int(np.searchsorted(cumulative, self.rng.random() * total, side="right"))
        return min(index, self.count - 1)

    @classmethod
    def from_weights(cls, weights, rng=None):
        weights = np.asarray(weights, dtype=float)
        if np.any(weights < 0):
            raise ValueError("weights must be >= 0")
        sampler = cls(max(len(weights), 1), rng=rng)
        sampler.weights[:len(weights)] = weights
        sampler.count = len(weights)
        return sampler

    @classmethod
    def normalize_log_likelihoods(cls, log_likelihoods, rng=None):
        """
        Build a sampler from log-likelihoods using the log-sum-exp shift

        Args:
            log_likelihoods: Sequence of log-likelihoods, any magnitude
            rng: numpy Generator used for draws

        Returns:
            WeightedSampler whose probabilities are the normalized likelihoods
        """
        values = np.asarray(log_likelihoods, dtype=float)
        if values.size == 0:
            raise ValueError("log_likelihoods must not be empty")
        finite = values[~np.isnan(values)]
        highest = finite.max() if finite.size else -np.inf
        if highest == np.inf:
            weights = (values == np.inf).astype(float)
        elif highest == -np.inf:
            weights = np.zeros(values.size)
        else:
            weights = np.exp(values - highest)
            weights[np.isnan(weights)] = 0.0
        weights = weights / np.sum(weights) if np.sum(weights) > 0 else weights
        return cls.from_weights(weights, rng=rng)
