"""Hyperparameters and run settings for the topic models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
import logging
import tomllib

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3
DEFAULT_GAMMA = 1.0
DEFAULT_ETA = (2.0, 1.0, 0.5)
DEFAULT_M = 0.5
DEFAULT_PI = 100.0

DEFAULT_ALPHA = 0.5
DEFAULT_BETA = 0.1

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class ConfigError(ValueError):
    """Raised when a model configuration is invalid."""


def _default_eta(max_depth: int) -> Tuple[float, ...]:
    eta = list(DEFAULT_ETA[:max_depth])
    while len(eta) < max_depth:
        eta.append(DEFAULT_ETA[-1])
    return tuple(eta)


@dataclass(frozen=True)
class HLDAConfig:
    """
    Hyperparameters of the nested CRP topic model

    Args:
        max_depth: Number of levels in every document path (root included)
        gamma: nCRP concentration (higher = more new branches)
        eta: Topic-word smoothing, one value per level
        m: Stick-breaking mean (share of words expected at general levels)
        pi: Stick-breaking concentration
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    gamma: float = DEFAULT_GAMMA
    eta: Optional[Tuple[float, ...]] = None
    m: float = DEFAULT_M
    pi: float = DEFAULT_PI

    def __post_init__(self):
        if self.max_depth < 2:
            raise ConfigError(f"max_depth must be >= 2, got {self.max_depth}")
        if self.gamma < 0:
            raise ConfigError(f"gamma must be >= 0, got {self.gamma}")
        eta = _default_eta(self.max_depth) if self.eta is None else tuple(float(e) for e in self.eta)
        if len(eta) < self.max_depth:
            raise ConfigError(
                f"eta needs one value per level ({self.max_depth}), got {len(eta)}"
            )
        if any(e <= 0 for e in eta):
            raise ConfigError(f"eta values must be > 0, got {list(eta)}")
        if self.m <= 0:
            raise ConfigError(f"m must be > 0, got {self.m}")
        if self.pi <= 0:
            raise ConfigError(f"pi must be > 0, got {self.pi}")
        object.__setattr__(self, "eta", eta)

    def eta_at(self, level: int) -> float:
        if level < 0 or level >= self.max_depth:
            raise ValueError(f"level must be in [0, {self.max_depth}), got {level}")
        return self.eta[level]


@dataclass(frozen=True)
class LDAConfig:
    """Settings of the flat LDA sampler. Zero alpha/beta select the defaults."""

    num_topics: int
    alpha: float = 0.0
    beta: float = 0.0

    def __post_init__(self):
        if self.num_topics < 1:
            raise ConfigError(f"num_topics must be > 0, got {self.num_topics}")
        if self.alpha < 0:
            raise ConfigError(f"alpha must be >= 0, got {self.alpha}")
        if self.beta < 0:
            raise ConfigError(f"beta must be >= 0, got {self.beta}")
        if self.alpha == 0.0:
            object.__setattr__(self, "alpha", DEFAULT_ALPHA)
        if self.beta == 0.0:
            object.__setattr__(self, "beta", DEFAULT_BETA)


@dataclass(frozen=True)
class RunConfig:
    """Everything the command line needs to train and report one model."""

    model: str = "hlda"
    hlda: HLDAConfig = field(default_factory=HLDAConfig)
    lda: Optional[LDAConfig] = None
    iterations: int = 200
    seed: Optional[int] = 42
    top_words: int = 10
    min_documents: int = 1


_HLDA_KEYS = {"max_depth", "gamma", "eta", "m", "pi"}
_LDA_KEYS = {"num_topics", "alpha", "beta"}
_TRAINING_KEYS = {"model", "iterations", "seed", "top_words", "min_documents"}


def _load_toml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file '{path}' was not found.") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in '{path}': {exc}") from exc


def _table(data: Dict[str, Any], name: str, allowed: set) -> Dict[str, Any]:
    table = data.get(name, {})
    if not isinstance(table, dict):
        raise ConfigError(f"[{name}] must be a table.")
    unknown = sorted(set(table) - allowed)
    if unknown:
        raise ConfigError(f"Unknown key(s) in [{name}]: {', '.join(unknown)}")
    return table


def load_config(path: str) -> RunConfig:
    """Load a TOML run configuration with [hlda], [lda] and [training] tables."""

    data = _load_toml(path)
    unknown = sorted(set(data) - {"hlda", "lda", "training"})
    if unknown:
        raise ConfigError(f"Unknown table(s) in '{path}': {', '.join(unknown)}")

    hlda_table = _table(data, "hlda", _HLDA_KEYS)
    lda_table = _table(data, "lda", _LDA_KEYS)
    training = _table(data, "training", _TRAINING_KEYS)

    model = training.get("model", "hlda")
    if model not in ("hlda", "lda"):
        raise ConfigError(f"Unknown model '{model}' (expected 'hlda' or 'lda')")

    if lda_table and "num_topics" not in lda_table:
        raise ConfigError("[lda] requires num_topics")

    hlda_config = HLDAConfig(**hlda_table)
    lda_config = LDAConfig(**lda_table) if lda_table else None
    if model == "lda" and lda_config is None:
        raise ConfigError("model = 'lda' requires an [lda] table with num_topics")

    LOGGER.debug("Loaded configuration from %s", path)
    return RunConfig(
        model=model,
        hlda=hlda_config,
        lda=lda_config,
        iterations=int(training.get("iterations", 200)),
        seed=training.get("seed", 42),
        top_words=int(training.get("top_words", 10)),
        min_documents=int(training.get("min_documents", 1)),
    )
