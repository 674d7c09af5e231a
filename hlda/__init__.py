"""Hierarchical LDA (nested Chinese Restaurant Process) and flat LDA topic models."""

from .config import ConfigError, HLDAConfig, LDAConfig, RunConfig, load_config
from .lda import LDAModel
from .model import HierarchicalLDAModel

__all__ = [
    "ConfigError",
    "HLDAConfig",
    "HierarchicalLDAModel",
    "LDAConfig",
    "LDAModel",
    "RunConfig",
    "load_config",
]
