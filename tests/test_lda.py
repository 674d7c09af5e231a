import numpy as np
import pytest

from hlda.config import ConfigError, LDAConfig
from hlda.lda import LDAModel

CORPUS = [
    "apple banana fruit juice".split(),
    "engine wheel car road".split(),
    "apple fruit car".split(),
]


def _bars_corpus(rng, n_docs=200, doc_length=40):
    """Documents drawn from two of the ten rows/columns of a 5x5 word grid"""
    rows = [[f"w{r}{c}" for c in range(5)] for r in range(5)]
    cols = [[f"w{r}{c}" for r in range(5)] for c in range(5)]
    bars = rows + cols
    docs = []
    for _ in range(n_docs):
        chosen = rng.choice(len(bars), size=2, replace=False)
        docs.append([
            bars[chosen[rng.integers(2)]][rng.integers(5)] for _ in range(doc_length)
        ])
    return bars, docs


def test_config_validation():
    with pytest.raises(ConfigError):
        LDAConfig(num_topics=0)
    with pytest.raises(ConfigError):
        LDAConfig(num_topics=2, alpha=-1.0)
    with pytest.raises(ConfigError):
        LDAConfig(num_topics=2, beta=-1.0)


def test_zero_alpha_and_beta_pick_defaults():
    config = LDAConfig(num_topics=2)
    assert config.alpha == 0.5
    assert config.beta == 0.1
    assert LDAConfig(num_topics=2, alpha=0.3, beta=0.2).alpha == 0.3


def test_initialize_counts_every_token():
    model = LDAModel(LDAConfig(num_topics=3), seed=0)
    model.ingest(CORPUS)
    model.initialize()
    assert model.topic_totals.sum() == sum(len(doc) for doc in CORPUS)
    assert model.word_topic_counts.sum() == model.topic_totals.sum()
    for doc_idx, doc in enumerate(CORPUS):
        assert model.document_topic_counts[doc_idx].sum() == len(doc)


def test_sweeps_preserve_counts():
    model = LDAModel(LDAConfig(num_topics=2), seed=1)
    model.fit(CORPUS, 5, log_every=0)
    assert model.topic_totals.sum() == sum(len(doc) for doc in CORPUS)
    assert np.array_equal(model.word_topic_counts.sum(axis=0), model.topic_totals)
    for doc_idx, topics in enumerate(model.topic_assignments):
        assert np.array_equal(np.bincount(topics, minlength=2), model.document_topic_counts[doc_idx])


def test_top_words_errors():
    model = LDAModel(LDAConfig(num_topics=2), seed=0).fit(CORPUS, 1, log_every=0)
    with pytest.raises(ValueError):
        model.top_words_for_topic(2, 3)
    with pytest.raises(ValueError):
        model.top_words_for_topic(-1, 3)
    with pytest.raises(ValueError):
        model.top_words_for_topic(0, 0)
    assert len(model.get_topics(3)) == 2
    assert all(len(words) == 3 for words in model.get_topics(3))


def test_topic_mixture():
    model = LDAModel(LDAConfig(num_topics=4), seed=0).fit(CORPUS, 3, log_every=0)
    mixture = model.topic_mixture(0)
    assert mixture.shape == (4,)
    assert mixture.sum() == pytest.approx(1.0)
    with pytest.raises(ValueError):
        model.topic_mixture(3)


def test_untrained_model_rejects_queries():
    model = LDAModel(LDAConfig(num_topics=2))
    model.ingest(CORPUS)
    with pytest.raises(ValueError):
        model.topic_mixture(0)
    with pytest.raises(ValueError):
        model.inference(["apple"], 3)


def test_inference_keeps_global_counts():
    model = LDAModel(LDAConfig(num_topics=2), seed=0).fit(CORPUS, 3, log_every=0)
    before = model.word_topic_counts.copy()
    mixture = model.inference(["apple", "car", "unknown"], 5)
    assert mixture.sum() == pytest.approx(1.0)
    assert np.array_equal(model.word_topic_counts, before)
    with pytest.raises(ValueError):
        model.inference(["apple"], 0)


@pytest.mark.slow
def test_recovers_bars():
    bars, docs = _bars_corpus(np.random.default_rng(0))
    model = LDAModel(LDAConfig(num_topics=10, alpha=0.1, beta=0.1), seed=7)
    model.fit(docs, 150, log_every=0)
    topics = [set(words) for words in model.get_topics(5)]
    for bar in bars:
        assert set(bar) in topics
