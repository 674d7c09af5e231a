"""Corpus loading and tokenization for the command line."""

import csv
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from sklearn.feature_extraction.text import CountVectorizer

LOGGER = logging.getLogger(__name__)

# --------------------------- Tokenization ---------------------------

_WORD_RE = re.compile(r"[A-Za-z0-9']+")
_STOP = {
    "the","a","an","and","or","but","if","then","else","when","while","of","to","for","in","on","at","by","from",
    "with","as","is","are","was","were","be","been","being","it","its","this","that","these","those","we","you",
    "they","he","she","him","her","them","our","your","their","i","me","my","mine","ours","yours","theirs",
    "so","not","no","very","can","could","should","would","will","just","than","too","also","there","here",
    "about","into","over","under","up","down","out"
}

def tokenize(text: str) -> List[str]:
    toks = [t.lower() for t in _WORD_RE.findall(str(text))]
    return [t for t in toks if t not in _STOP and len(t) > 1]

# --------------------------- IO helpers ---------------------------

def infer_format(path: Path) -> str:
    ext = path.suffix.lower()
    if ext in (".tsv", ".tab"):
        return "tsv"
    if ext in (".jsonl", ".ndjson"):
        return "jsonl"
    if ext == ".json":
        return "json"
    if ext in (".txt", ".text"):
        return "txt"
    return ""

def _pick(name: str, wanted: Optional[str], options: List[str]) -> str:
    if wanted is None or wanted not in options:
        raise ValueError(f"{name} '{wanted}' not found; available: {', '.join(options)}")
    return wanted

def load_txt(path: Path) -> Tuple[List[str], List[str]]:
    """One document per non-empty line, ids are line numbers"""
    ids, texts = [], []
    with path.open("r", encoding="utf-8") as f:
        for i, line in enumerate(f):
            line = line.strip()
            if line:
                ids.append(str(i))
                texts.append(line)
    return ids, texts

def load_tsv(path: Path, id_col: Optional[str], text_col: Optional[str]) -> Tuple[List[str], List[str]]:
    df = pd.read_csv(
        path, sep="\t", dtype=str, keep_default_na=False,
        engine="python", quoting=csv.QUOTE_MINIMAL, on_bad_lines="warn"
    )
    cols = list(df.columns)
    text_col = _pick("TSV text column", text_col, cols)
    if id_col is None:
        ids = [str(i) for i in range(len(df))]
    else:
        ids = df[_pick("TSV id column", id_col, cols)].astype(str).tolist()
    texts = df[text_col].astype(str).tolist()
    return ids, texts

def _records_to_texts(records: List[Any], text_field: Optional[str], id_field: Optional[str]) -> Tuple[List[str], List[str]]:
    keys = list(records[0].keys()) if (records and isinstance(records[0], dict)) else []
    text_field = _pick("JSON text field", text_field, keys)
    if id_field is not None:
        _pick("JSON id field", id_field, keys)
    ids, texts = [], []
    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            continue
        txt = str(rec.get(text_field, "")).strip()
        rid = str(rec.get(id_field, i)) if id_field else str(i)
        ids.append(rid)
        texts.append(txt)
    return ids, texts

def load_jsonl(path: Path, json_text_field: Optional[str], json_id_field: Optional[str]) -> Tuple[List[str], List[str]]:
    records = []
    with path.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                LOGGER.warning("Skipping malformed JSONL line %d in %s: %s", lineno, path, exc)
    return _records_to_texts(records, json_text_field, json_id_field)

def load_json(path: Path, json_text_field: Optional[str], json_id_field: Optional[str]) -> Tuple[List[str], List[str]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "data" in data and isinstance(data["data"], list):
        data = data["data"]
    if not isinstance(data, list):
        data = [data]
    return _records_to_texts(data, json_text_field, json_id_field)

# --------------------------- Corpus ---------------------------

def build_corpus(
    ids: List[str],
    raw_texts: List[str],
    min_tokens: int = 3,
    min_df: float = 1,
    max_df: float = 1.0,
) -> Tuple[List[str], List[List[str]], Dict[str, Any]]:
    """
    Tokenize, prune the vocabulary by document frequency and drop short documents

    Args:
        ids: Document ids, parallel to raw_texts
        raw_texts: Raw document strings
        min_tokens: Documents with fewer surviving tokens are dropped
        min_df: Minimum document frequency (count, or proportion if float < 1)
        max_df: Maximum document frequency (proportion if float, count if int)

    Returns:
        (kept ids, kept token lists, preprocessing stats)
    """
    tokenized = [tokenize(t) for t in raw_texts]
    before = len(tokenized)
    vocab_before = len({t for toks in tokenized for t in toks})

    vectorizer = CountVectorizer(analyzer=lambda toks: toks, min_df=min_df, max_df=max_df)
    vectorizer.fit(tokenized)
    kept_terms = set(vectorizer.vocabulary_)
    tokenized = [[t for t in toks if t in kept_terms] for toks in tokenized]

    keep_mask = [len(toks) >= min_tokens for toks in tokenized]
    ids_kept = [i for i, k in zip(ids, keep_mask) if k]
    toks_kept = [t for t, k in zip(tokenized, keep_mask) if k]
    stats = {
        "docs_before": before,
        "docs_after": len(ids_kept),
        "docs_dropped_short": before - len(ids_kept),
        "vocab_before": vocab_before,
        "vocab_after": len(kept_terms),
    }
    LOGGER.info("Corpus: %d of %d documents kept, vocabulary %d -> %d",
                len(ids_kept), before, vocab_before, len(kept_terms))
    return ids_kept, toks_kept, stats
