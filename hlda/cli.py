#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
hlda: fit a hierarchical (nCRP) or flat LDA topic model to a corpus

Inputs:
  - TXT (one document per line) / TSV / JSON / JSONL
  - For TSV: --text-col (required) and --id-col
  - For JSON/JSONL: --json-text-field (required) and --json-id-field

Outputs (with --out-dir):
  - topics.tsv      # topic  rank  word
  - doc_paths.tsv   # hlda: id  level_0 .. level_{L-1}   lda: id  topic  weight
  - metrics.json    # preprocessing stats + model settings
"""

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .config import LOG_FORMAT, ConfigError, LDAConfig, RunConfig, load_config
from .corpus import build_corpus, infer_format, load_json, load_jsonl, load_tsv, load_txt
from .lda import LDAModel
from .model import HierarchicalLDAModel

LOGGER = logging.getLogger(__name__)


def _df_value(raw: str):
    """CountVectorizer reads ints as document counts and floats as proportions"""
    value = float(raw)
    return int(value) if value.is_integer() and "." not in raw else value


def _eta_value(raw: str):
    return tuple(float(x) for x in raw.split(",") if x.strip())


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Hierarchical LDA (nested CRP) and flat LDA topic models")
    ap.add_argument("--input", required=True, help="Path to TXT / TSV / JSON / JSONL")
    ap.add_argument("--format", choices=["txt", "tsv", "json", "jsonl"], help="If omitted, inferred from file extension")
    ap.add_argument("--id-col", help="TSV id column (optional)")
    ap.add_argument("--text-col", help="TSV text column")
    ap.add_argument("--json-id-field", help="JSON/JSONL id field (optional)")
    ap.add_argument("--json-text-field", help="JSON/JSONL text field")
    ap.add_argument("--config", help="TOML file with [hlda], [lda] and [training] tables")
    ap.add_argument("--model", choices=["hlda", "lda"], help="Model to fit (default hlda)")
    ap.add_argument("--iters", type=int, help="Gibbs sweeps")
    ap.add_argument("--seed", type=int)
    ap.add_argument("--topk", type=int, help="Top words per topic")
    ap.add_argument("--min-docs", type=int, help="Only report topics visited by this many documents")
    ap.add_argument("--max-depth", type=int)
    ap.add_argument("--gamma", type=float)
    ap.add_argument("--eta", type=_eta_value, help="Comma-separated smoothing per level, e.g. '2.0,1.0,0.5'")
    ap.add_argument("--m", type=float, help="Stick-breaking mean")
    ap.add_argument("--pi", type=float, help="Stick-breaking concentration")
    ap.add_argument("--num-topics", type=int, help="Number of topics for --model lda")
    ap.add_argument("--alpha", type=float)
    ap.add_argument("--beta", type=float)
    ap.add_argument("--min-tokens", type=int, default=3, help="Drop documents with fewer tokens")
    ap.add_argument("--min-df", type=_df_value, default=1)
    ap.add_argument("--max-df", type=_df_value, default=1.0)
    ap.add_argument("--out-dir", help="Output directory")
    ap.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap.parse_args(argv)


def resolve_run_config(args) -> RunConfig:
    """Settings from --config, overridden by any flag given on the command line"""
    base = load_config(args.config) if args.config else RunConfig()

    hlda_overrides = {
        key: value for key, value in (
            ("max_depth", args.max_depth), ("gamma", args.gamma), ("eta", args.eta),
            ("m", args.m), ("pi", args.pi),
        ) if value is not None
    }
    # A deeper tree without explicit eta falls back to the default per-level smoothing
    if "eta" not in hlda_overrides and hlda_overrides.get("max_depth", 0) > len(base.hlda.eta):
        hlda_overrides["eta"] = None
    hlda_config = dataclasses.replace(base.hlda, **hlda_overrides) if hlda_overrides else base.hlda

    lda_config = base.lda
    if args.num_topics is not None or args.alpha is not None or args.beta is not None:
        num_topics = args.num_topics if args.num_topics is not None else (lda_config.num_topics if lda_config else 10)
        lda_config = LDAConfig(
            num_topics=num_topics,
            alpha=args.alpha if args.alpha is not None else (lda_config.alpha if lda_config else 0.0),
            beta=args.beta if args.beta is not None else (lda_config.beta if lda_config else 0.0),
        )

    model = args.model or base.model
    if model == "lda" and lda_config is None:
        lda_config = LDAConfig(num_topics=10)

    return RunConfig(
        model=model,
        hlda=hlda_config,
        lda=lda_config,
        iterations=args.iters if args.iters is not None else base.iterations,
        seed=args.seed if args.seed is not None else base.seed,
        top_words=args.topk if args.topk is not None else base.top_words,
        min_documents=args.min_docs if args.min_docs is not None else base.min_documents,
    )


def load_texts(args):
    in_path = Path(args.input)
    fmt = args.format or infer_format(in_path)
    if fmt not in {"txt", "tsv", "json", "jsonl"}:
        raise SystemExit("Could not infer format. Use --format txt|tsv|json|jsonl.")
    try:
        if fmt == "txt":
            return load_txt(in_path)
        if fmt == "tsv":
            return load_tsv(in_path, args.id_col, args.text_col)
        if fmt == "jsonl":
            return load_jsonl(in_path, args.json_text_field, args.json_id_field)
        return load_json(in_path, args.json_text_field, args.json_id_field)
    except FileNotFoundError as exc:
        raise SystemExit(f"Input file not found: {in_path}") from exc
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def save_outputs(out_dir: Path, ids: List[str], model, run: RunConfig, stats: Dict[str, Any]) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)

    topics_rows = []
    if run.model == "hlda":
        topics = model.topics_summary(run.top_words, run.min_documents)
    else:
        topics = dict(enumerate(model.get_topics(run.top_words)))
    for tid, words in topics.items():
        for r, w in enumerate(words, start=1):
            topics_rows.append((tid, r, w))
    pd.DataFrame(topics_rows, columns=["topic", "rank", "word"]).to_csv(
        out_dir / "topics.tsv", sep="\t", index=False
    )

    if run.model == "hlda":
        levels = [f"level_{lvl}" for lvl in range(run.hlda.max_depth)]
        rows = [[rid] + model.document_path(i) for i, rid in enumerate(ids)]
        df = pd.DataFrame(rows, columns=["id"] + levels)
    else:
        rows = []
        for i, rid in enumerate(ids):
            mixture = model.topic_mixture(i)
            top = int(np.argmax(mixture))
            rows.append((rid, top, float(mixture[top])))
        df = pd.DataFrame(rows, columns=["id", "topic", "weight"]).sort_values(by=["topic"], kind="stable")
    df.to_csv(out_dir / "doc_paths.tsv", sep="\t", index=False)

    settings = {
        "model": run.model,
        "iterations": run.iterations,
        "seed": run.seed,
        "hlda": dataclasses.asdict(run.hlda) if run.model == "hlda" else None,
        "lda": dataclasses.asdict(run.lda) if run.model == "lda" else None,
    }
    metrics = {"preprocess_stats": stats, "settings": settings}
    if run.model == "hlda":
        metrics["hierarchy"] = {str(k): v for k, v in model.get_hierarchy().items()}
    metrics["log_likelihood"] = model.log_likelihood()
    with (out_dir / "metrics.json").open("w", encoding="utf-8") as f:
        json.dump(metrics, f, ensure_ascii=False, indent=2)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        run = resolve_run_config(args)
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    ids, texts = load_texts(args)
    if not texts:
        raise SystemExit("No texts loaded.")

    try:
        ids_kept, toks_kept, stats = build_corpus(
            ids, texts, min_tokens=args.min_tokens, min_df=args.min_df, max_df=args.max_df
        )
    except ValueError as exc:
        raise SystemExit(f"Could not build corpus: {exc}") from exc
    if not ids_kept:
        raise SystemExit(f"All documents were dropped (<{args.min_tokens} tokens).")

    print(f"Docs: {len(ids_kept)}, Vocab: {stats['vocab_after']}, "
          f"Tokens: {sum(len(t) for t in toks_kept)}")

    if run.model == "hlda":
        model = HierarchicalLDAModel(run.hlda, seed=run.seed)
        model.fit(toks_kept, run.iterations)
        print("\nTopic tree:")
        print(model.pretty_print_tree(run.top_words), end="")
        print("\nTopics:")
        for tid, words in model.topics_summary(run.top_words, run.min_documents).items():
            print(f"Topic {tid:3d}:", words)
    else:
        model = LDAModel(run.lda, seed=run.seed)
        model.fit(toks_kept, run.iterations)
        print("\nTopics:")
        for tid, words in enumerate(model.get_topics(run.top_words)):
            print(f"Topic {tid:3d}:", words)

    if args.out_dir:
        out_dir = Path(args.out_dir)
        save_outputs(out_dir, ids_kept, model, run, stats)
        print(f"Done. Outputs written to: {out_dir}")


if __name__ == "__main__":
    main()
