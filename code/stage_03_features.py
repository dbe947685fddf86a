"""
===============================================================================
FILE: stage_03_features.py
PROJECT: Moral Judgment Text Analysis
===============================================================================
PURPOSE:
    Build the wide feature table used for modeling. This is Stage 3 of the
    analysis pipeline.

DESCRIPTION:
    1. Load the document table from Stage 1
    2. Tokenize and compute surface statistics + lexical diversity (Stage 2)
    3. Compute readability indices (textstat)
    4. Annotate every document with the spaCy model:
       - part-of-speech tags      -> pos_<TAG>
       - morphological features   -> morph_<Feature>_<Value>
       - dependency relations     -> dep_<rel>
       Counts are pivoted to one column per tag observed anywhere in the
       corpus; tags absent from a document count as 0.
    5. Merge precomputed sentence embeddings by row order -> emb_<i>
    6. Merge precomputed word-count category scores by row order -> liwc_<cat>
    7. Score the Moral Foundations Dictionary -> mfd_<cat>
    8. Save the feature table

    Every merge keeps one row per document; a block with a different row
    count is an error.

INPUT FILES:
    - data/02_cleaned/documents.csv
    - data/01_raw/embeddings.csv
    - data/01_raw/liwc_scores.csv
    - data/01_raw/mfd2.0.dic
    - spaCy model (en_core_web_sm or a path on disk)

OUTPUT FILES:
    - data/03_features/features.csv

DEPENDENCIES:
    - spacy, textstat
    - numpy, pandas
    - tqdm

USAGE:
    python code/stage_03_features.py
===============================================================================
"""

import re
from collections import Counter
from pathlib import Path

import numpy as np
import pandas as pd
import spacy
import textstat
from tqdm import tqdm

from config import (
    DOCUMENTS_FILE, FEATURE_TABLE, FEATURES_DIR, TEXT_COLUMN,
    EMBEDDINGS_FILE, LIWC_SCORES, MFD_DICTIONARY, SPACY_MODEL,
    ANNOTATION_BATCH_SIZE, save_csv
)
from helper_dictionary import load_dic_lexicon, score_dictionary
from stage_01_clean import load_documents
from stage_02_tokenize import tokenize_text, text_stats_block, lexdiv_block

ANNOTATION_FEATURES = ("pos", "morph", "dep")
MISSING_TAG = "none"

# any letter, accented or not
LETTER_RE = re.compile(r"[^\W\d_]")
UNSAFE_RE = re.compile(r"\W+")

READABILITY_MEASURES = {
    "flesch_reading_ease": textstat.flesch_reading_ease,
    "flesch_kincaid_grade": textstat.flesch_kincaid_grade,
    "gunning_fog": textstat.gunning_fog,
    "smog_index": textstat.smog_index,
    "ari": textstat.automated_readability_index,
    "coleman_liau": textstat.coleman_liau_index,
    "dale_chall": textstat.dale_chall_readability_score,
    "linsear_write": textstat.linsear_write_formula,
}


# =========================================
# ============== READABILITY ==============
# =========================================
def readability_scores(text):
    """Readability indices for one document; NaN when it has no words."""
    if not isinstance(text, str) or not LETTER_RE.search(text):
        return {name: float("nan") for name in READABILITY_MEASURES}
    return {name: float(func(text)) for name, func in READABILITY_MEASURES.items()}


def readability_block(text_series):
    rows = [readability_scores(text)
            for text in tqdm(text_series, total=len(text_series), desc="Readability")]
    return pd.DataFrame(rows, columns=list(READABILITY_MEASURES)).add_prefix("read_")


# =========================================
# ============== ANNOTATION ===============
# =========================================
def load_annotator(model=SPACY_MODEL):
    """
    Load the spaCy tagging/parsing model.

    Args:
        model: Installed package name or path to a model directory

    Raises:
        FileNotFoundError: If the model can't be found
    """
    print(f"Loading spaCy model {model}...")
    try:
        return spacy.load(model, disable=["ner"])
    except OSError as e:
        raise FileNotFoundError(
            f"spaCy model '{model}' not found. Install it with "
            f"`python -m spacy download en_core_web_sm` or set SPACY_MODEL "
            f"in config.py to a model directory."
        ) from e


def _token_tags(token):
    pos = token.pos_ or MISSING_TAG
    dep = token.dep_ or MISSING_TAG
    morph = [f"{k}={v}" for k, vals in token.morph.to_dict().items()
             for v in vals.split(",")]
    return pos, morph, dep


def annotate_documents(text_series, nlp, batch_size=ANNOTATION_BATCH_SIZE):
    """
    Count POS tags, morphological features and dependency relations.

    Whitespace tokens are skipped. A token with an empty tag is counted
    under MISSING_TAG, so per document the pos_ and dep_ counts each sum
    to the number of annotated tokens.

    Returns:
        Long DataFrame with columns doc_id, feature, tag, count
    """
    texts = ["" if not isinstance(t, str) else t for t in text_series]

    rows = []
    for doc_id, doc in enumerate(tqdm(
        nlp.pipe(texts, batch_size=batch_size),
        total=len(texts),
        desc="Annotating"
    )):
        counts = {feature: Counter() for feature in ANNOTATION_FEATURES}
        for token in doc:
            if token.is_space:
                continue
            pos, morph, dep = _token_tags(token)
            counts["pos"][pos] += 1
            counts["dep"][dep] += 1
            counts["morph"].update(morph)

        for feature, counter in counts.items():
            for tag, n in counter.items():
                rows.append({"doc_id": doc_id, "feature": feature,
                             "tag": tag, "count": n})

    return pd.DataFrame(rows, columns=["doc_id", "feature", "tag", "count"])


def pivot_tag_counts(long_df, n_docs):
    """
    Pivot long tag counts into one integer column per (feature, tag).

    Columns are sorted; documents without any tag get an all-zero row.
    """
    index = pd.RangeIndex(n_docs)
    if long_df.empty:
        return pd.DataFrame(index=index)

    long_df = long_df.assign(
        column=long_df["feature"] + "_" + long_df["tag"].map(
            lambda t: UNSAFE_RE.sub("_", str(t)).strip("_") or MISSING_TAG)
    )
    wide = long_df.pivot_table(
        index="doc_id", columns="column", values="count",
        aggfunc="sum", fill_value=0
    )
    wide = wide.reindex(index=index, fill_value=0).fillna(0).astype(int)
    wide = wide[sorted(wide.columns)]
    wide.columns.name = None
    return wide


# =========================================
# ======== PRECOMPUTED ARTIFACTS ==========
# =========================================
def load_precomputed_table(path, prefix, numbered=False):
    """
    Load a precomputed per-document table (.csv or .npy), numeric columns only.

    Args:
        path: Artifact path; rows must follow documents.csv order
        prefix: Column prefix for the block
        numbered: Rename columns to <prefix>0..<prefix>{d-1}

    Raises:
        FileNotFoundError: If the artifact doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Precomputed feature file not found at {path}\n"
            f"This artifact is produced outside the pipeline and must be "
            f"placed in data/01_raw/."
        )

    if path.suffix == ".npy":
        table = pd.DataFrame(np.load(path))
    else:
        table = pd.read_csv(path).select_dtypes(include="number")

    if numbered:
        table.columns = [f"{prefix}{i}" for i in range(table.shape[1])]
    else:
        table.columns = [prefix + UNSAFE_RE.sub("_", str(c)).strip("_")
                         for c in table.columns]
    print(f"  Loaded {path.name}: {table.shape[0]:,} rows × {table.shape[1]:,} columns")
    return table.reset_index(drop=True)


def load_embeddings(path=EMBEDDINGS_FILE):
    return load_precomputed_table(path, "emb_", numbered=True)


def load_liwc_scores(path=LIWC_SCORES):
    return load_precomputed_table(path, "liwc_")


# =========================================
# =============== MERGING =================
# =========================================
def merge_block(table, block, name):
    """
    Append a feature block by row order.

    Raises:
        ValueError: On a row count mismatch or a duplicated column name
    """
    if len(block) != len(table):
        raise ValueError(
            f"Feature block '{name}' has {len(block):,} rows, "
            f"expected {len(table):,} (one per document)"
        )
    overlap = set(table.columns) & set(block.columns)
    if overlap:
        raise ValueError(f"Feature block '{name}' repeats columns: {sorted(overlap)[:5]}")

    merged = pd.concat([table.reset_index(drop=True),
                        block.reset_index(drop=True)], axis=1)
    print(f"  + {name}: {block.shape[1]:,} columns")
    return merged


def build_feature_table(documents, nlp, embeddings=None, liwc=None,
                        mfd_lexicon=None, liwc_lexicon=None,
                        batch_size=ANNOTATION_BATCH_SIZE):
    """
    Compute every feature block and merge it onto the document table.

    Args:
        documents: DataFrame with the text column
        nlp: spaCy pipeline used for POS / morphology / dependency tags
        embeddings: Precomputed embedding block (one row per document)
        liwc: Precomputed word-count category block
        mfd_lexicon: Moral Foundations lexicon (load_dic_lexicon output)
        liwc_lexicon: Category lexicon scored here when no precomputed
            liwc block is given

    Returns:
        DataFrame with the original columns plus all feature columns
    """
    if TEXT_COLUMN not in documents.columns:
        raise ValueError(f"Text column '{TEXT_COLUMN}' not found. "
                         f"Columns present: {documents.columns.tolist()}")

    # Row order is the document key for every block below
    table = documents.reset_index(drop=True).copy()
    texts = table[TEXT_COLUMN].fillna("").astype(str)
    n_docs = len(table)

    # Token-level blocks share one tokenization pass
    token_lists = tokenize_text(texts)
    table = merge_block(table, text_stats_block(texts, token_lists), "text_stats")
    table = merge_block(table, lexdiv_block(token_lists), "lexdiv")
    table = merge_block(table, readability_block(texts), "readability")

    # One block per annotation layer, zero-filled for absent tags
    tags = pivot_tag_counts(annotate_documents(texts, nlp, batch_size), n_docs)
    for feature in ANNOTATION_FEATURES:
        cols = [c for c in tags.columns if c.startswith(feature + "_")]
        table = merge_block(table, tags[cols], feature)

    # Precomputed artifacts must already be in document order
    if embeddings is not None:
        table = merge_block(table, embeddings, "embeddings")

    # Precomputed LIWC scores take priority over scoring a lexicon here
    if liwc is not None:
        table = merge_block(table, liwc, "liwc")
    elif liwc_lexicon is not None:
        table = merge_block(table, score_dictionary(token_lists, liwc_lexicon, "liwc_"), "liwc")

    # Moral foundations percentages
    if mfd_lexicon is not None:
        table = merge_block(table, score_dictionary(token_lists, mfd_lexicon, "mfd_"), "mfd")

    return table


def main():
    """
    Execute the complete feature generation pipeline.
    """
    print("\n" + "="*80)
    print("STAGE 3: FEATURE GENERATION")
    print("="*80 + "\n")

    FEATURES_DIR.mkdir(parents=True, exist_ok=True)

    print("Step 1: Loading inputs")
    print("-" * 40)
    documents = load_documents(DOCUMENTS_FILE)
    print(f"  Loaded {len(documents):,} documents")
    embeddings = load_embeddings(EMBEDDINGS_FILE)
    liwc = load_liwc_scores(LIWC_SCORES)
    mfd_lexicon = load_dic_lexicon(MFD_DICTIONARY)
    print(f"  Loaded MFD with {len(mfd_lexicon['categories'])} categories")
    nlp = load_annotator(SPACY_MODEL)

    print("\nStep 2: Computing feature blocks")
    print("-" * 40)
    features = build_feature_table(documents, nlp, embeddings=embeddings,
                                   liwc=liwc, mfd_lexicon=mfd_lexicon)

    print("\nStep 3: Saving feature table")
    print("-" * 40)
    save_csv(features, FEATURE_TABLE)

    print("\n" + "="*80)
    print("SUMMARY")
    print("="*80)
    n_new = features.shape[1] - documents.shape[1]
    print(f"\n  Documents: {len(features):,}")
    print(f"  Feature columns: {n_new:,}")
    n_missing = features.isna().any(axis=0).sum()
    print(f"  Columns with missing values (imputed at modeling): {n_missing:,}")

    return features


if __name__ == "__main__":
    main()
