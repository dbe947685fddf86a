"""
===============================================================================
FILE: stage_02_tokenize.py
PROJECT: Moral Judgment Text Analysis
===============================================================================
PURPOSE:
    Tokenize the free-text responses and compute token-level statistics.
    This is Stage 2 of the analysis pipeline.

DESCRIPTION:
    1. Load the document table from Stage 1
    2. Tokenize with spaCy's rule-based English tokenizer:
       - Punctuation removal (if enabled in config)
       - Number removal (if enabled in config)
       - Symbol removal (if enabled in config)
       - Separator (whitespace) removal (if enabled in config)
       - Lowercasing (if enabled in config)
    3. Compute surface statistics per document:
       characters, sentences, words, type entropy, word-length summary
    4. Compute lexical diversity indices per document:
       TTR, Herdan C, Guiraud R, CTTR, Uber U, Summer S, Yule K, Maas,
       MATTR, MTLD

    Documents without any token keep their row: counts are 0 and every
    ratio-based score is NaN, to be imputed during modeling.

INPUT FILES:
    - data/02_cleaned/documents.csv

OUTPUT FILES:
    - data/02_cleaned/tokenized_documents.csv
      (for inspection only; Stage 3 recomputes these blocks in memory)

DEPENDENCIES:
    - spacy (blank English tokenizer, no model download needed)
    - numpy, pandas
    - tqdm
    - lexicalrichness (lexical diversity indices)

USAGE:
    python code/stage_02_tokenize.py
===============================================================================
"""

import math
import re
from collections import Counter

import numpy as np
import pandas as pd
import spacy
from lexicalrichness import LexicalRichness
from tqdm import tqdm

from config import (
    DOCUMENTS_FILE, TOKENIZED_DOCUMENTS, TEXT_COLUMN,
    REMOVE_PUNCT, REMOVE_NUMBERS, REMOVE_SYMBOLS, REMOVE_SEPARATORS,
    LOWERCASE, MATTR_WINDOW, MTLD_THRESHOLD, save_csv
)
from stage_01_clean import load_documents

# Rule-based tokenizer only; tagging happens in Stage 3
tokenizer_nlp = spacy.blank("en")

SENT_SPLIT_RE = re.compile(r"[.!?]+")
NUMBER_RE = re.compile(r"^[+\-]?\d[\d,.:/]*(st|nd|rd|th|%)?$", re.IGNORECASE)
ALNUM_RE = re.compile(r"\w", re.UNICODE)


def _keep_token(token, remove_punct, remove_numbers, remove_symbols,
                remove_separators):
    if remove_separators and token.is_space:
        return False
    if remove_punct and token.is_punct:
        return False
    if remove_numbers and NUMBER_RE.match(token.text):
        return False
    if remove_symbols and not token.is_punct and not token.is_space:
        if token.is_currency or not ALNUM_RE.search(token.text):
            return False
    return True


def tokenize_text(text_series,
                  remove_punct=REMOVE_PUNCT,
                  remove_numbers=REMOVE_NUMBERS,
                  remove_symbols=REMOVE_SYMBOLS,
                  remove_separators=REMOVE_SEPARATORS,
                  lowercase=LOWERCASE,
                  batch_size=500):
    """
    Split each document into word tokens.

    Example:
        "I'd pay $20, honestly!"
        -> ["i", "'d", "pay", "honestly"]

    Args:
        text_series: pandas Series or list of text documents (NaN allowed)
        remove_*: Token classes to drop
        lowercase: Lowercase the kept tokens
        batch_size: Number of texts to process simultaneously

    Returns:
        List of token lists, one per document, in input order
    """
    texts = ["" if not isinstance(t, str) else t for t in text_series]

    token_lists = []
    for doc in tqdm(
        tokenizer_nlp.pipe(texts, batch_size=batch_size),
        total=len(texts),
        desc="Tokenizing text"
    ):
        tokens = []
        for token in doc:
            if not _keep_token(token, remove_punct, remove_numbers,
                               remove_symbols, remove_separators):
                continue
            word = token.text.lower() if lowercase else token.text
            tokens.append(word)
        token_lists.append(tokens)

    return token_lists


def count_sentences(text):
    if not isinstance(text, str) or not text.strip():
        return 0
    return sum(1 for s in SENT_SPLIT_RE.split(text) if s.strip())


def type_entropy(tokens):
    """Shannon entropy (bits) of the type frequency distribution."""
    if not tokens:
        return float("nan")
    counts = np.array(list(Counter(tokens).values()), dtype=float)
    p = counts / counts.sum()
    return float(-(p * np.log2(p)).sum())


def text_statistics(text, tokens):
    """
    Surface statistics for one document.

    Returns:
        dict with n_chars, n_sentences, n_words, entropy and word-length
        mean / median / sd / min / max (NaN when there are no tokens)
    """
    text = text if isinstance(text, str) else ""
    lengths = np.array([len(t) for t in tokens], dtype=float)

    stats = {
        "n_chars": len(text),
        "n_sentences": count_sentences(text),
        "n_words": len(tokens),
        "entropy": type_entropy(tokens),
        "wl_mean": float("nan"),
        "wl_median": float("nan"),
        "wl_sd": float("nan"),
        "wl_min": float("nan"),
        "wl_max": float("nan"),
    }
    if len(lengths) > 0:
        stats["wl_mean"] = float(lengths.mean())
        stats["wl_median"] = float(np.median(lengths))
        stats["wl_min"] = float(lengths.min())
        stats["wl_max"] = float(lengths.max())
    if len(lengths) > 1:
        stats["wl_sd"] = float(lengths.std(ddof=1))
    return stats


# =========================================
# ======= LEXICAL DIVERSITY MEASURES ======
# =========================================
LEXDIV_MEASURES = ("TTR", "C", "R", "CTTR", "U", "S", "K", "Maas", "MATTR", "MTLD")


def lexical_diversity(tokens, mattr_window=MATTR_WINDOW,
                      mtld_threshold=MTLD_THRESHOLD):
    """
    Vocabulary richness indices for one token list, via lexicalrichness.

    N = tokens, V = types. Measures that are undefined for the document
    (no tokens, log(1) in a denominator, V == N for U) are NaN. Maas is
    reported as the square root of lexicalrichness' a² form.
    """
    nan = float("nan")
    if len(tokens) == 0:
        return {k: nan for k in LEXDIV_MEASURES}

    # tokens are already cleaned; skip the library's own preprocessing
    lex = LexicalRichness(list(tokens), preprocessor=None, tokenizer=None)
    N, V = lex.words, lex.terms

    return {
        "TTR": lex.ttr,
        "C": lex.Herdan if N > 1 else nan,
        "R": lex.rttr,
        "CTTR": lex.cttr,
        "U": lex.Dugast if V < N else nan,
        "S": lex.Summer if V > 1 else nan,
        "K": lex.yulek,
        "Maas": math.sqrt(lex.Maas) if N > 1 else nan,
        # window shrinks to the document for short texts
        "MATTR": lex.mattr(window_size=min(mattr_window, N)),
        "MTLD": lex.mtld(threshold=mtld_threshold),
    }


def text_stats_block(text_series, token_lists):
    """Surface statistics block, one row per document."""
    rows = [text_statistics(text, tokens)
            for text, tokens in zip(text_series, token_lists)]
    return pd.DataFrame(rows)


def lexdiv_block(token_lists, **kwargs):
    """Lexical diversity block with lexdiv_ prefixed columns."""
    rows = [lexical_diversity(tokens, **kwargs) for tokens in token_lists]
    return pd.DataFrame(rows).add_prefix("lexdiv_")


def tokenize_documents(documents):
    """
    Tokenize the document table and attach token-level statistics.

    Returns:
        (token_lists, DataFrame of documents + text stats + lexical diversity)
    """
    if TEXT_COLUMN not in documents.columns:
        raise ValueError(f"Text column '{TEXT_COLUMN}' not found. "
                         f"Columns present: {documents.columns.tolist()}")

    documents = documents.reset_index(drop=True)
    token_lists = tokenize_text(documents[TEXT_COLUMN])

    stats = text_stats_block(documents[TEXT_COLUMN], token_lists)
    lexdiv = lexdiv_block(token_lists)

    out = pd.concat([documents, stats, lexdiv], axis=1)
    return token_lists, out


def main():
    """
    Execute the complete tokenization pipeline.
    """
    print("\n" + "="*80)
    print("STAGE 2: TEXT TOKENIZATION")
    print("="*80 + "\n")

    print(f"Settings:")
    print(f"  Remove punctuation: {REMOVE_PUNCT}")
    print(f"  Remove numbers: {REMOVE_NUMBERS}")
    print(f"  Remove symbols: {REMOVE_SYMBOLS}")
    print(f"  Remove separators: {REMOVE_SEPARATORS}")
    print(f"  Lowercase: {LOWERCASE}")
    print()

    print("Step 1: Tokenizing documents")
    print("-" * 40)
    documents = load_documents(DOCUMENTS_FILE)
    token_lists, df = tokenize_documents(documents)
    df["tokenized_text"] = [" ".join(tokens) for tokens in token_lists]

    print(f"\nSaving tokenized documents...")
    save_csv(df, TOKENIZED_DOCUMENTS)

    print("\n" + "="*80)
    print("SUMMARY")
    print("="*80)
    print(f"\n  Total documents: {len(df):,}")
    print(f"  Average tokens per document: {df['n_words'].mean():.1f}")
    print(f"  Median tokens per document: {df['n_words'].median():.0f}")
    print(f"  Min tokens: {df['n_words'].min()}")
    print(f"  Max tokens: {df['n_words'].max()}")
    print(f"  Documents without tokens: {(df['n_words'] == 0).sum():,}")
    print(f"  Mean TTR: {df['lexdiv_TTR'].mean():.3f}")

    return df


if __name__ == "__main__":
    main()
