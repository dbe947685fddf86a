"""
Dictionary-based word-count scoring (LIWC-style .dic lexicons).

A .dic file starts with a category header enclosed in '%' lines, followed
by one entry per line:

    %
    1   care.virtue
    2   care.vice
    %
    compassion*     1
    kill            2

A trailing '*' makes the entry a prefix wildcard. Multi-word entries are
read but can never match a single token.
"""

from collections import OrderedDict
from pathlib import Path

import pandas as pd


def load_dic_lexicon(path):
    """
    Parse a .dic lexicon file.

    Returns:
        dict with:
          - categories: category names in header order
          - exact: word -> set of category names
          - prefixes: stem -> set of category names

    Raises:
        FileNotFoundError: If the dictionary file doesn't exist
        ValueError: If the header is malformed or an entry uses an unknown id
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dictionary file not found at {path}")

    with open(path, "r", encoding="utf-8-sig") as f:
        lines = [line.strip() for line in f]
    return parse_dic_lines(lines, source=str(path))


def parse_dic_lines(lines, source="<lines>"):
    """Parse the lines of a .dic file (see load_dic_lexicon)."""
    markers = [i for i, line in enumerate(lines) if line == "%"]
    if len(markers) < 2:
        raise ValueError(f"{source}: expected a category header between two '%' lines")
    start, end = markers[0], markers[1]

    id_to_name = OrderedDict()
    for line in lines[start + 1:end]:
        if not line:
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            raise ValueError(f"{source}: bad category line '{line}'")
        id_to_name[parts[0]] = parts[1].strip()

    exact = {}
    prefixes = {}
    for line in lines[end + 1:]:
        if not line:
            continue
        parts = line.split()
        n_ids = 0
        while n_ids < len(parts) - 1 and parts[-(n_ids + 1)].isdigit():
            n_ids += 1
        word = " ".join(parts[:len(parts) - n_ids]).lower()
        ids = parts[len(parts) - n_ids:]
        if not ids:
            raise ValueError(f"{source}: entry '{line}' has no category id")

        cats = set()
        for cid in ids:
            if cid not in id_to_name:
                raise ValueError(f"{source}: entry '{word}' uses unknown category id {cid}")
            cats.add(id_to_name[cid])

        if word.endswith("*"):
            prefixes.setdefault(word[:-1], set()).update(cats)
        else:
            exact.setdefault(word, set()).update(cats)

    return {
        "categories": list(id_to_name.values()),
        "exact": exact,
        "prefixes": prefixes,
    }


def match_categories(token, lexicon):
    """Categories a single (lowercased) token belongs to."""
    cats = set(lexicon["exact"].get(token, ()))
    prefixes = lexicon["prefixes"]
    for i in range(1, len(token) + 1):
        stem_cats = prefixes.get(token[:i])
        if stem_cats:
            cats.update(stem_cats)
    return cats


def score_dictionary(token_lists, lexicon, prefix=""):
    """
    Percentage of each document's tokens that fall in each category.

    Args:
        token_lists: List of token lists, one per document
        lexicon: Output of load_dic_lexicon
        prefix: Prepended to the category column names

    Returns:
        DataFrame, one row per document, one column per category.
        Documents without tokens score 0 in every category.
    """
    categories = lexicon["categories"]
    rows = []
    for tokens in token_lists:
        counts = dict.fromkeys(categories, 0)
        for token in tokens:
            for cat in match_categories(token.lower(), lexicon):
                counts[cat] += 1
        n = len(tokens)
        rows.append({cat: (100.0 * c / n if n > 0 else 0.0)
                     for cat, c in counts.items()})

    scores = pd.DataFrame(rows, columns=categories)
    scores.columns = [prefix + _clean_name(c) for c in categories]
    return scores


def _clean_name(name):
    return name.replace(".", "_").replace(" ", "_")
