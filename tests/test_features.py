import math

import numpy as np
import pandas as pd
import pytest

from helper_dictionary import parse_dic_lines
from stage_02_tokenize import tokenize_documents
from stage_03_features import (
    annotate_documents, build_feature_table, load_annotator, load_embeddings,
    load_precomputed_table, merge_block, pivot_tag_counts, readability_block,
    readability_scores
)


def test_pivot_zero_fills_absent_tags_and_documents():
    long_df = pd.DataFrame({
        "doc_id": [0, 0, 2, 2],
        "feature": ["pos", "pos", "pos", "dep"],
        "tag": ["NOUN", "VERB", "NOUN", "nsubj:pass"],
        "count": [2, 1, 3, 1],
    })

    wide = pivot_tag_counts(long_df, n_docs=4)

    assert list(wide.columns) == ["dep_nsubj_pass", "pos_NOUN", "pos_VERB"]
    assert list(wide.index) == [0, 1, 2, 3]
    assert wide.loc[0].tolist() == [0, 2, 1]
    assert wide.loc[1].tolist() == [0, 0, 0]
    assert wide.loc[2].tolist() == [1, 3, 0]
    assert (wide.to_numpy() >= 0).all()
    assert all(pd.api.types.is_integer_dtype(wide[c]) for c in wide.columns)


def test_pivot_of_empty_long_table():
    wide = pivot_tag_counts(
        pd.DataFrame(columns=["doc_id", "feature", "tag", "count"]), n_docs=3)
    assert len(wide) == 3
    assert wide.shape[1] == 0


def test_annotation_counts_sum_to_token_count(blank_nlp, toy_documents):
    texts = toy_documents["text"]
    wide = pivot_tag_counts(annotate_documents(texts, blank_nlp), len(texts))

    pos_cols = [c for c in wide.columns if c.startswith("pos_")]
    dep_cols = [c for c in wide.columns if c.startswith("dep_")]
    n_tokens = [sum(1 for t in blank_nlp(text) if not t.is_space) for text in texts]

    assert (wide.to_numpy() >= 0).all()
    assert wide[pos_cols].sum(axis=1).tolist() == n_tokens
    assert wide[dep_cols].sum(axis=1).tolist() == n_tokens
    assert wide.loc[2].sum() == 0


def test_readability_scores():
    scores = readability_scores("The cat sat on the mat. It was a sunny day.")
    assert all(np.isfinite(v) for v in scores.values())

    empty = readability_scores("")
    assert all(math.isnan(v) for v in empty.values())
    assert all(math.isnan(v) for v in readability_scores("123 456 !!!").values())


def test_readability_counts_non_ascii_letters_as_words():
    scores = readability_scores("Ωμέγα άλφα βήτα.")
    assert any(np.isfinite(v) for v in scores.values())
    assert all(math.isnan(v) for v in readability_scores("42 _ 7").values())


def test_readability_block_prefix():
    block = readability_block(pd.Series(["Short text here.", ""]))
    assert len(block) == 2
    assert all(c.startswith("read_") for c in block.columns)


def test_merge_block_checks_rows_and_columns():
    table = pd.DataFrame({"a": [1, 2, 3]})

    merged = merge_block(table, pd.DataFrame({"b": [4, 5, 6]}), "b")
    assert merged.shape == (3, 2)

    with pytest.raises(ValueError):
        merge_block(table, pd.DataFrame({"b": [4, 5]}), "short")
    with pytest.raises(ValueError):
        merge_block(table, pd.DataFrame({"a": [4, 5, 6]}), "dup")


def test_merge_block_aligns_by_row_order():
    table = pd.DataFrame({"a": [1, 2]}, index=[10, 20])
    block = pd.DataFrame({"b": [3, 4]}, index=[5, 6])

    merged = merge_block(table, block, "b")

    assert merged["b"].tolist() == [3, 4]
    assert merged.isna().sum().sum() == 0


def test_load_precomputed_csv_and_npy(tmp_path):
    csv_path = tmp_path / "liwc.csv"
    pd.DataFrame({"Filename": ["a", "b"], "WC": [3, 5], "posemo": [1.5, 0.0]}).to_csv(
        csv_path, index=False)
    liwc = load_precomputed_table(csv_path, "liwc_")
    assert list(liwc.columns) == ["liwc_WC", "liwc_posemo"]

    npy_path = tmp_path / "emb.npy"
    np.save(npy_path, np.arange(6, dtype=float).reshape(2, 3))
    emb = load_embeddings(npy_path)
    assert list(emb.columns) == ["emb_0", "emb_1", "emb_2"]
    assert emb.shape == (2, 3)


def test_missing_artifacts_are_fatal(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_embeddings(tmp_path / "missing.csv")
    with pytest.raises(FileNotFoundError):
        load_annotator(str(tmp_path / "no_such_model"))


def test_build_feature_table_keeps_one_row_per_document(blank_nlp, toy_documents, mfd_lines):
    n = len(toy_documents)
    embeddings = pd.DataFrame(np.random.default_rng(1).normal(size=(n, 4)),
                              columns=[f"emb_{i}" for i in range(4)])
    liwc = pd.DataFrame({"liwc_WC": np.arange(n), "liwc_moral": np.linspace(0, 1, n)})
    lexicon = parse_dic_lines(mfd_lines)

    features = build_feature_table(toy_documents, blank_nlp, embeddings=embeddings,
                                   liwc=liwc, mfd_lexicon=lexicon)

    assert len(features) == n
    for col in toy_documents.columns:
        pd.testing.assert_series_equal(features[col], toy_documents[col])
    for col in ["n_words", "lexdiv_TTR", "read_flesch_reading_ease", "emb_3",
                "liwc_moral", "mfd_care_virtue", "mfd_fairness_virtue"]:
        assert col in features.columns

    empty = features.loc[2]
    tag_cols = [c for c in features.columns if c.startswith(("pos_", "dep_", "morph_"))]
    assert tag_cols
    assert (empty[tag_cols] == 0).all()
    assert empty["n_words"] == 0
    assert math.isnan(empty["read_flesch_reading_ease"])
    assert math.isnan(empty["lexdiv_TTR"])
    assert (features[tag_cols] >= 0).all().all()


def test_build_feature_table_rejects_misaligned_embeddings(blank_nlp, toy_documents):
    embeddings = pd.DataFrame({"emb_0": np.zeros(len(toy_documents) - 1)})
    with pytest.raises(ValueError):
        build_feature_table(toy_documents, blank_nlp, embeddings=embeddings)


def test_build_feature_table_scores_liwc_from_lexicon(blank_nlp, toy_documents, mfd_lines):
    lexicon = parse_dic_lines(mfd_lines)

    features = build_feature_table(toy_documents, blank_nlp, liwc_lexicon=lexicon)

    assert "liwc_care_vice" in features.columns
    assert not any(c.startswith("mfd_") for c in features.columns)


def test_feature_table_matches_stage_two_output(blank_nlp, toy_documents):
    _, tokenized = tokenize_documents(toy_documents)
    features = build_feature_table(toy_documents, blank_nlp)

    shared = [c for c in tokenized.columns
              if c == "n_words" or c.startswith("lexdiv_")]
    pd.testing.assert_frame_equal(features[shared], tokenized[shared])
