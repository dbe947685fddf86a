import pytest

from helper_dictionary import (
    load_dic_lexicon, match_categories, parse_dic_lines, score_dictionary
)


def test_parse_header_and_entries(mfd_lines):
    lexicon = parse_dic_lines(mfd_lines)

    assert lexicon["categories"] == ["care.virtue", "care.vice", "fairness.virtue"]
    assert lexicon["exact"]["kind"] == {"care.virtue"}
    assert lexicon["prefixes"]["harm"] == {"care.vice"}
    assert "bleeding heart" in lexicon["exact"]


def test_wildcard_and_exact_matching(mfd_lines):
    lexicon = parse_dic_lines(mfd_lines)

    assert match_categories("caring", lexicon) == {"care.virtue"}
    assert match_categories("harmful", lexicon) == {"care.vice"}
    assert match_categories("kind", lexicon) == {"care.virtue"}
    assert match_categories("kindness", lexicon) == set()
    assert match_categories("fairness", lexicon) == {"fairness.virtue"}


def test_score_dictionary_percentages(mfd_lines):
    lexicon = parse_dic_lines(mfd_lines)
    token_lists = [
        ["caring", "is", "kind", "not", "harmful"],
        [],
        ["bleeding", "heart"],
    ]

    scores = score_dictionary(token_lists, lexicon, prefix="mfd_")

    assert list(scores.columns) == ["mfd_care_virtue", "mfd_care_vice", "mfd_fairness_virtue"]
    assert scores.loc[0, "mfd_care_virtue"] == pytest.approx(40.0)
    assert scores.loc[0, "mfd_care_vice"] == pytest.approx(20.0)
    assert scores.loc[1].tolist() == [0.0, 0.0, 0.0]
    # multi-word entries never match single tokens
    assert scores.loc[2].tolist() == [0.0, 0.0, 0.0]


def test_multiple_categories_per_entry():
    lexicon = parse_dic_lines(["%", "1 a", "2 b", "%", "word 1 2"])
    scores = score_dictionary([["word"]], lexicon)
    assert scores.loc[0].tolist() == [100.0, 100.0]


def test_malformed_dictionaries():
    with pytest.raises(ValueError):
        parse_dic_lines(["1 care", "care 1"])
    with pytest.raises(ValueError):
        parse_dic_lines(["%", "1 care", "%", "word 7"])
    with pytest.raises(ValueError):
        parse_dic_lines(["%", "1 care", "%", "word"])


def test_load_dic_lexicon_from_file(tmp_path, mfd_lines):
    path = tmp_path / "mfd.dic"
    path.write_text("\n".join(mfd_lines), encoding="utf-8")

    lexicon = load_dic_lexicon(path)

    assert len(lexicon["categories"]) == 3


def test_load_dic_lexicon_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_dic_lexicon(tmp_path / "missing.dic")
