import pandas as pd
import pytest

from stage_01_clean import combine_studies, load_documents, load_study_file


def _write(tmp_path, name, frame):
    path = tmp_path / name
    frame.to_csv(path, index=False)
    return path


def test_load_study_file_renames_and_tags(tmp_path):
    path = _write(tmp_path, "s1.csv", pd.DataFrame({
        "pid": [7, 8],
        "cond": ["self", "other"],
        "p_right": ["55", "not a number"],
        "t_right": [10, 20],
        "response": ["Some text.", None],
    }))

    df = load_study_file(path, "study1")

    assert list(df.columns) == ["study", "participant_id", "condition",
                                "p_right", "t_right", "text"]
    assert (df["study"] == "study1").all()
    assert df["participant_id"].tolist() == [7, 8]
    assert df["p_right"].iloc[0] == 55
    assert pd.isna(df["p_right"].iloc[1])
    assert df["text"].tolist() == ["Some text.", ""]


def test_load_study_file_first_text_column_wins(tmp_path):
    path = _write(tmp_path, "s.csv", pd.DataFrame({
        "response": ["a"], "open_text": ["b"], "p_right": [1], "t_right": [2],
    }))

    df = load_study_file(path, "s")

    assert df["text"].tolist() == ["a"]


def test_load_study_file_missing_outcome_filled(tmp_path):
    path = _write(tmp_path, "s.csv", pd.DataFrame({"text": ["x"], "p_right": [3]}))

    df = load_study_file(path, "s")

    assert pd.isna(df["t_right"]).all()
    assert df["participant_id"].tolist() == [1]


def test_load_study_file_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_study_file(tmp_path / "nope.csv", "s")


def test_load_study_file_requires_text(tmp_path):
    path = _write(tmp_path, "s.csv", pd.DataFrame({"p_right": [1]}))
    with pytest.raises(ValueError):
        load_study_file(path, "s")


def test_combine_studies_keeps_every_row(tmp_path):
    a = _write(tmp_path, "a.csv", pd.DataFrame({"text": ["x", "y"], "p_right": [1, 2], "t_right": [3, 4]}))
    b = _write(tmp_path, "b.csv", pd.DataFrame({"text": ["", "z", "w"], "p_right": [5, 6, 7], "t_right": [8, 9, 0]}))

    docs = combine_studies({"a": a, "b": b})

    assert len(docs) == 5
    assert docs["study"].tolist() == ["a", "a", "b", "b", "b"]
    assert list(docs.index) == list(range(5))


def test_load_documents_restores_empty_text(tmp_path, toy_documents):
    path = tmp_path / "documents.csv"
    toy_documents.to_csv(path, index=False)

    docs = load_documents(path)

    assert docs["text"].iloc[2] == ""
    assert len(docs) == len(toy_documents)


def test_load_documents_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_documents(tmp_path / "documents.csv")
