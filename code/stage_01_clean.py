"""
===============================================================================
FILE: stage_01_clean.py
PROJECT: Moral Judgment Text Analysis
===============================================================================
PURPOSE:
    Load the survey export of each study and stack them into one document
    table. This is Stage 1 of the analysis pipeline.

DESCRIPTION:
    1. Read one CSV per study
    2. Rename source columns to the canonical names used downstream
       (participant_id, condition, text, p_right, t_right)
    3. Coerce outcome scores to numeric; blank text becomes ""
    4. Stack studies into one table with one row per document

    Rows are never dropped here: documents with missing text still get a
    complete feature row later, and rows with a missing outcome are only
    excluded when that outcome is modeled.

INPUT FILES:
    - data/01_raw/study*.csv

OUTPUT FILES:
    - data/02_cleaned/documents.csv

USAGE:
    python code/stage_01_clean.py
===============================================================================
"""

from pathlib import Path

import pandas as pd

from config import (
    STUDY_FILES, DOCUMENTS_FILE, CLEANED_DIR,
    STUDY_COLUMN, ID_COLUMN, CONDITION_COLUMN, TEXT_COLUMN,
    OUTCOME_COLUMNS, SOURCE_COLUMN_MAP, save_csv
)


def load_study_file(path, study, column_map=None):
    """
    Load one study export and standardize its columns.

    Args:
        path: Path to the study CSV
        study: Label written to the study column
        column_map: Source -> canonical column renames

    Returns:
        DataFrame with study, participant_id, condition, outcomes, text

    Raises:
        FileNotFoundError: If the study file does not exist
        ValueError: If the text column is missing after renaming
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Study file not found at {path}\n"
            f"Check STUDY_FILES in config.py."
        )

    column_map = SOURCE_COLUMN_MAP if column_map is None else column_map

    df = pd.read_csv(path)
    print(f"  [{study}] Loaded {len(df):,} rows from {path.name}")

    # First matching source column wins for each canonical name
    renames = {}
    for src, dst in column_map.items():
        if src in df.columns and dst not in df.columns and dst not in renames.values():
            renames[src] = dst
    df = df.rename(columns=renames)

    if TEXT_COLUMN not in df.columns:
        raise ValueError(
            f"Text column '{TEXT_COLUMN}' not found in {path}. "
            f"Columns present: {df.columns.tolist()}"
        )

    df[STUDY_COLUMN] = study
    if ID_COLUMN not in df.columns:
        df[ID_COLUMN] = range(1, len(df) + 1)
    if CONDITION_COLUMN not in df.columns:
        df[CONDITION_COLUMN] = pd.NA

    for col in OUTCOME_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        else:
            print(f"  ⚠ [{study}] outcome '{col}' missing, filled with NaN")
            df[col] = float("nan")

    n_blank = df[TEXT_COLUMN].isna().sum()
    df[TEXT_COLUMN] = df[TEXT_COLUMN].fillna("").astype(str)
    if n_blank > 0:
        print(f"  [{study}] {n_blank:,} rows with missing text kept as empty strings")

    keep_cols = [STUDY_COLUMN, ID_COLUMN, CONDITION_COLUMN] + OUTCOME_COLUMNS + [TEXT_COLUMN]
    return df[keep_cols]


def combine_studies(study_files=None, column_map=None):
    """Load every study file and stack them into one document table."""
    study_files = STUDY_FILES if study_files is None else study_files

    frames = [load_study_file(path, study, column_map)
              for study, path in study_files.items()]
    documents = pd.concat(frames, ignore_index=True)

    print(f"  Combined dataset: {len(documents):,} documents "
          f"from {len(frames)} studies")
    return documents


def load_documents(path=DOCUMENTS_FILE):
    """
    Load the Stage 1 document table.

    Empty text cells come back from CSV as NaN; they are restored to "".
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Document table not found at {path}\n"
            f"Please run stage_01_clean.py first."
        )
    documents = pd.read_csv(path)
    documents[TEXT_COLUMN] = documents[TEXT_COLUMN].fillna("").astype(str)
    return documents


def main():
    """Execute the complete Stage 1 cleaning pipeline."""
    print("\n" + "="*80)
    print("STAGE 1: DATA CLEANING")
    print("="*80 + "\n")

    CLEANED_DIR.mkdir(parents=True, exist_ok=True)

    print("Step 1: Loading study files")
    print("-" * 40)
    documents = combine_studies()

    print("\nStep 2: Saving document table")
    print("-" * 40)
    save_csv(documents, DOCUMENTS_FILE)

    print("\n" + "="*80)
    print("SUMMARY")
    print("="*80)
    print(f"\n  Total documents: {len(documents):,}")
    for study, n in documents[STUDY_COLUMN].value_counts(sort=False).items():
        print(f"  {study}: {n:,}")
    for col in OUTCOME_COLUMNS:
        print(f"  Mean {col}: {documents[col].mean():.3f} "
              f"({documents[col].notna().sum():,} non-missing)")
    n_empty = (documents[TEXT_COLUMN].str.strip() == "").sum()
    print(f"  Empty texts: {n_empty:,}")

    return documents


if __name__ == "__main__":
    main()
