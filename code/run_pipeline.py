"""
===============================================================================
FILE: run_pipeline.py
PROJECT: Moral Judgment Text Analysis
===============================================================================
PURPOSE:
    Run the whole analysis from raw study files to model comparison:

        Stage 1  stage_01_clean.py      study files -> document table
        Stage 3  stage_03_features.py   document table -> feature table
                 (includes the Stage 2 tokenization statistics)
        Stage 4  stage_04_model.py      feature table -> models + results

    Intermediate tables are written to disk as each stage finishes, so a
    failed run can be resumed from the individual stage scripts.

USAGE:
    python code/run_pipeline.py
===============================================================================
"""
import time

from config import (
    DOCUMENTS_FILE, FEATURE_TABLE, EMBEDDINGS_FILE, LIWC_SCORES,
    MFD_DICTIONARY, SPACY_MODEL, OUTCOME_COLUMNS, save_csv
)
from helper_dictionary import load_dic_lexicon
from stage_01_clean import combine_studies
from stage_03_features import (
    build_feature_table, load_annotator, load_embeddings, load_liwc_scores
)
from stage_04_model import analyze_results, run_modeling, save_results


def run_pipeline(documents, nlp, embeddings=None, liwc=None, mfd_lexicon=None,
                 outcomes=OUTCOME_COLUMNS, **model_kwargs):
    """
    Feature generation followed by per-outcome modeling, all in memory.

    Returns:
        (feature table, dict outcome -> results, stacked metrics)
    """
    features = build_feature_table(documents, nlp, embeddings=embeddings,
                                   liwc=liwc, mfd_lexicon=mfd_lexicon)
    if len(features) != len(documents):
        raise ValueError("Feature table lost or duplicated documents")
    results, metrics = run_modeling(features, outcomes=outcomes, **model_kwargs)
    return features, results, metrics


def main():
    print("\n" + "=" * 80)
    print("MORAL JUDGMENT TEXT ANALYSIS: FULL PIPELINE")
    print("=" * 80 + "\n")

    start_time = time.time()

    print("Step 1: Loading study files")
    print("-" * 40)
    documents = combine_studies()
    save_csv(documents, DOCUMENTS_FILE)

    print("\nStep 2: Loading external artifacts")
    print("-" * 40)
    embeddings = load_embeddings(EMBEDDINGS_FILE)
    liwc = load_liwc_scores(LIWC_SCORES)
    mfd_lexicon = load_dic_lexicon(MFD_DICTIONARY)
    nlp = load_annotator(SPACY_MODEL)

    print("\nStep 3: Features and models")
    print("-" * 40)
    features, results, metrics = run_pipeline(
        documents, nlp, embeddings=embeddings, liwc=liwc, mfd_lexicon=mfd_lexicon
    )
    save_csv(features, FEATURE_TABLE)

    print("\nStep 4: Saving results")
    print("-" * 40)
    save_results(results, metrics)
    analyze_results(metrics, results)

    total_time = time.time() - start_time
    print(f"Total execution time: {total_time / 60:.2f} minutes")
    return features, results, metrics


if __name__ == "__main__":
    main()
