import numpy as np
import pandas as pd
import pytest
import spacy

RESPONSES = [
    "I think the manager was right to report the theft. Honesty matters!",
    "He should have kept quiet; loyalty to friends comes first.",
    "",
    "Stealing is wrong, no matter who does it.",
    "It depends. Was anyone hurt? If not, maybe it's fine.",
    "The company treated her unfairly, so she had every reason to leave.",
    "Caring for family is the most important duty a person has.",
    "Rules exist for a reason and breaking them harms everyone.",
    "I would have done the same thing in her position, honestly.",
    "Betraying your team for money is disgusting.",
    "She was brave. Standing up to authority takes courage.",
    "They paid $20 for it in 2019... what a deal :)",
    "Fairness means everyone gets the same chance.",
    "Nobody deserves to be punished that harshly for a small mistake.",
    "Purity of intention does not excuse the outcome.",
    "He lied. Lying is always wrong. Always.",
    "Respect for tradition keeps communities together.",
    "Freedom to choose is more important than obedience.",
    "It was kind of him to help the stranger on the road.",
    "I can't decide; both sides have a point.",
]


@pytest.fixture
def toy_documents():
    rng = np.random.default_rng(0)
    n = len(RESPONSES)
    return pd.DataFrame({
        "study": ["study1"] * 10 + ["study2"] * 10,
        "participant_id": np.arange(1, n + 1),
        "condition": ["self", "other"] * (n // 2),
        "p_right": rng.uniform(0, 100, n).round(1),
        "t_right": rng.uniform(0, 100, n).round(1),
        "text": RESPONSES,
    })


@pytest.fixture(scope="session")
def blank_nlp():
    # Tokenizer-only pipeline: every tag is empty, no model download needed
    return spacy.blank("en")


@pytest.fixture
def mfd_lines():
    return [
        "%",
        "1\tcare.virtue",
        "2\tcare.vice",
        "3\tfairness.virtue",
        "%",
        "car*\t1",
        "kind\t1",
        "hurt\t2",
        "harm*\t2",
        "fair*\t3",
        "bleeding heart\t1",
    ]
