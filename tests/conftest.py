from __future__ import annotations

import pytest

from decipher import SAMPLE_PLAINTEXT, build_transition_matrix

CORPUS = [
    "It was the best of times, it was the worst of times, it was the age of\n",
    "wisdom, it was the age of foolishness, it was the epoch of belief, it was\n",
    "the epoch of incredulity, it was the season of Light, it was the season of\n",
    "Darkness, it was the spring of hope, it was the winter of despair, we had\n",
    "everything before us, we had nothing before us, we were all going direct to\n",
    "Heaven, we were all going direct the other way.\n",
    SAMPLE_PLAINTEXT + "\n",
]


@pytest.fixture(scope="session")
def corpus_lines() -> list[str]:
    return list(CORPUS)


@pytest.fixture(scope="session")
def matrix(corpus_lines):
    return build_transition_matrix(corpus_lines)
