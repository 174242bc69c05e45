from __future__ import annotations

import numpy as np
import pytest

from decipher import (
    SAMPLE_PLAINTEXT,
    accept_move, decode, encode, key_to_mapping, metropolis_search,
    plateau_rule, random_key, score, validate_key,
)

TRUE_KEY = random_key(np.random.default_rng(2024))
CIPHER = encode(SAMPLE_PLAINTEXT, TRUE_KEY)


@pytest.mark.parametrize("delta,u,accepted", [
    (0.5, 0.3, True),
    (0.5, 0.7, False),
    (0.0, 0.0, False),
    (-1.0, 0.0, False),
    (3.0, 0.99, True),
])
def test_literal_rule_compares_uniform_with_delta(delta, u, accepted):
    assert accept_move(delta, u, "literal") is accepted


@pytest.mark.parametrize("delta,u,accepted", [
    (0.0, 0.99, True),
    (1.0, 0.99, True),
    (-1.0, 0.3, True),   # exp(-1) ~ 0.368
    (-1.0, 0.5, False),
    (-800.0, 0.0, False),
])
def test_metropolis_rule_uses_exp_delta(delta, u, accepted):
    assert accept_move(delta, u, "metropolis") is accepted


def test_unknown_rule_rejected(matrix):
    with pytest.raises(ValueError):
        accept_move(0.1, 0.0, "greedy")
    with pytest.raises(ValueError):
        metropolis_search(CIPHER, matrix, n_accepted=1, acceptance="greedy")


@pytest.mark.parametrize("kwargs", [{"n_accepted": -1}, {"max_stalls": 0}])
def test_invalid_budgets_rejected(matrix, kwargs):
    with pytest.raises(ValueError):
        metropolis_search(CIPHER, matrix, **kwargs)


def test_trace_is_non_decreasing(matrix):
    result = metropolis_search(CIPHER, matrix, n_accepted=60, seed=7, max_stalls=3000)
    scores = [s for _, s in result["trace"]]
    assert scores
    assert all(a <= b for a, b in zip(scores, scores[1:]))
    counts = [a for a, _ in result["trace"]]
    assert counts == sorted(counts)
    assert result["score"] == scores[-1]


def test_result_is_consistent(matrix):
    result = metropolis_search(CIPHER, matrix, n_accepted=40, seed=3, max_stalls=3000)
    assert validate_key(result["key"]) == result["key"]
    assert result["mapping"] == key_to_mapping(result["key"])
    assert result["decoded"] == decode(CIPHER, result["key"])
    assert result["score"] == pytest.approx(score(result["decoded"], matrix))
    assert result["proposals"] >= result["accepted"]
    assert result["acceptance"] == "literal"
    assert result["seed"] == 3


def test_same_seed_same_run(matrix):
    a = metropolis_search(CIPHER, matrix, n_accepted=30, seed=99, max_stalls=3000)
    b = metropolis_search(CIPHER, matrix, n_accepted=30, seed=99, max_stalls=3000)
    assert a == b


def test_search_improves_on_starting_key(matrix):
    start = random_key(np.random.default_rng(0))
    start_score = score(decode(CIPHER, start), matrix)
    result = metropolis_search(CIPHER, matrix, n_accepted=100, seed=0,
                               max_stalls=5000, initial_key=start)
    assert result["score"] >= start_score
    assert result["accepted"] > 0


def test_zero_budget_returns_initial_key(matrix):
    result = metropolis_search(CIPHER, matrix, n_accepted=0, initial_key=TRUE_KEY)
    assert result["key"] == TRUE_KEY
    assert result["decoded"] == SAMPLE_PLAINTEXT.upper()
    assert result["trace"] == []
    assert result["proposals"] == 0


def test_literal_rule_stalls_on_flat_landscape(matrix):
    # Every swap leaves an empty text's score at 0, so u < 0 never holds.
    result = metropolis_search("", matrix, n_accepted=5, seed=1, max_stalls=50)
    assert result["stalled"] is True
    assert result["accepted"] == 0
    assert result["proposals"] == 50
    assert result["stall_count"] == 50
    assert result["trace"] == []
    assert result["decoded"] == ""
    assert result["score"] == 0.0


def test_metropolis_rule_accepts_neutral_moves(matrix):
    result = metropolis_search("", matrix, n_accepted=5, seed=1,
                               acceptance="metropolis", max_stalls=50)
    assert result["stalled"] is False
    assert result["accepted"] == 5
    assert result["proposals"] == 5
    assert result["trace"] == []


def test_metropolis_rule_reaches_budget(matrix):
    result = metropolis_search(CIPHER, matrix, n_accepted=150, seed=5,
                               acceptance="metropolis", max_stalls=20000)
    assert result["accepted"] == 150
    scores = [s for _, s in result["trace"]]
    assert all(a <= b for a, b in zip(scores, scores[1:]))


def test_reporter_called_once_per_accepted_move(matrix):
    calls = []
    result = metropolis_search(CIPHER, matrix, n_accepted=25, seed=4, max_stalls=3000,
                               reporter=lambda a, s, text: calls.append((a, s, text)))
    assert [c[0] for c in calls] == list(range(1, result["accepted"] + 1))
    assert all(s >= 0 for _, s, _ in calls)
    assert calls[-1][2] == result["decoded"]
    assert result["proposals"] == result["accepted"] + sum(s for _, s, _ in calls) + result["stall_count"]


def test_stop_rule_ends_search(matrix):
    result = metropolis_search(CIPHER, matrix, n_accepted=1000, seed=4, max_stalls=3000,
                               stop_rule=lambda accepted, trace: accepted >= 5)
    assert result["stopped"] is True
    assert result["accepted"] == 5


def test_plateau_rule():
    rule = plateau_rule(5)
    assert rule(7, [(3, -10.0)]) is False
    assert rule(8, [(3, -10.0)]) is True
    assert rule(5, []) is True
    with pytest.raises(ValueError):
        plateau_rule(0)


def test_seed_is_required(matrix):
    with pytest.raises(ValueError):
        metropolis_search(CIPHER, matrix, n_accepted=1, seed=None)
