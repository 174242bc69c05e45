from __future__ import annotations

import numpy as np
import pytest

from decipher import (
    LETTERS, SAMPLE_PLAINTEXT,
    complete_key, decode, encode, identity_key, invert_key, key_accuracy,
    key_from_mapping, key_to_mapping, random_key, swap_key, validate_key,
)

REVERSED = LETTERS[::-1]


def test_identity_key_leaves_plaintext_alphabet_text_unchanged():
    text = "THE QUICK BROWN FOX, JUMPS OVER 12 LAZY DOGS!"
    assert decode(text, identity_key()) == text


def test_wkdw_decodes_to_that():
    key = complete_key({"W": "T", "K": "H", "D": "A"})
    validate_key(key)
    assert decode("WKDW", key) == "THAT"


def test_layout_and_punctuation_preserved():
    key = complete_key({"W": "T", "K": "H", "D": "A"})
    assert decode("WKDW, wkdw!\n  42", key) == "THAT, THAT!\n  42"


def test_empty_ciphertext():
    assert decode("", REVERSED) == ""


def test_partial_legend_passes_unknown_letters_through():
    assert decode("WKDW XYZ", {"W": "T", "k": "h"}) == "THDT XYZ"


def test_partial_legend_rejects_non_letters():
    with pytest.raises(ValueError):
        decode("ABC", {"A": "1"})


@pytest.mark.parametrize("bad", ["ABC", LETTERS[:-1] + "A", "0" * 26, None])
def test_validate_key_rejects_non_bijections(bad):
    with pytest.raises(ValueError):
        validate_key(bad)


def test_validate_key_uppercases():
    assert validate_key(REVERSED.lower()) == REVERSED


def test_complete_key_rejects_collisions():
    with pytest.raises(ValueError):
        complete_key({"A": "X", "B": "X"})


def test_key_mapping_round_trip():
    mapping = key_to_mapping(REVERSED)
    assert mapping["A"] == "Z" and mapping["Z"] == "A"
    assert key_from_mapping(mapping) == REVERSED
    with pytest.raises(ValueError):
        key_from_mapping({"A": "B"})


def test_swap_is_an_involution():
    key = random_key(np.random.default_rng(3))
    swapped = swap_key(key, 2, 17)
    assert swapped != key
    assert swapped[2] == key[17] and swapped[17] == key[2]
    assert swap_key(swapped, 2, 17) == key
    validate_key(swapped)


def test_swap_returns_new_value():
    key = identity_key()
    swapped = swap_key(key, 0, 1)
    assert key == LETTERS
    assert swapped.startswith("BA")


def test_random_key_is_bijective_and_seeded():
    a = random_key(np.random.default_rng(11))
    b = random_key(np.random.default_rng(11))
    assert a == b
    assert validate_key(a) == a


def test_encode_then_decode_recovers_uppercased_plaintext():
    key = random_key(np.random.default_rng(5))
    cipher = encode(SAMPLE_PLAINTEXT, key)
    assert cipher != SAMPLE_PLAINTEXT.upper()
    assert decode(cipher, key) == SAMPLE_PLAINTEXT.upper()


def test_invert_key():
    key = random_key(np.random.default_rng(9))
    assert invert_key(invert_key(key)) == key
    assert invert_key(identity_key()) == identity_key()


def test_key_accuracy():
    key = random_key(np.random.default_rng(1))
    assert key_accuracy(key, key) == 1.0
    assert key_accuracy(swap_key(key, 0, 1), key) == pytest.approx(24 / 26)
    # Only A and B appear; both are wrong after swapping them.
    assert key_accuracy(swap_key(key, 0, 1), key, "ab ab") == 0.0
    assert key_accuracy(key, key, "123") == 0.0
