"""
---
version: 0.1.0
created: 2026-10-17
updated: 2026-10-17
---

decipher.py — Shared module for breaking monoalphabetic substitution ciphers.

Seven sections:
  1. Alphabet (27 symbols: space + A-Z) and reference constants
  2. Corpus model (smoothed bigram transition matrix from reference text)
  3. Keys & codec (26-letter legends, decode/encode)
  4. Scoring (log-likelihood under the transition matrix, diagnostics)
  5. Key search (Metropolis-Hastings sampler over key transpositions)
  6. Corpus utils (Gutenberg download/cache, line sources)
  7. Output utils (formatting, heatmap and trace plots)
"""

from __future__ import annotations

import http.client
import itertools
import json
import math
import re
import string
import urllib.request
import warnings
from collections import Counter
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, Sequence

import numpy as np

# ============================================================================
# 1. ALPHABET AND CONSTANTS
# ============================================================================

SPACE = " "
LETTERS = string.ascii_uppercase
SYMBOLS = SPACE + LETTERS
N_LETTERS = len(LETTERS)
N_SYMBOLS = len(SYMBOLS)
SPACE_INDEX = 0

# Fixed symbol -> row/column index of the transition matrix.
SYMBOL_INDEX: dict[str, int] = {s: i for i, s in enumerate(SYMBOLS)}

# Lookup used while walking text: both letter cases fold onto the same index.
_CHAR_INDEX: dict[str, int] = dict(SYMBOL_INDEX)
_CHAR_INDEX.update({c.lower(): i for c, i in SYMBOL_INDEX.items() if c != SPACE})

DEFAULT_ITERATIONS = 2000
DEFAULT_SEED = 42
ACCEPTANCE_RULES = ("literal", "metropolis")

# English letter frequencies (approximate, for diagnostics only).
ENGLISH_FREQ: dict[str, float] = {
    "E": 0.1270, "T": 0.0906, "A": 0.0817, "O": 0.0751, "I": 0.0697,
    "N": 0.0675, "S": 0.0633, "H": 0.0609, "R": 0.0599, "D": 0.0425,
    "L": 0.0403, "C": 0.0278, "U": 0.0276, "M": 0.0241, "W": 0.0236,
    "F": 0.0223, "G": 0.0202, "Y": 0.0197, "P": 0.0193, "B": 0.0129,
    "V": 0.0098, "K": 0.0077, "J": 0.0015, "X": 0.0015, "Q": 0.0010,
    "Z": 0.0007,
}

# Reference corpora (Project Gutenberg ids). Need a few hundred K chars.
REFERENCE_TEXTS: list[dict] = [
    {"id": 2600, "title": "War and Peace (Tolstoy)"},
    {"id": 1342, "title": "Pride and Prejudice (Austen)"},
]
CACHE_DIR = Path(".gutenberg_cache")

# Opening of Pride and Prejudice (public domain). Used as demo plaintext.
SAMPLE_PLAINTEXT = (
    "It is a truth universally acknowledged, that a single man in possession "
    "of a good fortune, must be in want of a wife. However little known the "
    "feelings or views of such a man may be on his first entering a "
    "neighbourhood, this truth is so well fixed in the minds of the "
    "surrounding families, that he is considered the rightful property of "
    "some one or other of their daughters. My dear Mr. Bennet, said his lady "
    "to him one day, have you heard that Netherfield Park is let at last? "
    "Mr. Bennet replied that he had not. But it is, returned she; for Mrs. "
    "Long has just been here, and she told me all about it. Mr. Bennet made "
    "no answer. Do you not want to know who has taken it? cried his wife "
    "impatiently. You want to tell me, and I have no objection to hearing it."
)


def symbol_index(symbol: str) -> int:
    """Index of a symbol in the 27-symbol alphabet (space is 0)."""
    try:
        return SYMBOL_INDEX[symbol.upper()]
    except KeyError:
        raise ValueError(f"'{symbol}' is not in the alphabet") from None


# ============================================================================
# 2. CORPUS MODEL — Smoothed bigram transition matrix
# ============================================================================

def symbol_transitions(
    text: str,
    previous: int = SPACE_INDEX,
) -> tuple[np.ndarray, np.ndarray, int]:
    """
    Walk text and return its symbol-to-symbol transitions.

    Letters are case-folded. Any character outside the alphabet acts as a
    space boundary, and consecutive boundaries collapse into a single event:
    a space following a space is never emitted.

    Args:
        text: Raw text.
        previous: Symbol index in effect before the first character.

    Returns:
        (from_indices, to_indices, last_symbol_index)
    """
    src: list[int] = []
    dst: list[int] = []
    for ch in text:
        cur = _CHAR_INDEX.get(ch, SPACE_INDEX)
        if cur == SPACE_INDEX and previous == SPACE_INDEX:
            continue
        src.append(previous)
        dst.append(cur)
        previous = cur
    return np.array(src, dtype=np.intp), np.array(dst, dtype=np.intp), previous


def count_transitions(
    lines: Iterable[str],
    previous: int = SPACE_INDEX,
    close: bool = False,
) -> tuple[np.ndarray, int]:
    """
    Count bigram transitions over a corpus in one forward pass.

    State carries across line boundaries, so lines should keep their
    terminators (a file object does). With close=True a final boundary
    event is emitted when the pass ends on a letter.

    Returns:
        (27x27 integer count matrix, last symbol index)
    """
    counts = np.zeros((N_SYMBOLS, N_SYMBOLS), dtype=np.int64)
    for line in lines:
        src, dst, previous = symbol_transitions(line, previous)
        np.add.at(counts, (src, dst), 1)
    if close and previous != SPACE_INDEX:
        counts[previous, SPACE_INDEX] += 1
        previous = SPACE_INDEX
    return counts, previous


def normalize_counts(counts: np.ndarray) -> np.ndarray:
    """
    Laplace-smooth a count matrix and normalise each row to sum to 1.

    The result is read-only. Rows with no observations become uniform.
    """
    counts = np.asarray(counts, dtype=float)
    if counts.shape != (N_SYMBOLS, N_SYMBOLS):
        raise ValueError(f"Expected a {N_SYMBOLS}x{N_SYMBOLS} count matrix, got {counts.shape}")
    if (counts < 0).any():
        raise ValueError("Transition counts must be non-negative")
    smoothed = counts + 1.0
    matrix = smoothed / smoothed.sum(axis=1, keepdims=True)
    matrix.flags.writeable = False
    return matrix


def build_transition_matrix(lines: Iterable[str]) -> np.ndarray:
    """Build the smoothed 27x27 transition matrix from corpus lines."""
    counts, _ = count_transitions(lines)
    return normalize_counts(counts)


def _count_chunk(chunk: Sequence[str]) -> np.ndarray:
    return count_transitions(chunk, close=True)[0]


def build_transition_matrix_chunked(
    chunks: Iterable[Sequence[str]],
    workers: int = 1,
) -> np.ndarray:
    """
    Build the transition matrix from independently counted corpus chunks.

    Each chunk starts at a space boundary and is closed with an explicit
    boundary event, so the seams neither drop nor duplicate a bigram. The
    result equals build_transition_matrix() over the concatenated chunks
    whenever every chunk ends on a non-letter (e.g. a newline).

    Args:
        chunks: Sequences of lines; with workers > 1 they must be picklable.
        workers: Process count for counting (1 = in-process).
    """
    chunks = list(chunks)
    total = np.zeros((N_SYMBOLS, N_SYMBOLS), dtype=np.int64)
    if workers > 1 and len(chunks) > 1:
        with ProcessPoolExecutor(max_workers=workers) as pool:
            for partial in pool.map(_count_chunk, chunks):
                total += partial
    else:
        for chunk in chunks:
            total += _count_chunk(chunk)
    return normalize_counts(total)


def check_matrix(matrix: np.ndarray, tol: float = 1e-9) -> None:
    """Raise ValueError unless matrix is a valid strictly-positive transition matrix."""
    if matrix.shape != (N_SYMBOLS, N_SYMBOLS):
        raise ValueError(f"Expected shape {(N_SYMBOLS, N_SYMBOLS)}, got {matrix.shape}")
    if not (matrix > 0).all():
        raise ValueError("Transition matrix has zero or negative cells")
    if not np.allclose(matrix.sum(axis=1), 1.0, atol=tol):
        raise ValueError("Transition matrix rows do not sum to 1")


def save_matrix(matrix: np.ndarray, path: str | Path) -> None:
    """Save a transition matrix as JSON."""
    with open(path, "w") as f:
        json.dump({"symbols": SYMBOLS, "matrix": matrix.tolist()}, f)


def load_matrix(path: str | Path) -> np.ndarray:
    """Load and validate a transition matrix saved by save_matrix()."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object, got {type(data).__name__}")
    if data.get("symbols") != SYMBOLS:
        raise ValueError(f"{path}: alphabet mismatch ({data.get('symbols')!r})")
    matrix = np.array(data["matrix"], dtype=float)
    check_matrix(matrix, tol=1e-6)
    matrix.flags.writeable = False
    return matrix


# ============================================================================
# 3. KEYS & CODEC
# ============================================================================
# A key is a 26-letter string: position i holds the plaintext image of
# cipher letter LETTERS[i]. Space always maps to itself.

def validate_key(key: str) -> str:
    """
    Check that key is a bijection over the 26 letters.

    Returns:
        The key, uppercased.

    Raises:
        ValueError: If the key is the wrong length or repeats a letter.
    """
    if not isinstance(key, str) or len(key) != N_LETTERS:
        raise ValueError(f"Key must be a string of {N_LETTERS} letters, got {key!r}")
    key = key.upper()
    if set(key) != set(LETTERS):
        missing = "".join(sorted(set(LETTERS) - set(key)))
        raise ValueError(f"Key is not a permutation of A-Z (missing: {missing})")
    return key


def identity_key() -> str:
    return LETTERS


def random_key(rng: np.random.Generator) -> str:
    """Uniformly random bijection over the 26 letters."""
    return "".join(LETTERS[i] for i in rng.permutation(N_LETTERS))


def _check_legend(mapping: Mapping[str, str]) -> dict[str, str]:
    legend: dict[str, str] = {}
    for cipher, plain in mapping.items():
        c, p = cipher.upper(), plain.upper()
        if len(c) != 1 or c not in LETTERS or len(p) != 1 or p not in LETTERS:
            raise ValueError(f"Legend entries must map letter to letter, got {cipher!r}->{plain!r}")
        legend[c] = p
    return legend


def key_from_mapping(mapping: Mapping[str, str]) -> str:
    """Build a key from a complete cipher->plain letter mapping."""
    legend = _check_legend(mapping)
    if len(legend) != N_LETTERS:
        raise ValueError(f"Mapping covers {len(legend)} letters, need {N_LETTERS}")
    return validate_key("".join(legend[c] for c in LETTERS))


def complete_key(partial: Mapping[str, str]) -> str:
    """
    Extend a partial injective mapping to a full key.

    Unmapped cipher letters take the unused plaintext letters in
    alphabetical order.
    """
    legend = _check_legend(partial)
    images = list(legend.values())
    if len(set(images)) != len(images):
        raise ValueError("Partial mapping sends two cipher letters to the same plaintext letter")
    unused = iter(c for c in LETTERS if c not in set(images))
    return validate_key("".join(legend[c] if c in legend else next(unused) for c in LETTERS))


def key_to_mapping(key: str) -> dict[str, str]:
    """Explicit cipher->plain mapping for a key."""
    return dict(zip(LETTERS, validate_key(key)))


def invert_key(key: str) -> str:
    """Key for the inverse substitution (plain->cipher)."""
    key = validate_key(key)
    inverse = [""] * N_LETTERS
    for i, plain in enumerate(key):
        inverse[ord(plain) - ord("A")] = LETTERS[i]
    return "".join(inverse)


def swap_key(key: str, i: int, j: int) -> str:
    """
    Return a new key with the plaintext images at positions i and j swapped.

    Applying the same swap twice returns the original key.
    """
    chars = list(key)
    chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


def _decode_table(key: str | Mapping[str, str]) -> dict[int, str]:
    if isinstance(key, str):
        key = validate_key(key)
        return str.maketrans(LETTERS + LETTERS.lower(), key + key)
    table: dict[int, str] = {}
    for cipher, plain in _check_legend(key).items():
        table[ord(cipher)] = plain
        table[ord(cipher.lower())] = plain
    return table


def decode(ciphertext: str, key: str | Mapping[str, str]) -> str:
    """
    Apply a key to ciphertext.

    Cipher letters (either case) become their uppercase plaintext image.
    Spaces, punctuation, digits and layout pass through unchanged, as do
    letters outside a partial legend's domain.

    Args:
        ciphertext: Text to decode.
        key: 26-letter key string, or a (possibly partial) cipher->plain
            letter mapping.
    """
    return ciphertext.translate(_decode_table(key))


def encode(plaintext: str, key: str) -> str:
    """Encrypt plaintext so that decode(encode(p, key), key) == p.upper()."""
    return decode(plaintext, invert_key(key))


def key_accuracy(found: str, true: str, ciphertext: str | None = None) -> float:
    """
    Fraction of cipher letters the found key maps the same way as the true key.

    With ciphertext given, only letters occurring in it are counted.
    """
    found, true = validate_key(found), validate_key(true)
    if ciphertext is None:
        positions = range(N_LETTERS)
    else:
        present = {c for c in ciphertext.upper() if c in LETTERS}
        positions = [i for i, c in enumerate(LETTERS) if c in present]
    positions = list(positions)
    if not positions:
        return 0.0
    return sum(1 for i in positions if found[i] == true[i]) / len(positions)


# ============================================================================
# 4. SCORING — Log-likelihood under the transition matrix
# ============================================================================

def score(text: str, matrix: np.ndarray) -> float:
    """
    Log-likelihood of text under the bigram transition matrix.

    Uses the same boundary-collapse rule as the corpus model, starting from
    a space. Always <= 0; the empty text scores 0. Not length-normalised, so
    only scores of equal-length texts are comparable.
    """
    src, dst, _ = symbol_transitions(text)
    if src.size == 0:
        return 0.0
    return float(np.log(matrix[src, dst]).sum())


def index_of_coincidence(text: str) -> float:
    """
    Compute the index of coincidence for a text.

    English: ~0.0667. Random (uniform 26): ~0.0385.
    """
    letters = [c for c in text.upper() if c in LETTERS]
    n = len(letters)
    if n < 2:
        return 0.0
    counts = Counter(letters)
    return sum(c * (c - 1) for c in counts.values()) / (n * (n - 1))


def letter_frequency_test(text: str) -> dict:
    """
    Compare the letter frequencies of a decoding to English.

    Returns dict with:
        freq: observed letter frequency distribution
        chi2: chi-squared against English frequencies
        p_value: p-value (25 dof)
        kl_divergence: KL divergence from English (bits)
        n: number of letters
    """
    from scipy import stats as sp_stats

    letters = [c for c in text.upper() if c in LETTERS]
    total = len(letters)
    if total == 0:
        return {"freq": {}, "chi2": float("inf"), "p_value": 0.0,
                "kl_divergence": float("inf"), "n": 0}

    counts = Counter(letters)
    obs_freq = {c: counts.get(c, 0) / total for c in LETTERS}

    obs_arr = np.array([counts.get(c, 0) for c in LETTERS], dtype=float)
    exp_arr = np.array([ENGLISH_FREQ[c] * total for c in LETTERS], dtype=float)
    exp_arr = np.maximum(exp_arr, 0.5)
    exp_arr = exp_arr * (obs_arr.sum() / exp_arr.sum())
    chi2, p_value = sp_stats.chisquare(obs_arr, exp_arr)

    kl = 0.0
    for c in LETTERS:
        p = obs_freq[c]
        if p > 0:
            kl += p * math.log2(p / ENGLISH_FREQ[c])

    return {
        "freq": obs_freq,
        "chi2": float(chi2),
        "p_value": float(p_value),
        "kl_divergence": kl,
        "n": total,
    }


# ============================================================================
# 5. KEY SEARCH — Metropolis-Hastings over key transpositions
# ============================================================================

Reporter = Callable[[int, int, str], None]
StopRule = Callable[[int, list], bool]


def accept_move(delta: float, u: float, rule: str = "literal") -> bool:
    """
    Decide whether a proposal with score change delta is accepted.

    "literal": accept iff u < delta. The uniform draw is compared with the
        raw log-likelihood difference, so only improvements larger than u
        are ever taken. This is the default.
    "metropolis": canonical rule, accept iff u < min(1, exp(delta)).
    """
    if rule == "literal":
        return u < delta
    if rule == "metropolis":
        return delta >= 0.0 or u < math.exp(delta)
    raise ValueError(f"Unknown acceptance rule '{rule}' (expected one of {ACCEPTANCE_RULES})")


def plateau_rule(patience: int) -> StopRule:
    """
    Stop rule: end the search once the best score has not improved for
    `patience` accepted moves.
    """
    if patience < 1:
        raise ValueError("patience must be >= 1")

    def rule(accepted: int, trace: list) -> bool:
        last_improvement = trace[-1][0] if trace else 0
        return accepted - last_improvement >= patience

    return rule


def metropolis_search(
    ciphertext: str,
    matrix: np.ndarray,
    n_accepted: int = DEFAULT_ITERATIONS,
    seed: int = DEFAULT_SEED,
    acceptance: str = "literal",
    max_stalls: int | None = None,
    stop_rule: StopRule | None = None,
    reporter: Reporter | None = None,
    initial_key: str | None = None,
) -> dict:
    """
    Search the key space with a Metropolis-Hastings sampler.

    Each proposal swaps the plaintext images of two distinct random
    positions of the current key, scores the resulting decoding and is
    accepted or rejected by accept_move(). The run ends after n_accepted
    accepted moves; with no max_stalls there is no bound on the number of
    rejected proposals in between.

    Args:
        ciphertext: Text to break.
        matrix: Transition matrix from build_transition_matrix().
        n_accepted: Budget of accepted moves (not proposals).
        seed: Seed for numpy.random.default_rng; same seed, same run.
            Required so every run is replayable.
        acceptance: "literal" or "metropolis" (see accept_move).
        max_stalls: Give up after this many consecutive rejections.
        stop_rule: Called as stop_rule(accepted, trace) after each accepted
            move; returning True ends the search.
        reporter: Called as reporter(accepted, stalls, best_decoding) after
            each accepted move, where stalls is the number of rejected
            proposals that preceded it.
        initial_key: Starting key (random when None).

    Returns:
        Dict with key, mapping, score, decoded, trace (list of
        (accepted_count, best_score), non-decreasing), accepted, proposals,
        stall_count, stalled, stopped, acceptance, seed.
    """
    if acceptance not in ACCEPTANCE_RULES:
        raise ValueError(f"Unknown acceptance rule '{acceptance}' (expected one of {ACCEPTANCE_RULES})")
    if n_accepted < 0:
        raise ValueError("n_accepted must be >= 0")
    if max_stalls is not None and max_stalls < 1:
        raise ValueError("max_stalls must be >= 1")
    if seed is None:
        raise ValueError("seed is required for a replayable search")

    rng = np.random.default_rng(seed)
    current_key = validate_key(initial_key) if initial_key is not None else random_key(rng)
    current_score = score(decode(ciphertext, current_key), matrix)
    best_key, best_score = current_key, current_score

    accepted = 0
    stall_count = 0
    proposals = 0
    trace: list[tuple[int, float]] = []
    stalled = False
    stopped = False

    while accepted < n_accepted:
        if max_stalls is not None and stall_count >= max_stalls:
            stalled = True
            break

        i, j = rng.choice(N_LETTERS, size=2, replace=False)
        candidate = swap_key(current_key, int(i), int(j))
        candidate_score = score(decode(ciphertext, candidate), matrix)
        u = rng.random()
        proposals += 1

        if not accept_move(candidate_score - current_score, u, acceptance):
            stall_count += 1
            continue

        stalls = stall_count
        current_key, current_score = candidate, candidate_score
        stall_count = 0
        accepted += 1
        if current_score > best_score:
            best_key, best_score = current_key, current_score
            trace.append((accepted, best_score))

        if reporter is not None:
            reporter(accepted, stalls, decode(ciphertext, best_key))
        if stop_rule is not None and stop_rule(accepted, trace):
            stopped = True
            break

    return {
        "key": best_key,
        "mapping": key_to_mapping(best_key),
        "score": best_score,
        "decoded": decode(ciphertext, best_key),
        "trace": trace,
        "accepted": accepted,
        "proposals": proposals,
        "stall_count": stall_count,
        "stalled": stalled,
        "stopped": stopped,
        "acceptance": acceptance,
        "seed": seed,
    }


# ============================================================================
# 6. CORPUS UTILS — Reference text loading
# ============================================================================

_GUTENBERG_START = re.compile(r"^\*{3}\s*START OF (?:THIS|THE) PROJECT GUTENBERG", re.IGNORECASE)
_GUTENBERG_END = re.compile(r"^\*{3}\s*END OF (?:THIS|THE) PROJECT GUTENBERG", re.IGNORECASE)


def iter_gutenberg_lines(filepath: str | Path) -> Iterator[str]:
    """
    Stream the body lines (with terminators) of a Project Gutenberg file.

    Everything up to and including the START marker line is skipped, and
    streaming stops at the END marker line. A file with no START marker is
    yielded from the top.
    """
    with open(filepath, encoding="utf-8", errors="replace") as f:
        preamble: list[str] = []
        for line in f:
            if _GUTENBERG_START.match(line):
                preamble = []
                break
            preamble.append(line)
        for line in itertools.chain(preamble, f):
            if _GUTENBERG_END.match(line):
                return
            yield line


def download_gutenberg(text_id: int, cache_dir: Path = CACHE_DIR) -> Path | None:
    """Download a Gutenberg text, caching locally. Tries multiple URL patterns."""
    cache_dir.mkdir(parents=True, exist_ok=True)
    cache_file = cache_dir / f"pg{text_id}.txt"
    if cache_file.exists() and cache_file.stat().st_size > 100:
        return cache_file

    urls = [
        f"https://www.gutenberg.org/cache/epub/{text_id}/pg{text_id}.txt",
        f"https://www.gutenberg.org/files/{text_id}/{text_id}-0.txt",
        f"https://www.gutenberg.org/files/{text_id}/{text_id}.txt",
    ]
    for url in urls:
        try:
            urllib.request.urlretrieve(url, str(cache_file))
        except (OSError, http.client.HTTPException):
            cache_file.unlink(missing_ok=True)
            continue
        if cache_file.stat().st_size > 100:
            return cache_file
        cache_file.unlink(missing_ok=True)

    return None


def iter_corpus_lines(
    paths: Iterable[str | Path],
    strip_gutenberg: bool = False,
) -> Iterator[str]:
    """
    Yield corpus lines (with terminators) from text files, in order.

    With strip_gutenberg=True only each file's body is yielded, followed by
    a newline so files never run into each other.
    """
    for path in paths:
        if strip_gutenberg:
            yield from iter_gutenberg_lines(path)
            yield "\n"
        else:
            with open(path, encoding="utf-8", errors="replace") as f:
                yield from f


# ============================================================================
# 7. OUTPUT UTILS — Formatting and plots
# ============================================================================

def format_key(key: str) -> str:
    """Two-row cipher/plain rendering of a key."""
    key = validate_key(key)
    return f"  cipher: {LETTERS}\n  plain:  {key}"


def format_trace(trace: Sequence[tuple[int, float]], limit: int = 20) -> str:
    """Tabulate improvement events, eliding the middle of long traces."""
    lines = [f"  {'Accepted':>9} {'Best score':>12}", "  " + "-" * 22]
    rows = list(trace)
    if len(rows) > limit:
        half = limit // 2
        shown = rows[:half] + [None] + rows[-half:]
    else:
        shown = rows
    for row in shown:
        if row is None:
            lines.append(f"  {'...':>9}")
            continue
        accepted, best = row
        lines.append(f"  {accepted:>9} {best:>12.2f}")
    return "\n".join(lines)


def format_decode_preview(decoded: str, width: int = 70) -> str:
    """
    Format a decoded string for display with line wrapping.
    """
    flat = " ".join(decoded.split())
    lines: list[str] = []
    for i in range(0, len(flat), width):
        lines.append(f"  {i:4d}: {flat[i : i + width]}")
    return "\n".join(lines)


def top_transitions(matrix: np.ndarray, n: int = 10) -> list[tuple[str, float]]:
    """Most probable letter-to-letter transitions, as ("TH", p) pairs."""
    flat = [(float(matrix[i][j]), SYMBOLS[i] + SYMBOLS[j])
            for i in range(1, N_SYMBOLS) for j in range(1, N_SYMBOLS)]
    flat.sort(reverse=True)
    return [(bg, p) for p, bg in flat[:n]]


def plot_transition_heatmap(
    matrix: np.ndarray,
    save_path: str | Path | None = None,
) -> None:
    """
    Plot the transition matrix as a heatmap.

    Requires matplotlib (optional dependency).
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        warnings.warn("matplotlib not available; skipping plot")
        return

    labels = ["_"] + list(LETTERS)
    fig, ax = plt.subplots(figsize=(8, 7))
    im = ax.imshow(matrix, cmap="YlOrRd", aspect="auto")
    ax.set_xticks(range(N_SYMBOLS))
    ax.set_yticks(range(N_SYMBOLS))
    ax.set_xticklabels(labels, fontsize=7)
    ax.set_yticklabels(labels, fontsize=7)
    ax.set_xlabel("Next symbol")
    ax.set_ylabel("Current symbol")
    ax.set_title("Bigram Transition Probabilities")
    fig.colorbar(im, ax=ax, shrink=0.8)

    plt.tight_layout()
    if save_path:
        plt.savefig(str(save_path), dpi=150, bbox_inches="tight")
        print(f"Saved: {save_path}")
        plt.close(fig)
    else:
        plt.show()


def plot_trace(
    trace: Sequence[tuple[int, float]],
    save_path: str | Path | None = None,
    true_score: float | None = None,
) -> None:
    """
    Plot best log-likelihood against accepted moves.

    Requires matplotlib (optional dependency).
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        warnings.warn("matplotlib not available; skipping plot")
        return
    if not trace:
        warnings.warn("empty trace; skipping plot")
        return

    xs = [a for a, _ in trace]
    ys = [s for _, s in trace]
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.step(xs, ys, where="post", linewidth=1.0, label="Best score")
    if true_score is not None:
        ax.axhline(true_score, color="green", linestyle="--", alpha=0.6, label="True key")
    ax.set_xlabel("Accepted moves")
    ax.set_ylabel("Log-likelihood")
    ax.set_title("Search Progress")
    ax.legend(fontsize=8)

    plt.tight_layout()
    if save_path:
        plt.savefig(str(save_path), dpi=150, bbox_inches="tight")
        print(f"Saved: {save_path}")
        plt.close(fig)
    else:
        plt.show()


# ============================================================================
# SELF-TEST — Run when executed directly
# ============================================================================

def _self_test() -> None:
    """Build a tiny model from the sample text and run a short search."""
    print("=== decipher.py self-test ===\n")

    matrix = build_transition_matrix([SAMPLE_PLAINTEXT])
    check_matrix(matrix)
    print(f"Matrix: {matrix.shape}, rows sum to 1, min cell {matrix.min():.5f}")
    print("Top transitions: " + ", ".join(f"{bg}={p:.3f}" for bg, p in top_transitions(matrix, 8)))

    assert decode("WKDW", complete_key({"W": "T", "K": "H", "D": "A"})) == "THAT"
    assert decode("", identity_key()) == "" and score("", matrix) == 0.0
    print("Codec checks: PASS\n")

    rng = np.random.default_rng(7)
    true_key = random_key(rng)
    cipher = encode(SAMPLE_PLAINTEXT, true_key)
    result = metropolis_search(cipher, matrix, n_accepted=200, seed=1, max_stalls=5000)
    scores = [s for _, s in result["trace"]]
    assert all(a <= b for a, b in zip(scores, scores[1:]))
    print(f"Search: {result['accepted']} accepted / {result['proposals']} proposals, "
          f"best={result['score']:.2f}, stalled={result['stalled']}")
    print(f"True key score: {score(decode(cipher, true_key), matrix):.2f}")
    print(f"Key accuracy: {key_accuracy(result['key'], true_key, cipher):.1%}")
    print(format_decode_preview(result["decoded"][:210]))

    print("\n=== Self-test complete ===")


if __name__ == "__main__":
    _self_test()
