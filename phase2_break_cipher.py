"""
---
version: 0.1.0
created: 2026-10-17
updated: 2026-10-17
---

phase2_break_cipher.py — Break a substitution cipher with the MCMC key search.

Loads the transition matrix from phase 1 (or builds a small one from the
sample text), takes the ciphertext from a file or encrypts the sample
plaintext under a seeded random key, and runs the Metropolis-Hastings
search. Progress is printed once per accepted move; the best key, its
decoding, the improvement trace and some English-likeness diagnostics are
reported at the end.

Usage:
    python3 phase2_break_cipher.py                            # demo cipher
    python3 phase2_break_cipher.py --cipher-file msg.txt --iterations 5000
    python3 phase2_break_cipher.py --acceptance metropolis --max-stalls 0    # unbounded
    python3 phase2_break_cipher.py --plateau 500 --no-plots
"""

from __future__ import annotations

import argparse
import json
import time
from pathlib import Path

import numpy as np

from decipher import (
    ACCEPTANCE_RULES, DEFAULT_ITERATIONS, DEFAULT_SEED, SAMPLE_PLAINTEXT,
    build_transition_matrix, decode, encode, format_decode_preview,
    format_key, format_trace, index_of_coincidence, key_accuracy,
    letter_frequency_test, load_matrix, metropolis_search, plateau_rule,
    plot_trace, random_key, score,
)

MATRIX_FILE = Path("transition_matrix.json")
RESULT_FILE = Path("search_result.json")
DEFAULT_MAX_STALLS = 20000


def print_progress(every: int = 50, width: int = 60):
    """Reporter that prints one status line every `every` accepted moves."""
    t0 = time.time()

    def report(accepted: int, stalls: int, best_decoded: str) -> None:
        if accepted % every:
            return
        preview = " ".join(best_decoded.split())[:width]
        print(f"  [{accepted:>6}] stalls={stalls:<6} "
              f"{accepted / max(time.time() - t0, 1e-9):6.0f} acc/s  {preview}")

    return report


def load_or_build_matrix(path: Path) -> np.ndarray:
    """Load the phase-1 matrix, falling back to one built from the sample text."""
    if path.exists():
        print(f"  Matrix: {path}")
        return load_matrix(path)
    print(f"  Matrix: {path} not found, building from sample text "
          f"(run phase1_corpus_model.py for a real model)")
    return build_transition_matrix([SAMPLE_PLAINTEXT])


def print_summary(result: dict, ciphertext: str, matrix: np.ndarray,
                  true_key: str | None) -> None:
    """Print the search outcome."""
    print("\n" + "=" * 70)
    print("RESULT")
    print("=" * 70)
    status = "stalled" if result["stalled"] else "stopped by rule" if result["stopped"] else "budget exhausted"
    print(f"  {result['accepted']} accepted / {result['proposals']} proposals ({status})")
    print(f"  Acceptance rule: {result['acceptance']}, seed: {result['seed']}")
    print(f"  Best score: {result['score']:.2f}")
    if true_key is not None:
        true_score = score(decode(ciphertext, true_key), matrix)
        print(f"  True key score: {true_score:.2f}")
        print(f"  Key accuracy (letters present): {key_accuracy(result['key'], true_key, ciphertext):.1%}")

    print("\n  Key:")
    print(format_key(result["key"]))

    print("\n  Improvement trace:")
    print(format_trace(result["trace"]))

    lf = letter_frequency_test(result["decoded"])
    print(f"\n  IC={index_of_coincidence(result['decoded']):.4f}  "
          f"letter chi2={lf['chi2']:.1f} (p={lf['p_value']:.3f})  KL={lf['kl_divergence']:.3f}")

    print("\n  Decoding:")
    print(format_decode_preview(result["decoded"]))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="MCMC substitution cipher breaker")
    parser.add_argument("--cipher-file", type=str, default=None,
                        help="Ciphertext file (default: encrypt the sample text)")
    parser.add_argument("--matrix", type=str, default=str(MATRIX_FILE),
                        help=f"Transition matrix JSON (default: {MATRIX_FILE})")
    parser.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS,
                        help=f"Accepted-move budget (default: {DEFAULT_ITERATIONS})")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Random seed")
    parser.add_argument("--acceptance", choices=ACCEPTANCE_RULES, default="literal",
                        help="Acceptance rule: literal (u < delta) or metropolis (u < exp(delta))")
    parser.add_argument("--max-stalls", type=int, default=DEFAULT_MAX_STALLS,
                        help=f"Stop after this many consecutive rejected proposals "
                             f"(default: {DEFAULT_MAX_STALLS}, 0 = unbounded)")
    parser.add_argument("--plateau", type=int, default=None,
                        help="Stop when the best score is flat for this many accepted moves")
    parser.add_argument("--report-every", type=int, default=50,
                        help="Print progress every N accepted moves")
    parser.add_argument("--no-plots", action="store_true", help="Skip trace plot")
    parser.add_argument("--save-dir", type=str, default=".", help="Directory for output")
    args = parser.parse_args(argv)
    save_dir = Path(args.save_dir)

    print("=" * 70)
    print("MCMC SUBSTITUTION CIPHER BREAKER")
    print("=" * 70)
    matrix = load_or_build_matrix(Path(args.matrix))

    true_key = None
    if args.cipher_file:
        ciphertext = Path(args.cipher_file).read_text(encoding="utf-8", errors="replace")
        print(f"  Ciphertext: {args.cipher_file} ({len(ciphertext):,} chars)")
    else:
        true_key = random_key(np.random.default_rng(args.seed + 1))
        ciphertext = encode(SAMPLE_PLAINTEXT, true_key)
        print(f"  Ciphertext: sample text under random key ({len(ciphertext):,} chars)")
    print(format_decode_preview(ciphertext[:140]))

    print(f"\nSearching ({args.iterations} accepted moves, rule={args.acceptance})...")
    t0 = time.time()
    result = metropolis_search(
        ciphertext, matrix,
        n_accepted=args.iterations,
        seed=args.seed,
        acceptance=args.acceptance,
        max_stalls=args.max_stalls or None,
        stop_rule=plateau_rule(args.plateau) if args.plateau else None,
        reporter=print_progress(args.report_every),
    )
    print(f"Search complete in {time.time() - t0:.1f}s")

    print_summary(result, ciphertext, matrix, true_key)

    out = dict(result)
    out["trace"] = [list(t) for t in result["trace"]]
    if true_key is not None:
        out["true_key"] = true_key
    result_path = save_dir / RESULT_FILE
    with open(result_path, "w") as f:
        json.dump(out, f, indent=2)
    print(f"\nSaved result to {result_path}")

    if not args.no_plots:
        true_score = score(decode(ciphertext, true_key), matrix) if true_key else None
        plot_trace(result["trace"], save_dir / "search_trace.png", true_score)


if __name__ == "__main__":
    main()
