"""
---
version: 0.1.0
created: 2026-10-17
updated: 2026-10-17
---

phase1_corpus_model.py — Build the bigram transition matrix from reference text.

Downloads (and caches) the Gutenberg reference texts, or reads local corpus
files, counts space/letter transitions in a single pass, smooths and
normalises them, and saves the 27x27 matrix as JSON for phase 2.

Sections:
  1. Gather corpus — cached Gutenberg downloads and/or local files
  2. Build matrix — single pass, or chunked (one chunk per file) with --workers
  3. Report — top transitions, row checks, optional heatmap

Usage:
    python3 phase1_corpus_model.py                          # Gutenberg refs
    python3 phase1_corpus_model.py --corpus a.txt b.txt     # local files
    python3 phase1_corpus_model.py --workers 4 --no-plots
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path

import numpy as np

from decipher import (
    CACHE_DIR, REFERENCE_TEXTS, SYMBOLS,
    build_transition_matrix, build_transition_matrix_chunked,
    check_matrix, download_gutenberg, iter_corpus_lines, iter_gutenberg_lines,
    plot_transition_heatmap, save_matrix, top_transitions,
)

MATRIX_FILE = Path("transition_matrix.json")


# ============================================================================
# 1. GATHER CORPUS
# ============================================================================

def gather_reference_files(cache_dir: Path = CACHE_DIR) -> list[Path]:
    """Download (or reuse cached) reference texts."""
    files: list[Path] = []
    for ref in REFERENCE_TEXTS:
        print(f"  [{ref['id']}] {ref['title']}...", end=" ", flush=True)
        path = download_gutenberg(ref["id"], cache_dir)
        if path is None:
            print("DOWNLOAD FAILED")
            continue
        print(f"OK ({path.stat().st_size:,} bytes)")
        files.append(path)
    return files


# ============================================================================
# 2. BUILD MATRIX
# ============================================================================

def build_matrix(
    gutenberg_files: list[Path],
    local_files: list[Path],
    workers: int = 1,
) -> np.ndarray:
    """Build the transition matrix, chunked by file when workers > 1."""
    if workers > 1:
        chunks = [list(iter_gutenberg_lines(p)) + ["\n"]
                  for p in gutenberg_files]
        chunks += [Path(p).read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
                   + ["\n"] for p in local_files]
        return build_transition_matrix_chunked(chunks, workers=workers)

    def lines():
        yield from iter_corpus_lines(gutenberg_files, strip_gutenberg=True)
        yield from iter_corpus_lines(local_files)

    return build_transition_matrix(lines())


# ============================================================================
# 3. REPORT
# ============================================================================

def print_matrix_summary(matrix: np.ndarray) -> None:
    """Print row checks and the strongest transitions."""
    print("\n" + "=" * 70)
    print("TRANSITION MATRIX")
    print("=" * 70)
    row_sums = matrix.sum(axis=1)
    print(f"  Shape: {matrix.shape}")
    print(f"  Row sums: min={row_sums.min():.12f} max={row_sums.max():.12f}")
    print(f"  Smallest cell: {matrix.min():.2e}")

    print(f"\n  {'Bigram':<8} {'P(next|cur)':>12}")
    print("  " + "-" * 21)
    for bg, p in top_transitions(matrix, 15):
        print(f"  {bg:<8} {p:>12.4f}")

    space_row = matrix[0]
    starters = sorted(range(1, len(SYMBOLS)), key=lambda j: -space_row[j])[:8]
    print("\n  Most likely word starts: " +
          ", ".join(f"{SYMBOLS[j]}={space_row[j]:.3f}" for j in starters))


# ============================================================================
# MAIN
# ============================================================================

def main() -> None:
    parser = argparse.ArgumentParser(description="Build the bigram transition matrix")
    parser.add_argument("--corpus", nargs="*", default=[],
                        help="Local corpus files (plain text)")
    parser.add_argument("--no-gutenberg", action="store_true",
                        help="Skip the Gutenberg reference texts")
    parser.add_argument("--workers", type=int, default=1,
                        help="Processes for chunked counting (default: 1)")
    parser.add_argument("--output", type=str, default=str(MATRIX_FILE),
                        help=f"Matrix JSON path (default: {MATRIX_FILE})")
    parser.add_argument("--no-plots", action="store_true", help="Skip heatmap")
    parser.add_argument("--save-dir", type=str, default=".", help="Directory for plots")
    args = parser.parse_args()

    print("=" * 70)
    print("SECTION 1: GATHER CORPUS")
    print("=" * 70)
    gutenberg_files = [] if args.no_gutenberg else gather_reference_files()
    local_files = [Path(p) for p in args.corpus]
    for p in local_files:
        print(f"  local: {p} ({p.stat().st_size:,} bytes)")
    if not gutenberg_files and not local_files:
        parser.error("no corpus available (downloads failed and no --corpus given)")

    print("\n" + "=" * 70)
    print("SECTION 2: BUILD MATRIX")
    print("=" * 70)
    t0 = time.time()
    matrix = build_matrix(gutenberg_files, local_files, workers=args.workers)
    check_matrix(matrix)
    print(f"  Built in {time.time() - t0:.1f}s")

    save_matrix(matrix, args.output)
    print(f"  Saved matrix to {args.output}")

    print_matrix_summary(matrix)

    if not args.no_plots:
        plot_transition_heatmap(matrix, Path(args.save_dir) / "transition_heatmap.png")


if __name__ == "__main__":
    main()
