from __future__ import annotations

import json

import phase2_break_cipher
from decipher import DEFAULT_ITERATIONS


def test_demo_run_with_default_flags_terminates(tmp_path, capsys):
    phase2_break_cipher.main([
        "--matrix", str(tmp_path / "missing.json"),
        "--save-dir", str(tmp_path),
        "--no-plots",
        "--report-every", "1000",
    ])
    result = json.loads((tmp_path / "search_result.json").read_text())
    assert result["stalled"] or result["accepted"] == DEFAULT_ITERATIONS
    if result["stalled"]:
        assert result["stall_count"] == phase2_break_cipher.DEFAULT_MAX_STALLS
    assert result["true_key"]
    assert "RESULT" in capsys.readouterr().out


def test_zero_max_stalls_means_unbounded(tmp_path):
    phase2_break_cipher.main([
        "--matrix", str(tmp_path / "missing.json"),
        "--save-dir", str(tmp_path),
        "--no-plots",
        "--iterations", "3",
        "--max-stalls", "0",
    ])
    result = json.loads((tmp_path / "search_result.json").read_text())
    assert result["accepted"] == 3
    assert result["stalled"] is False
