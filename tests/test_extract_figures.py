from __future__ import annotations

import json
from pathlib import Path

from figharvest import extract_figures
from figharvest.capabilities import CapabilityMatrix


def quiet_logging(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_figures, "configure_logging",
                        lambda log_dir, verbose=False: tmp_path / "run.log")


def test_parse_args_defaults():
    args = extract_figures.parse_args(["a.pdf"])
    assert args.inputs == [Path("a.pdf")]
    assert args.vision is False
    assert args.ocr is False
    assert args.output_dir == extract_figures.DEFAULT_OUTPUT_ROOT
    assert extract_figures.parse_args(["a.pdf", "--vision", "--no-vision"]).vision is False


def test_missing_inputs_abort_before_running(monkeypatch, tmp_path):
    quiet_logging(monkeypatch, tmp_path)
    assert extract_figures.main([str(tmp_path / "absent.pdf")]) == 1


def test_run_writes_jsonl_summary(monkeypatch, tmp_path):
    quiet_logging(monkeypatch, tmp_path)
    monkeypatch.setattr(extract_figures, "probe_capabilities", lambda: CapabilityMatrix())
    source = tmp_path / "notes.bin"
    source.write_bytes(b"plain bytes")
    log_dir = tmp_path / "logs"
    code = extract_figures.main([str(source), "--output-dir", str(tmp_path / "out"),
                                 "--log-dir", str(log_dir), "--poll-interval", "0.01"])
    assert code == 0
    rows = [json.loads(line) for path in log_dir.glob("run_*.jsonl")
            for line in path.read_text(encoding="utf-8").splitlines()]
    assert [row["status"] for row in rows] == ["skip"]
