from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from optolink.data import load_trace, save_trace
from optolink.demo import run_demo_decode
from optolink.encoding import transmission_levels
from optolink.pipeline import run_decode
from optolink.reporting import export_results
from optolink.rx.config import load_config
from optolink.rx.linecode import EventKind

CLEAN_OVERRIDES = ["filters.smoothing_window=1", "linecode.idle_ticks=16"]


def _trace_csv(tmp_path: Path, text: str) -> Path:
    values = transmission_levels(text, half_bit_ticks=2, gap_ticks=20) * 10.0 + 35.0
    return save_trace(values, tmp_path / "samples.csv")


def test_demo_capture_decodes_message() -> None:
    result = run_demo_decode("HI", repeats=2)
    assert "HI" in result.text
    assert result.summary.locks >= 1
    assert result.summary.ends >= 1
    assert len(result.trace) == result.summary.ticks
    assert result.summary.runs.estimated_unit is not None


def test_trace_csv_decodes_exactly(tmp_path: Path) -> None:
    csv_path = _trace_csv(tmp_path, "Py 3!")
    result = run_decode(csv_path, load_config(None, CLEAN_OVERRIDES))
    assert result.text == "Py 3!"
    kinds = [event.kind for event in result.events]
    assert kinds[0] is EventKind.LOCK
    assert kinds[-1] is EventKind.END
    events = result.events_frame()
    assert list(events.columns) == ["tick", "kind", "char", "text"]
    assert "".join(events.loc[events["kind"] == "character", "char"]) == "Py 3!"


def test_load_trace_accepts_raw_column(tmp_path: Path) -> None:
    path = tmp_path / "trace.csv"
    pd.DataFrame({"tick": [2, 0, 1], "raw": [3.0, 1.0, 2.0]}).to_csv(path, index=False)
    trace = load_trace(path)
    assert trace.ticks.tolist() == [0, 1, 2]
    assert trace.values.tolist() == [1.0, 2.0, 3.0]

    bad = tmp_path / "bad.csv"
    pd.DataFrame({"sample": [1.0]}).to_csv(bad, index=False)
    with pytest.raises(ValueError):
        load_trace(bad)


def test_export_results_writes_reports(tmp_path: Path) -> None:
    csv_path = _trace_csv(tmp_path, "ok")
    result = run_decode(csv_path, load_config(None, CLEAN_OVERRIDES))
    out_dir = tmp_path / "report"
    export_results(result, out_dir, input_path=csv_path)

    for name in ("events.csv", "trace.csv", "metrics.csv", "report.md"):
        assert (out_dir / name).exists()
    metrics = pd.read_csv(out_dir / "metrics.csv").set_index("metric")["value"]
    assert metrics["characters"] == 2
    assert metrics["locks"] == 1
    report = (out_dir / "report.md").read_text(encoding="utf-8")
    assert "ok" in report
    assert str(csv_path) in report
    trace = pd.read_csv(out_dir / "trace.csv")
    assert np.isclose(trace["raw"].iloc[0], 35.0)


def test_generate_plots_writes_scope(tmp_path: Path) -> None:
    pytest.importorskip("matplotlib")
    from optolink.plotting import generate_plots

    result = run_decode(_trace_csv(tmp_path, "A"), load_config(None, CLEAN_OVERRIDES))
    figure = generate_plots(result, tmp_path / "plots")
    assert figure.name == "scope.png"
    assert figure.stat().st_size > 0
