"""Report writers for decode results."""
from __future__ import annotations

import math
from pathlib import Path

import pandas as pd

from .metrics import DecodeSummary
from .pipeline import DecodeResult


def export_results(
    result: DecodeResult,
    output_dir: Path,
    *,
    figure_path: Path | None = None,
    input_path: Path | None = None,
) -> None:
    """Persist events, per-tick trace, metrics and a markdown report to *output_dir*."""

    output_dir.mkdir(parents=True, exist_ok=True)
    result.events_frame().to_csv(output_dir / "events.csv", index=False)
    result.trace.to_csv(output_dir / "trace.csv", index=False)
    _write_metrics_csv(result.summary, output_dir)
    _write_report_md(result, output_dir, figure_path=figure_path, input_path=input_path)


def _write_metrics_csv(summary: DecodeSummary, output_dir: Path) -> None:
    runs = summary.runs
    rows: list[dict[str, object]] = [
        {"metric": "ticks", "value": summary.ticks},
        {"metric": "characters", "value": summary.characters},
        {"metric": "locks", "value": summary.locks},
        {"metric": "ends", "value": summary.ends},
        {"metric": "dropped_bytes", "value": summary.dropped},
        {"metric": "line_breaks", "value": summary.breaks},
        {"metric": "runs", "value": runs.count},
        {"metric": "short_runs", "value": runs.short_count},
        {"metric": "long_runs", "value": runs.long_count},
        {"metric": "short_median_ticks", "value": runs.short_median},
        {"metric": "long_median_ticks", "value": runs.long_median},
        {"metric": "estimated_unit_ticks", "value": runs.estimated_unit},
    ]
    pd.DataFrame(rows).to_csv(output_dir / "metrics.csv", index=False)


def _fmt(value: float | int | None) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "n/a"
    return f"{value:.4g}"


def _write_report_md(
    result: DecodeResult,
    output_dir: Path,
    *,
    figure_path: Path | None,
    input_path: Path | None,
) -> None:
    summary = result.summary
    config = result.config
    lines: list[str] = []
    lines.append("# Optical Link Decode Report")
    if input_path is not None:
        lines.append(f"*Input file:* `{input_path}`  ")
    lines.append(f"*Ticks:* {summary.ticks}  ")
    lines.append(f"*ROI:* {config.roi.size}×{config.roi.size} ({config.roi.metric})  ")
    lines.append(
        f"*Gain / threshold:* {config.digitizer.gain:g} / {config.digitizer.threshold:g}  "
    )
    lines.append(
        f"*Half-bit / long / idle (ticks):* {config.linecode.half_bit_ticks} / "
        f"{config.linecode.long_ticks} / {config.linecode.idle_ticks}  "
    )
    lines.append("")

    lines.append("## Decoded text")
    lines.append("```")
    lines.append(summary.text)
    lines.append("```")
    lines.append("")

    lines.append("## Events")
    lines.append("| Kind | Count |")
    lines.append("| --- | ---: |")
    lines.append(f"| Characters | {summary.characters} |")
    lines.append(f"| Lock markers | {summary.locks} |")
    lines.append(f"| End markers | {summary.ends} |")
    lines.append(f"| Dropped bytes | {summary.dropped} |")
    lines.append(f"| Line breaks | {summary.breaks} |")
    lines.append("")

    runs = summary.runs
    lines.append("## Pulse runs")
    lines.append("| Class | Count | Median (ticks) |")
    lines.append("| --- | ---: | ---: |")
    lines.append(f"| Short | {runs.short_count} | {_fmt(runs.short_median)} |")
    lines.append(f"| Long | {runs.long_count} | {_fmt(runs.long_median)} |")
    lines.append("")

    if figure_path is not None:
        lines.append(f"![Scope]({figure_path.name})")
        lines.append("")

    lines.append("### Notes")
    lines.append(
        f"- Estimated half-bit width from run statistics: {_fmt(runs.estimated_unit)} ticks "
        f"(configured: {config.linecode.half_bit_ticks})."
    )
    lines.append("- Decoding always uses the configured long cut-off; the estimate is advisory.")

    (output_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")
