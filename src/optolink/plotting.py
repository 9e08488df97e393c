"""Plotting helpers for decode results."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np

from .metrics import run_lengths
from .pipeline import DecodeResult


def generate_plots(result: DecodeResult, output_dir: Path) -> Path:
    plt = _require_matplotlib()
    output_dir.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(3, 1, figsize=(14, 9))

    _plot_scope(result, axes[0])
    _plot_digital(result, axes[1])
    _plot_run_histogram(result, axes[2])

    fig.tight_layout()
    out_path = output_dir / "scope.png"
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def _plot_scope(result: DecodeResult, ax) -> None:
    df = result.trace
    threshold = result.config.digitizer.threshold
    ax.plot(df["tick"], df["amplified"], color="tab:green", linewidth=1.0, label="amplified AC")
    ax.axhline(threshold, color="red", linestyle="--", linewidth=0.8, label="±threshold")
    ax.axhline(-threshold, color="red", linestyle="--", linewidth=0.8)
    ax.axhline(0.0, color="black", linewidth=0.5)
    ax.set_title("Amplified signal")
    ax.set_xlabel("Tick")
    ax.set_ylabel("Gain × (sample − baseline)")
    ax.legend(loc="upper right")


def _plot_digital(result: DecodeResult, ax) -> None:
    df = result.trace
    ax.step(df["tick"], df["state"], where="post", color="tab:cyan", linewidth=1.2)
    for event in result.events:
        ax.annotate(
            event.text,
            xy=(event.tick, 1.05),
            ha="center",
            fontsize=7,
            color="navy",
        )
    ax.set_ylim(-0.2, 1.3)
    ax.set_title("Digital state and decoded events")
    ax.set_xlabel("Tick")
    ax.set_yticks([0, 1])


def _plot_run_histogram(result: DecodeResult, ax) -> None:
    _, lengths = run_lengths(result.trace["state"].to_numpy(dtype=int))
    inner = lengths[1:-1] if lengths.size > 2 else np.empty(0, dtype=int)
    long_ticks = result.config.linecode.long_ticks
    if inner.size:
        bins = np.arange(0.5, inner.max() + 1.5, 1.0)
        ax.hist(inner, bins=bins, color="tab:blue", alpha=0.8)
    ax.axvline(long_ticks - 0.5, color="red", linestyle="--", label=f"long cut-off ({long_ticks})")
    ax.set_title("Run-length distribution")
    ax.set_xlabel("Run length (ticks)")
    ax.set_ylabel("Count")
    ax.legend(loc="upper right")


def _require_matplotlib() -> Any:
    from pathlib import Path as _Path

    home_cache = _Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install optolink[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib backend unavailable: {exc}") from exc
    return plt
