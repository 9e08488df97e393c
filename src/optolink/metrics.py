"""Run-length statistics and decode summaries."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from .rx.linecode import DecodedEvent, EventKind


@dataclass(frozen=True)
class RunStatistics:
    count: int
    short_count: int
    long_count: int
    short_median: float
    long_median: float
    estimated_unit: Optional[int]


@dataclass(frozen=True)
class DecodeSummary:
    ticks: int
    text: str
    characters: int
    locks: int
    ends: int
    dropped: int
    breaks: int
    runs: RunStatistics


def run_lengths(states: Sequence[int] | np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return (levels, lengths) of the runs in a digital state series."""
    values = np.asarray(states, dtype=int)
    if values.size == 0:
        return np.empty(0, dtype=int), np.empty(0, dtype=int)
    edges = np.flatnonzero(np.diff(values)) + 1
    starts = np.concatenate(([0], edges))
    ends = np.concatenate((edges, [values.size]))
    return values[starts], ends - starts


def estimate_unit(lengths: Sequence[int] | np.ndarray, min_length: int = 2, min_pulses: int = 10) -> Optional[int]:
    """
    Estimate the half-bit width from observed run lengths.

    Runs shorter than *min_length* are treated as glitches. The lower third of
    the sorted widths is taken so the estimate leans towards half-bit pulses.
    This is a diagnostic only; decoding always uses the configured cut-off.
    """
    widths = np.sort(np.asarray(lengths, dtype=int))
    widths = widths[widths >= min_length]
    if widths.size < min_pulses:
        return None
    return int(max(widths[widths.size // 3], min_length))


def compute_run_statistics(states: Sequence[int] | np.ndarray, long_ticks: int) -> RunStatistics:
    _, lengths = run_lengths(states)
    # first and last runs are cut by the edges of the capture
    inner = lengths[1:-1] if lengths.size > 2 else np.empty(0, dtype=int)
    short = inner[inner < long_ticks]
    long = inner[inner >= long_ticks]
    return RunStatistics(
        count=int(inner.size),
        short_count=int(short.size),
        long_count=int(long.size),
        short_median=float(np.median(short)) if short.size else float("nan"),
        long_median=float(np.median(long)) if long.size else float("nan"),
        estimated_unit=estimate_unit(inner),
    )


def compute_summary(
    events: Sequence[DecodedEvent],
    states: Sequence[int] | np.ndarray,
    stats: Dict[str, int],
    long_ticks: int,
) -> DecodeSummary:
    text = "".join(event.char or "" for event in events if event.kind is EventKind.CHARACTER)
    return DecodeSummary(
        ticks=int(len(states)),
        text=text,
        characters=sum(1 for event in events if event.kind is EventKind.CHARACTER),
        locks=sum(1 for event in events if event.kind is EventKind.LOCK),
        ends=sum(1 for event in events if event.kind is EventKind.END),
        dropped=int(stats.get("dropped", 0)),
        breaks=int(stats.get("breaks", 0)),
        runs=compute_run_statistics(states, long_ticks),
    )
