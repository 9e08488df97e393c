"""Offline decoding of recorded captures."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, List

import numpy as np
import pandas as pd

from .data import load_trace
from .metrics import DecodeSummary, compute_summary
from .rx.config import ReceiverConfig
from .rx.frames import Frame, iterate_video
from .rx.linecode import DecodedEvent
from .rx.processing import TRACE_FIELDS, SignalPipeline

TRACE_SUFFIXES = {".csv"}


@dataclass(frozen=True)
class DecodeResult:
    events: list[DecodedEvent]
    trace: pd.DataFrame
    summary: DecodeSummary
    config: ReceiverConfig

    @property
    def text(self) -> str:
        return self.summary.text

    def events_frame(self) -> pd.DataFrame:
        rows = [
            {"tick": event.tick, "kind": event.kind.value, "char": event.char or "", "text": event.text}
            for event in self.events
        ]
        return pd.DataFrame(rows, columns=["tick", "kind", "char", "text"])


def run_decode(path: str | Path, config: ReceiverConfig | None = None) -> DecodeResult:
    """Decode a recorded video, or a sample trace when *path* is a CSV file."""

    path = Path(path)
    config = config or ReceiverConfig()
    if path.suffix.lower() in TRACE_SUFFIXES:
        trace = load_trace(path)
        return decode_samples(trace.values, config, ticks=trace.ticks)
    return decode_frames(iterate_video(path), config)


def decode_frames(frames: Iterable[Frame], config: ReceiverConfig) -> DecodeResult:
    pipeline = SignalPipeline(config, record_trace=True)
    try:
        events = pipeline.process(frames)
    finally:
        pipeline.close()
    return _build_result(pipeline, events)


def decode_samples(
    values: Iterable[float],
    config: ReceiverConfig,
    *,
    ticks: Iterable[int] | None = None,
) -> DecodeResult:
    pipeline = SignalPipeline(config, record_trace=True)
    events: List[DecodedEvent] = []
    try:
        if ticks is None:
            for value in values:
                events.extend(pipeline.process_sample(value))
        else:
            for tick, value in zip(ticks, values):
                events.extend(pipeline.process_sample(value, int(tick)))
    finally:
        pipeline.close()
    return _build_result(pipeline, events)


def _build_result(pipeline: SignalPipeline, events: List[DecodedEvent]) -> DecodeResult:
    trace = pd.DataFrame([asdict(record) for record in pipeline.trace], columns=TRACE_FIELDS)
    states = trace["state"].to_numpy(dtype=int) if not trace.empty else np.empty(0, dtype=int)
    summary = compute_summary(
        events,
        states,
        pipeline.stats(),
        long_ticks=pipeline.config.linecode.long_ticks,
    )
    return DecodeResult(events=events, trace=trace, summary=summary, config=pipeline.config)

