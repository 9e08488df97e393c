from __future__ import annotations

import csv
import enum
import logging
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, Iterable, List, Optional, TextIO

import numpy as np

from .config import ReceiverConfig
from .filters import BaselineTracker, Digitizer, Smoother
from .frames import Frame, FrameSample, SampleExtractor
from .linecode import DecodedEvent, EventKind, LineDecoder, Pulse, PulseClassifier

TRACE_FIELDS = ["tick", "raw", "smoothed", "baseline", "amplified", "state", "pulse", "event"]

# more state flips than this inside the history window count as activity
ACTIVITY_MIN_TRANSITIONS = 20


class SignalActivity(str, enum.Enum):
    NO_SIGNAL = "no_signal"
    NOISY = "noisy"
    LOCKED = "locked"


@dataclass
class TickRecord:
    """Per-tick view of every pipeline stage, used for traces and reports."""

    tick: int
    raw: float
    smoothed: float
    baseline: float
    amplified: float
    state: int
    pulse: str = ""
    event: str = ""


class TraceLogger:
    """Per-tick CSV trace; the file is only created once the first record arrives."""

    def __init__(self, path: Path):
        self.path = path
        self._handle: Optional[csv.DictWriter[str]] = None
        self._file_handle: Optional[TextIO] = None

    def append(self, record: TickRecord) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = self.path.open("w", newline="", encoding="utf-8")
            self._handle = csv.DictWriter(self._file_handle, fieldnames=TRACE_FIELDS)
            self._handle.writeheader()
        self._handle.writerow(asdict(record))
        if self._file_handle is not None:
            self._file_handle.flush()

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._handle = None


class SignalPipeline:
    """
    Runs one tick per delivered frame: extract, smooth, remove the baseline,
    digitize, classify the run and decode. All state belongs to this instance
    and is only touched from the thread calling ``process_frame``.
    """

    def __init__(self, config: ReceiverConfig, *, record_trace: bool = False):
        config.validate()
        self.config = config
        self.extractor = SampleExtractor(config.roi)
        self.smoother = Smoother(config.filters.smoothing_window)
        self.baseline = BaselineTracker(config.filters.baseline_alpha)
        self.digitizer = Digitizer(config.digitizer.threshold)
        self.classifier = PulseClassifier(
            long_ticks=config.linecode.long_ticks,
            idle_ticks=config.linecode.idle_ticks,
        )
        self.decoder = LineDecoder()
        self.logger = TraceLogger(config.output_csv) if config.output_csv else None
        self.record_trace = record_trace
        self.trace: List[TickRecord] = []
        self._callbacks: List[Callable[[TickRecord], None]] = []
        self._event_callbacks: List[Callable[[DecodedEvent], None]] = []
        self._signal_history: Deque[float] = deque(maxlen=config.host.history_size)
        self._state_history: Deque[int] = deque(maxlen=config.host.history_size)
        self._source: Optional[str] = None
        self._next_tick = 0
        self._locked = False
        self._stats: Dict[str, int] = {"ticks": 0, "skipped": 0, "resets": 0}
        self._log = logging.getLogger(__name__)

    def process(self, frames: Iterable[Frame]) -> List[DecodedEvent]:
        events: List[DecodedEvent] = []
        for frame in frames:
            events.extend(self.process_frame(frame))
        return events

    def process_frame(self, frame: Frame) -> List[DecodedEvent]:
        sample = self.extractor.extract(frame)
        if sample is None:
            self._stats["skipped"] += 1
            return []
        if self._source is not None and frame.source != self._source:
            self._log.info("Capture source changed (%s -> %s); resetting decoder", self._source, frame.source)
            self.reset()
        self._source = frame.source
        return self._tick(sample)

    def process_sample(self, value: float, tick: int | None = None) -> List[DecodedEvent]:
        return self._tick(FrameSample(tick=self._next_tick if tick is None else tick, value=float(value)))

    def _tick(self, sample: FrameSample) -> List[DecodedEvent]:
        self._next_tick = sample.tick + 1
        self._stats["ticks"] += 1
        smoothed = self.smoother.update(sample.value)
        ac = self.baseline.update(smoothed)
        amplified = ac * self.config.digitizer.gain
        state = self.digitizer.update(amplified, self.config.digitizer.threshold)
        pulse: Optional[Pulse] = self.classifier.observe(state, sample.tick)
        event = self.decoder.feed(pulse) if pulse is not None else None
        if event is not None and event.kind is EventKind.LOCK:
            self._locked = True
        elif event is not None and event.kind is EventKind.END:
            self._locked = False

        self._signal_history.append(amplified)
        self._state_history.append(state)
        record = TickRecord(
            tick=sample.tick,
            raw=sample.value,
            smoothed=smoothed,
            baseline=float(self.baseline.baseline or 0.0),
            amplified=amplified,
            state=state,
            pulse=f"{pulse.kind.value}:{pulse.level}:{pulse.length}" if pulse else "",
            event=event.text if event else "",
        )
        if self.record_trace:
            self.trace.append(record)
        if self.logger:
            self.logger.append(record)
        for callback in self._callbacks:
            callback(record)

        if event is None:
            return []
        for event_callback in self._event_callbacks:
            event_callback(event)
        return [event]

    def register_callback(self, callback: Callable[[TickRecord], None]) -> None:
        self._callbacks.append(callback)

    def register_event_callback(self, callback: Callable[[DecodedEvent], None]) -> None:
        self._event_callbacks.append(callback)

    def set_gain(self, gain: float) -> None:
        if gain <= 0:
            raise ValueError("gain must be > 0")
        self.config.digitizer.gain = float(gain)

    def set_threshold(self, threshold: float) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be > 0")
        self.config.digitizer.threshold = float(threshold)

    def reset(self) -> None:
        """Drop all per-source state; the next tick starts from scratch."""
        self.smoother.reset()
        self.baseline.reset()
        self.digitizer.reset()
        self.classifier.reset()
        self.decoder.reset()
        self._signal_history.clear()
        self._state_history.clear()
        self._source = None
        self._next_tick = 0
        self._locked = False
        self._stats["resets"] += 1

    def signal_history(self) -> np.ndarray:
        return _read_only(np.fromiter(self._signal_history, dtype=float))

    def state_history(self) -> np.ndarray:
        return _read_only(np.fromiter(self._state_history, dtype=int))

    def activity(self) -> SignalActivity:
        """
        Coarse link status: locked between a LOCK and an END marker, otherwise
        noisy or silent depending on how often the state flipped recently.
        """
        if self._locked:
            return SignalActivity.LOCKED
        states = self.state_history()
        transitions = int(np.count_nonzero(np.diff(states))) if states.size > 1 else 0
        if transitions > ACTIVITY_MIN_TRANSITIONS:
            return SignalActivity.NOISY
        return SignalActivity.NO_SIGNAL

    def stats(self) -> Dict[str, int]:
        stats = dict(self._stats)
        stats.update(self.decoder.stats())
        return stats

    def close(self) -> None:
        if self.logger:
            self.logger.close()


def _read_only(values: np.ndarray) -> np.ndarray:
    values.setflags(write=False)
    return values
