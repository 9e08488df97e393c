from __future__ import annotations

import logging
import threading
import time
from collections import deque
from pathlib import Path
from typing import Deque, Optional

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation

from .linecode import DecodedEvent
from .processing import TickRecord

HEADLESS_BACKENDS = {"agg", "pdf", "ps", "svg", "template"}


class LivePlotter:
    """Realtime scope: amplified signal with thresholds above, digital state below."""

    def __init__(
        self,
        *,
        threshold: float,
        window: int = 300,
        refresh_ms: int = 100,
        text_chars: int = 48,
        snapshot_every: float = 0.0,
        snapshot_dir: Optional[Path] = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._threshold = threshold
        self._lock = threading.Lock()
        self._tick: Deque[int] = deque(maxlen=window)
        self._signal: Deque[float] = deque(maxlen=window)
        self._state: Deque[int] = deque(maxlen=window)
        self._text: Deque[str] = deque(maxlen=text_chars)
        self._running = True
        self._snapshot_every = snapshot_every
        self._next_snapshot = time.monotonic() + snapshot_every if snapshot_every > 0 else None
        self._snapshot_dir = snapshot_dir

        self.fig, (self.ax_signal, self.ax_state) = plt.subplots(2, 1, figsize=(11, 6), sharex=True)
        self.fig.suptitle("DECODED: WAITING FOR SIGNAL...")
        self.ax_signal.set_title("Amplified signal")
        self.ax_state.set_title("Digital state")
        self.ax_state.set_xlabel("Tick")
        self.ax_state.set_ylim(-0.2, 1.2)

        self.line_signal, = self.ax_signal.plot([], [], color="tab:green")
        self.line_state, = self.ax_state.plot([], [], color="tab:cyan", drawstyle="steps-post")
        self.line_upper = self.ax_signal.axhline(threshold, color="red", linestyle="--", alpha=0.5)
        self.line_lower = self.ax_signal.axhline(-threshold, color="red", linestyle="--", alpha=0.5)

        self._anim = FuncAnimation(self.fig, self._update_plot, interval=refresh_ms, blit=False, cache_frame_data=False)

        self._thread: Optional[threading.Thread] = None
        if plt.get_backend().lower() in HEADLESS_BACKENDS:
            self._logger.info("Backend %s is non-interactive; scope only saves snapshots", plt.get_backend())
        else:
            self._thread = threading.Thread(target=self._loop, daemon=True)
            self._thread.start()

    def _loop(self) -> None:  # pragma: no cover - GUI loop
        plt.show(block=False)
        while self._running:
            try:
                plt.pause(0.05)
            except Exception:
                break

    def on_tick(self, record: TickRecord) -> None:
        with self._lock:
            self._tick.append(record.tick)
            self._signal.append(record.amplified)
            self._state.append(record.state)
            now = time.monotonic()
            if self._snapshot_every > 0 and self._next_snapshot and now >= self._next_snapshot:
                self._save_snapshot()
                self._next_snapshot = now + self._snapshot_every

    def on_event(self, event: DecodedEvent) -> None:
        with self._lock:
            self._text.extend(event.text)

    def set_threshold(self, threshold: float) -> None:
        with self._lock:
            self._threshold = threshold

    def _save_snapshot(self) -> None:
        if not self._snapshot_dir:
            return
        try:
            self._snapshot_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._logger.error("Unable to create snapshot directory %s: %s", self._snapshot_dir, exc)
            return
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        path = self._snapshot_dir / f"scope_{timestamp}.png"
        try:
            self.fig.savefig(path)
            self._logger.info("Saved scope snapshot to %s", path)
        except Exception as exc:
            self._logger.error("Failed to save snapshot %s: %s", path, exc)

    def _update_plot(self, _frame):  # pragma: no cover - GUI callback
        with self._lock:
            ticks = list(self._tick)
            signal = list(self._signal)
            state = list(self._state)
            text = "".join(self._text)
            threshold = self._threshold
        if not ticks:
            return self.line_signal, self.line_state

        self.line_signal.set_data(ticks, signal)
        self.line_state.set_data(ticks, state)
        self.line_upper.set_ydata([threshold, threshold])
        self.line_lower.set_ydata([-threshold, -threshold])
        xmax = ticks[-1] if ticks[-1] > ticks[0] else ticks[0] + 1
        self.ax_signal.set_xlim(ticks[0], xmax)
        span = max(max(abs(value) for value in signal), threshold) * 1.2
        self.ax_signal.set_ylim(-span, span)
        if text:
            self.fig.suptitle(f"DECODED: {text}")
        return self.line_signal, self.line_state

    def close(self) -> None:
        self._running = False
        plt.close(self.fig)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
