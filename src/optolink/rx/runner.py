from __future__ import annotations

import logging
import queue
import signal
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import typer

from .config import ReceiverConfig, load_config
from .frames import Frame, require_cv2
from .linecode import DecodedEvent, EventKind
from .processing import SignalPipeline

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from .plotting import LivePlotter


# half_bit_ticks depends on the capture frame rate; long cut-off sits between
# one and two half-bits
PRESETS: Dict[str, Dict[str, Any]] = {
    "15fps": {"linecode": {"half_bit_ticks": 1, "long_ticks": 2}},
    "30fps": {"linecode": {"half_bit_ticks": 2, "long_ticks": 4}},
    "60fps": {"linecode": {"half_bit_ticks": 4, "long_ticks": 6}},
}


def preset_overrides(preset: str) -> list[str]:
    data = PRESETS[preset]["linecode"]
    return [
        f"linecode.half_bit_ticks={data['half_bit_ticks']}",
        f"linecode.long_ticks={data['long_ticks']}",
    ]


class CaptureError(IOError):
    """Raised inside the capture thread when a source cannot deliver frames."""


@dataclass
class CaptureSettings:
    device: str = "0"
    width: int = 640
    height: int = 480
    fps: float = 0.0
    max_misses: int = 30

    @property
    def is_file(self) -> bool:
        return Path(self.device).is_file()

    def target(self) -> int | str:
        return int(self.device) if self.device.isdigit() else self.device


class CaptureReaderThread(threading.Thread):
    def __init__(
        self,
        settings: CaptureSettings,
        config: ReceiverConfig,
        frame_queue: "queue.Queue[Frame]",
    ) -> None:
        super().__init__(daemon=True)
        self.settings = settings
        self.config = config
        self.queue = frame_queue
        self._stop_event = threading.Event()
        self._capture = None
        self._tick = 0
        self._dropped = 0
        self._not_ready = 0
        self._connections = 0
        self.last_exception: Optional[Exception] = None
        self.finished = threading.Event()
        self._ready_event = threading.Event()
        self._log = logging.getLogger(__name__)

    def run(self) -> None:  # pragma: no cover - exercised via integration-style tests
        initial_delay = max(self.config.host.reconnect_initial_sec, 0.01)
        max_delay = max(self.config.host.reconnect_max_sec, initial_delay)
        backoff = initial_delay
        try:
            while not self._stop_event.is_set():
                try:
                    self._capture = self._open_capture()
                    self._connections += 1
                    if self._connections > 1:
                        self._log.info("Reopened capture %s", self.settings.device)
                    else:
                        self._log.info("Opened capture %s", self.settings.device)
                    self.last_exception = None
                    backoff = initial_delay
                    self._ready_event.set()
                    self._read_frames()
                except CaptureError as exc:
                    self.last_exception = exc
                    self._log.warning("Capture error (%s): %s", self.settings.device, exc)
                except Exception as exc:  # pragma: no cover - defensive
                    self.last_exception = exc
                    self._log.exception("Unexpected error in capture reader")
                finally:
                    self._ready_event.clear()
                    self._release()
                if self._stop_event.is_set() or self.settings.is_file:
                    break
                wait_time = min(backoff, max_delay)
                self._log.info("Reconnecting in %.1fs", wait_time)
                self._stop_event.wait(wait_time)
                backoff = min(backoff * 2, max_delay)
        finally:
            self.finished.set()

    @property
    def source_id(self) -> str:
        return f"{self.settings.device}#{self._connections}"

    def _read_frames(self) -> None:
        misses = 0
        while not self._stop_event.is_set():
            ok, image = self._capture.read()
            if not ok:
                if self.settings.is_file:
                    self._log.info("End of video %s", self.settings.device)
                    self._stop_event.set()
                    return
                misses += 1
                self._not_ready += 1
                if misses >= self.settings.max_misses:
                    raise CaptureError(f"no frame delivered after {misses} reads")
                self._emit(Frame(tick=self._tick, image=None, source=self.source_id))
                continue
            misses = 0
            self._emit(Frame(tick=self._tick, image=image, source=self.source_id))
            self._tick += 1

    def _emit(self, frame: Frame) -> None:
        try:
            self.queue.put(frame, timeout=1.0)
        except queue.Full:
            self._dropped += 1
            self._log.warning("Frame queue full (%d), dropping frame", self.queue.qsize())

    def _open_capture(self):
        cv2 = require_cv2()
        capture = cv2.VideoCapture(self.settings.target())
        if not capture.isOpened():
            capture.release()
            raise CaptureError(f"unable to open {self.settings.device}")
        if not self.settings.is_file:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
            if self.settings.fps > 0:
                capture.set(cv2.CAP_PROP_FPS, self.settings.fps)
        return capture

    def _release(self) -> None:
        if self._capture is not None:
            try:
                self._capture.release()
            except Exception as exc:
                self._log.debug("Error releasing capture: %s", exc)
            self._capture = None

    def wait_ready(self, timeout: float = 2.0) -> bool:
        return self._ready_event.wait(timeout)

    def stop(self) -> None:
        self._stop_event.set()

    def stats(self) -> dict[str, int]:
        return {
            "captured": self._tick,
            "not_ready": self._not_ready,
            "dropped": self._dropped,
            "reconnects": max(self._connections - 1, 0),
        }


class ReceiverHost:
    """Owns the pipeline and feeds it from one capture source at a time."""

    def __init__(
        self,
        settings: CaptureSettings,
        config: ReceiverConfig,
        *,
        devices: Optional[List[str]] = None,
        plotter: Optional["LivePlotter"] = None,
        on_event: Optional[Callable[[DecodedEvent], None]] = None,
    ):
        self.settings = settings
        self.config = config
        self.devices = devices or [settings.device]
        self.plotter = plotter
        self.pipeline = SignalPipeline(config)
        self.pipeline.register_event_callback(on_event or _echo_event)
        if self.plotter:
            self.pipeline.register_callback(self.plotter.on_tick)
            self.pipeline.register_event_callback(self.plotter.on_event)
        self._switch_requests: "queue.Queue[str]" = queue.Queue()
        self._reader: Optional[CaptureReaderThread] = None
        self._frame_queue: Optional["queue.Queue[Frame]"] = None

    def switch_device(self, device: Optional[str] = None) -> None:
        """Request a source switch; safe to call from any thread or signal handler."""
        if device is None:
            current = self.devices.index(self.settings.device) if self.settings.device in self.devices else -1
            device = self.devices[(current + 1) % len(self.devices)]
        self._switch_requests.put(device)

    def run(self) -> None:
        self._start_reader(self.settings)
        processed = 0
        interval_sec = max(float(self.config.host.stats_log_interval), 5.0)
        next_log = time.monotonic() + interval_sec

        def emit_stats() -> None:
            reader_stats = self._reader.stats() if self._reader else {}
            stats = self.pipeline.stats()
            logger.info(
                "activity=%s processed=%d skipped=%d dropped=%d reconnects=%d chars=%d locks=%d bad_bytes=%d",
                self.pipeline.activity().value,
                processed,
                stats.get("skipped", 0),
                reader_stats.get("dropped", 0),
                reader_stats.get("reconnects", 0),
                stats.get("characters", 0),
                stats.get("locks", 0),
                stats.get("dropped", 0),
            )

        try:
            while True:
                self._apply_switch_requests()
                if self._frame_queue is None or self._reader is None:
                    raise RuntimeError("capture reader is not running")
                try:
                    frame = self._frame_queue.get(timeout=1.0)
                except queue.Empty:
                    if self._reader.finished.is_set():
                        break
                    if time.monotonic() >= next_log:
                        emit_stats()
                        next_log = time.monotonic() + interval_sec
                    continue
                self.pipeline.process_frame(frame)
                processed += 1
                if time.monotonic() >= next_log:
                    emit_stats()
                    next_log = time.monotonic() + interval_sec
        except KeyboardInterrupt:
            logger.info("Stopping receiver (Ctrl+C)")
        finally:
            self._stop_reader()
            emit_stats()
            self.pipeline.close()
            if self.plotter:
                self.plotter.close()

    def _start_reader(self, settings: CaptureSettings) -> None:
        self.settings = settings
        self._frame_queue = queue.Queue(maxsize=self.config.host.queue_maxsize)
        self._reader = CaptureReaderThread(settings, self.config, self._frame_queue)
        self._reader.start()

    def _stop_reader(self) -> None:
        if self._reader is not None:
            self._reader.stop()
            self._reader.join(timeout=5)

    def _apply_switch_requests(self) -> None:
        device: Optional[str] = None
        while True:
            try:
                device = self._switch_requests.get_nowait()
            except queue.Empty:
                break
        if device is None:
            return
        logger.info("Switching capture source %s -> %s", self.settings.device, device)
        self._stop_reader()
        self.pipeline.reset()
        self._start_reader(
            CaptureSettings(
                device=device,
                width=self.settings.width,
                height=self.settings.height,
                fps=self.settings.fps,
                max_misses=self.settings.max_misses,
            )
        )


def _echo_event(event: DecodedEvent) -> None:
    if event.kind is EventKind.LOCK:
        typer.echo("\n[LOCK] ", nl=False)
    elif event.kind is EventKind.END:
        typer.echo(" [END]")
    else:
        typer.echo(event.text, nl=False)


app = typer.Typer(add_completion=False, help="Optical link live receiver.")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def devices(
    max_index: int = typer.Option(5, "--max-index", help="Highest camera index to probe."),
):
    """List capture devices that can be opened."""
    cv2 = require_cv2()
    found = 0
    for index in range(max_index + 1):
        capture = cv2.VideoCapture(index)
        try:
            if not capture.isOpened():
                continue
            width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            fps = capture.get(cv2.CAP_PROP_FPS)
            typer.echo(f"{index}: {width}x{height} @ {fps:.1f} fps")
            found += 1
        finally:
            capture.release()
    if not found:
        typer.echo("No capture devices found")
        raise typer.Exit(code=1)


@app.command()
def run(
    device: List[str] = typer.Option(
        ["0"], "--device", "-d", help="Camera index or video file. Repeat to allow switching (SIGUSR1)."
    ),
    width: int = typer.Option(640, "--width", help="Requested capture width."),
    height: int = typer.Option(480, "--height", help="Requested capture height."),
    fps: float = typer.Option(0.0, "--fps", help="Requested capture frame rate (0 = device default)."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to receiver config JSON."),
    preset: Optional[str] = typer.Option(
        None,
        "--preset",
        "-P",
        help="Apply frame-rate preset (15fps|30fps|60fps) before other overrides.",
    ),
    gain: Optional[float] = typer.Option(None, "--gain", help="Digitizer gain (> 0)."),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Schmitt threshold (> 0)."),
    plot: bool = typer.Option(False, "--plot", help="Show realtime Matplotlib scope."),
    plot_snapshot_every: float = typer.Option(0.0, "--plot-snapshot-every", help="Save PNG every N seconds (0=off)."),
    override: Optional[list[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set roi.metric=luma --set linecode.long_ticks=5",
    ),
):
    """Run the live receiver: capture frames, decode, print characters as they arrive."""

    overrides: list[str] = []
    if preset:
        key = preset.lower()
        if key not in PRESETS:
            raise typer.BadParameter(f"Unknown preset '{preset}'. Expected one of {list(PRESETS)}")
        overrides.extend(preset_overrides(key))
    if gain is not None:
        overrides.append(f"digitizer.gain={float(gain)}")
    if threshold is not None:
        overrides.append(f"digitizer.threshold={float(threshold)}")
    overrides.extend(override or [])
    try:
        cfg = load_config(config_path, overrides or None)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid receiver configuration: {exc}") from exc

    plotter = None
    if plot:
        try:
            from .plotting import LivePlotter
        except ImportError as exc:
            raise typer.BadParameter("Matplotlib is required for --plot (pip install .[plot])") from exc
        snapshot_dir = None
        if plot_snapshot_every > 0:
            snapshot_dir = Path(cfg.output_csv).resolve().parent if cfg.output_csv else Path.cwd() / "plot_snapshots"
        plotter = LivePlotter(
            threshold=cfg.digitizer.threshold,
            window=cfg.host.history_size,
            snapshot_every=plot_snapshot_every,
            snapshot_dir=snapshot_dir,
        )
        logger.info("Live plot enabled (gain=%.1f, threshold=%.1f)", cfg.digitizer.gain, cfg.digitizer.threshold)
    if preset:
        logger.info(
            "Applied preset %s (half_bit=%d, long=%d, idle=%d ticks)",
            preset.lower(),
            cfg.linecode.half_bit_ticks,
            cfg.linecode.long_ticks,
            cfg.linecode.idle_ticks,
        )

    settings = CaptureSettings(device=device[0], width=width, height=height, fps=fps)
    host = ReceiverHost(settings, cfg, devices=list(device), plotter=plotter)
    if len(device) > 1 and hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda *_: host.switch_device())
        logger.info("Send SIGUSR1 to cycle capture sources: %s", ", ".join(device))
    try:
        host.run()
    except KeyboardInterrupt:
        logger.info("Stopping receiver (Ctrl+C)")
