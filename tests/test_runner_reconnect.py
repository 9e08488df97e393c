from __future__ import annotations

import logging
import queue
from pathlib import Path

import numpy as np

from optolink.demo import create_demo_frames, demo_config
from optolink.encoding import transmission_levels
from optolink.rx.config import HostRuntime, ReceiverConfig
from optolink.rx.runner import CaptureReaderThread, CaptureSettings, ReceiverHost


class FakeCapture:
    def __init__(self, images: list[np.ndarray], opened: bool = True):
        self._images = images
        self._opened = opened

    def isOpened(self) -> bool:
        return self._opened

    def read(self):
        if self._images:
            return True, self._images.pop(0)
        return False, None

    def set(self, prop, value) -> bool:
        return True

    def release(self) -> None:
        pass


class FakeCv2Module:
    CAP_PROP_FRAME_WIDTH = 3
    CAP_PROP_FRAME_HEIGHT = 4
    CAP_PROP_FPS = 5

    def __init__(self, images: list[np.ndarray], fail_first: bool = True):
        self.calls = 0
        self._images = images
        self._fail_first = fail_first

    def VideoCapture(self, target):
        self.calls += 1
        if self._fail_first and self.calls == 1:
            return FakeCapture([], opened=False)
        # Provide a fresh copy of images for each connection
        return FakeCapture(list(self._images))


def _fast_host_runtime() -> HostRuntime:
    return HostRuntime(
        queue_maxsize=8,
        reconnect_initial_sec=0.01,
        reconnect_max_sec=0.02,
        stats_log_interval=1,
    )


def test_capture_reader_reconnect(monkeypatch):
    image = np.full((40, 40, 3), 128, dtype=np.uint8)
    fake_cv2 = FakeCv2Module([image, image])
    monkeypatch.setattr("optolink.rx.runner.require_cv2", lambda: fake_cv2)

    settings = CaptureSettings(device="0", max_misses=3)
    cfg = ReceiverConfig(host=_fast_host_runtime())

    frame_queue: "queue.Queue" = queue.Queue()
    reader = CaptureReaderThread(settings, cfg, frame_queue)
    reader.start()
    try:
        frame = frame_queue.get(timeout=1.0)
        assert frame.ready
        assert frame.source == "0#1"
        assert fake_cv2.calls >= 2  # initial failure + successful reconnect
    finally:
        reader.stop()
        reader.join(timeout=1.0)
    assert reader.finished.is_set()


def test_capture_reader_reports_missed_frames(monkeypatch):
    fake_cv2 = FakeCv2Module([], fail_first=False)
    monkeypatch.setattr("optolink.rx.runner.require_cv2", lambda: fake_cv2)

    settings = CaptureSettings(device="0", max_misses=3)
    cfg = ReceiverConfig(host=_fast_host_runtime())
    frame_queue: "queue.Queue" = queue.Queue()
    reader = CaptureReaderThread(settings, cfg, frame_queue)
    reader.start()
    try:
        frame = frame_queue.get(timeout=1.0)
        assert not frame.ready
    finally:
        reader.stop()
        reader.join(timeout=1.0)
    assert reader.stats()["not_ready"] >= 1


def test_receiver_host_decodes_video_file(monkeypatch, tmp_path: Path, caplog):
    caplog.set_level(logging.INFO, logger="optolink.rx.runner")
    config = demo_config()
    config.host = _fast_host_runtime()
    levels = transmission_levels(
        "OK",
        half_bit_ticks=config.linecode.half_bit_ticks,
        gap_ticks=config.linecode.idle_ticks + 3,
        carrier_half_bits=64,
    )
    images = [frame.image for frame in create_demo_frames(levels)]
    fake_cv2 = FakeCv2Module(images, fail_first=False)
    monkeypatch.setattr("optolink.rx.runner.require_cv2", lambda: fake_cv2)

    video = tmp_path / "capture.avi"
    video.write_bytes(b"")
    texts: list[str] = []
    host = ReceiverHost(
        CaptureSettings(device=str(video)),
        config,
        on_event=lambda event: texts.append(event.text),
    )
    host.run()

    assert fake_cv2.calls == 1
    assert "".join(texts).endswith("[LOCK]OK[END]")
    assert host.pipeline.stats()["ticks"] == levels.size
    assert "activity=noisy" in caplog.text


def test_switch_device_cycles_sources():
    host = ReceiverHost(CaptureSettings(device="0"), ReceiverConfig(), devices=["0", "1"])
    host.switch_device()
    host.switch_device("cam.mp4")
    assert host._switch_requests.get_nowait() == "1"
    assert host._switch_requests.get_nowait() == "cam.mp4"
