from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

import numpy as np

from .config import RoiConfig

LUMA_WEIGHTS = (0.299, 0.587, 0.114)  # R, G, B


@dataclass(frozen=True)
class Frame:
    """One delivery from a capture source. ``image`` is ``None`` until the source is ready."""

    tick: int
    image: Optional[np.ndarray]
    source: str = "default"

    @property
    def ready(self) -> bool:
        return self.image is not None and self.image.ndim == 3 and self.image.size > 0


@dataclass(frozen=True)
class FrameSample:
    tick: int
    value: float


class SampleExtractor:
    """
    Reduce a frame to one scalar taken over a square region at the frame centre.
    The region is clamped to the frame when the frame is smaller than the ROI.
    """

    def __init__(self, roi: RoiConfig):
        roi.validate()
        self.roi = roi
        order = roi.channel_order
        self._blue = order.index("b")
        self._green = order.index("g")
        self._red = order.index("r")

    def extract(self, frame: Frame) -> Optional[FrameSample]:
        if frame.image is None or not frame.ready:
            return None
        region = self.region(frame.image).astype(float)
        if self.roi.metric == "luma":
            r_w, g_w, b_w = LUMA_WEIGHTS
            metric = (
                r_w * region[..., self._red]
                + g_w * region[..., self._green]
                + b_w * region[..., self._blue]
            )
        else:
            metric = region[..., self._blue] - region[..., self._green]
        return FrameSample(tick=frame.tick, value=float(metric.mean()))

    def region(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        size_y = min(self.roi.size, height)
        size_x = min(self.roi.size, width)
        y0 = (height - size_y) // 2
        x0 = (width - size_x) // 2
        return image[y0 : y0 + size_y, x0 : x0 + size_x, :3]


def iterate_video(path: Path | str, source: str | None = None) -> Iterator[Frame]:
    """Yield frames from a recorded video file, tick-numbered from zero."""
    cv2 = require_cv2()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    capture = cv2.VideoCapture(str(path))
    if not capture.isOpened():
        raise ValueError(f"Unable to open video '{path}'")
    label = source or path.name
    tick = 0
    try:
        while True:
            ok, image = capture.read()
            if not ok:
                break
            yield Frame(tick=tick, image=image, source=label)
            tick += 1
    finally:
        capture.release()
    logging.getLogger(__name__).debug("Read %d frames from %s", tick, path)


def require_cv2() -> Any:
    try:
        import cv2  # type: ignore[import]
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("opencv-python is required for video capture; install optolink[capture]") from exc
    return cv2
