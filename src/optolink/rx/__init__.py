"""
Receive-side signal chain for optical links.

The subpackage exposes configuration models, frame sampling, the filter and
line-code stages, and the orchestration used by the live receiver. Each stage is
a small stateful object so the offline tools and the tests drive exactly the
same code as the capture loop.
"""

from .config import (
    DigitizerConfig,
    FilterConfig,
    HostRuntime,
    LineCodeConfig,
    ReceiverConfig,
    RoiConfig,
    load_config,
)
from .filters import BaselineTracker, Digitizer, Smoother
from .frames import Frame, FrameSample, SampleExtractor
from .linecode import (
    DecodedEvent,
    EventKind,
    LineDecoder,
    Pulse,
    PulseClassifier,
    PulseKind,
)
from .processing import SignalActivity, SignalPipeline, TickRecord

__all__ = [
    "DigitizerConfig",
    "FilterConfig",
    "HostRuntime",
    "LineCodeConfig",
    "ReceiverConfig",
    "RoiConfig",
    "load_config",
    "BaselineTracker",
    "Digitizer",
    "Smoother",
    "Frame",
    "FrameSample",
    "SampleExtractor",
    "DecodedEvent",
    "EventKind",
    "LineDecoder",
    "Pulse",
    "PulseClassifier",
    "PulseKind",
    "SignalActivity",
    "SignalPipeline",
    "TickRecord",
]
