from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence

METRICS = {"blue_green", "luma"}
CHANNEL_ORDERS = {"bgr", "rgb"}


@dataclass
class RoiConfig:
    size: int = 50
    metric: str = "blue_green"  # blue_green | luma
    channel_order: str = "bgr"  # OpenCV delivers BGR

    def validate(self) -> None:
        if self.size <= 0:
            raise ValueError("roi.size must be positive")
        if self.metric not in METRICS:
            raise ValueError(f"Unsupported roi.metric '{self.metric}'")
        if self.channel_order not in CHANNEL_ORDERS:
            raise ValueError(f"Unsupported roi.channel_order '{self.channel_order}'")


@dataclass
class FilterConfig:
    smoothing_window: int = 3
    baseline_alpha: float = 0.95

    def validate(self) -> None:
        if self.smoothing_window < 1:
            raise ValueError("filters.smoothing_window must be >= 1")
        if not 0.0 < self.baseline_alpha < 1.0:
            raise ValueError("filters.baseline_alpha must lie in (0, 1)")


@dataclass
class DigitizerConfig:
    gain: float = 100.0
    threshold: float = 30.0

    def validate(self) -> None:
        if self.gain <= 0:
            raise ValueError("digitizer.gain must be > 0")
        if self.threshold <= 0:
            raise ValueError("digitizer.threshold must be > 0")


@dataclass
class LineCodeConfig:
    half_bit_ticks: int = 2
    long_ticks: int = 4
    idle_ticks: int = 0  # > 0 enables line-break detection

    def validate(self) -> None:
        if self.half_bit_ticks < 1:
            raise ValueError("linecode.half_bit_ticks must be >= 1")
        if self.long_ticks <= 1:
            raise ValueError("linecode.long_ticks must be > 1")
        if self.idle_ticks and self.idle_ticks <= self.long_ticks:
            raise ValueError("linecode.idle_ticks must exceed linecode.long_ticks")


@dataclass
class HostRuntime:
    queue_maxsize: int = 64
    reconnect_initial_sec: float = 0.5
    reconnect_max_sec: float = 5.0
    stats_log_interval: float = 60.0
    history_size: int = 300


@dataclass
class ReceiverConfig:
    roi: RoiConfig = field(default_factory=RoiConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    digitizer: DigitizerConfig = field(default_factory=DigitizerConfig)
    linecode: LineCodeConfig = field(default_factory=LineCodeConfig)
    host: HostRuntime = field(default_factory=HostRuntime)
    output_csv: Path | None = None

    def validate(self) -> "ReceiverConfig":
        self.roi.validate()
        self.filters.validate()
        self.digitizer.validate()
        self.linecode.validate()
        if self.host.history_size < 1:
            raise ValueError("host.history_size must be >= 1")
        return self


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None, overrides: Sequence[str] | None = None) -> ReceiverConfig:
    """
    Load a receiver configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["digitizer.gain=150", "linecode.long_ticks=6"]

    Passing ``None`` as *path* starts from the built-in defaults.
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    return config_from_mapping(merged)


def config_from_mapping(merged: Dict[str, Any]) -> ReceiverConfig:
    roi = merged.get("roi") or {}
    filters = merged.get("filters") or {}
    digitizer = merged.get("digitizer") or {}
    linecode = merged.get("linecode") or {}
    host_data = merged.get("host") or {}
    half_bit = int(linecode.get("half_bit_ticks", 2))
    config = ReceiverConfig(
        roi=RoiConfig(
            size=int(roi.get("size", 50)),
            metric=str(roi.get("metric", "blue_green")).lower(),
            channel_order=str(roi.get("channel_order", "bgr")).lower(),
        ),
        filters=FilterConfig(
            smoothing_window=int(filters.get("smoothing_window", 3)),
            baseline_alpha=float(filters.get("baseline_alpha", 0.95)),
        ),
        digitizer=DigitizerConfig(
            gain=float(digitizer.get("gain", 100.0)),
            threshold=float(digitizer.get("threshold", 30.0)),
        ),
        linecode=LineCodeConfig(
            half_bit_ticks=half_bit,
            long_ticks=int(linecode.get("long_ticks", 2 * half_bit)),
            idle_ticks=int(linecode.get("idle_ticks", 0)),
        ),
        host=HostRuntime(
            queue_maxsize=int(host_data.get("queue_maxsize", 64)),
            reconnect_initial_sec=float(host_data.get("reconnect_initial_sec", 0.5)),
            reconnect_max_sec=float(host_data.get("reconnect_max_sec", 5.0)),
            stats_log_interval=float(host_data.get("stats_log_interval", 60.0)),
            history_size=int(host_data.get("history_size", 300)),
        ),
        output_csv=Path(merged["output_csv"]) if merged.get("output_csv") else None,
    )
    return config.validate()


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
