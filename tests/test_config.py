from __future__ import annotations

from pathlib import Path

import pytest

from optolink.rx.config import ReceiverConfig, load_config


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(
        """
        {
          "roi": {"size": 40, "metric": "luma"},
          "filters": {"smoothing_window": 5, "baseline_alpha": 0.9},
          "digitizer": {"gain": 80, "threshold": 25},
          "linecode": {"half_bit_ticks": 3}
        }
        """,
        encoding="utf-8",
    )
    cfg = load_config(cfg_path, overrides=["digitizer.gain=150", "roi.metric=blue_green"])
    assert isinstance(cfg, ReceiverConfig)
    assert cfg.roi.size == 40
    assert cfg.roi.metric == "blue_green"
    assert cfg.filters.smoothing_window == 5
    assert cfg.digitizer.gain == 150.0
    assert cfg.digitizer.threshold == 25.0
    assert cfg.linecode.long_ticks == 6
    assert cfg.linecode.idle_ticks == 0


def test_defaults_without_file() -> None:
    cfg = load_config(None)
    assert cfg.roi.size == 50
    assert cfg.filters.smoothing_window == 3
    assert cfg.filters.baseline_alpha == 0.95
    assert cfg.digitizer.gain == 100.0
    assert cfg.digitizer.threshold == 30.0
    assert (cfg.linecode.half_bit_ticks, cfg.linecode.long_ticks) == (2, 4)
    assert cfg.output_csv is None


def test_shipped_receiver_config_loads() -> None:
    cfg = load_config(Path(__file__).resolve().parents[1] / "receiver" / "config.json")
    assert cfg.validate() is cfg


@pytest.mark.parametrize(
    "override",
    [
        "digitizer.threshold=0",
        "digitizer.gain=-1",
        "filters.baseline_alpha=1.0",
        "filters.smoothing_window=0",
        "roi.metric=hue",
        "linecode.long_ticks=1",
        "linecode.idle_ticks=3",
    ],
)
def test_invalid_values_are_rejected(override: str) -> None:
    with pytest.raises(ValueError):
        load_config(None, [override])


def test_malformed_override_is_rejected() -> None:
    with pytest.raises(ValueError):
        load_config(None, ["digitizer.gain"])


def test_idle_detection_is_opt_in() -> None:
    assert load_config(None).linecode.idle_ticks == 0
    cfg = load_config(None, ["linecode.idle_ticks=12"])
    assert cfg.linecode.idle_ticks == 12
