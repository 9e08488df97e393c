"""Loading and saving per-tick sample traces."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

VALUE_COLUMNS = ("value", "raw")


@dataclass(frozen=True)
class SampleTrace:
    """Scalar samples recorded one per captured frame."""

    dataframe: pd.DataFrame
    ticks: np.ndarray
    values: np.ndarray


def load_trace(path: str | Path) -> SampleTrace:
    """Load a sample trace from *path*.

    Parameters
    ----------
    path:
        CSV file with a `value` column (or the `raw` column written by the
        receiver's trace logger) and an optional `tick` column.

    Returns
    -------
    SampleTrace
        Samples ordered by tick. Missing ticks are numbered from zero.
    """

    path = Path(path)
    if not path.exists():  # pragma: no cover - defensive
        raise FileNotFoundError(path)

    df = pd.read_csv(path, comment="#")
    column = next((name for name in VALUE_COLUMNS if name in df.columns), None)
    if column is None:
        raise ValueError(f"Trace needs one of the columns {list(VALUE_COLUMNS)}")

    df = df.copy()
    if "tick" not in df.columns:
        df["tick"] = np.arange(len(df), dtype=int)
    df = df.dropna(subset=[column]).sort_values("tick", kind="mergesort")
    df.reset_index(drop=True, inplace=True)

    return SampleTrace(
        dataframe=df,
        ticks=df["tick"].to_numpy(dtype=int),
        values=df[column].to_numpy(dtype=float),
    )


def save_trace(values: np.ndarray, path: str | Path, ticks: np.ndarray | None = None) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    values = np.asarray(values, dtype=float)
    if ticks is None:
        ticks = np.arange(values.size, dtype=int)
    pd.DataFrame({"tick": ticks, "value": values}).to_csv(path, index=False)
    return path
