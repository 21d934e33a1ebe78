import io
import os
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import List, Optional

from ..errors import DatasetError

@dataclass(frozen=True)
class DatasetHandle:
    """Portfolio file contents, read once and kept only until submission."""
    filename: str
    content: bytes

    @classmethod
    def from_path(cls, path: str) -> "DatasetHandle":
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise DatasetError(f"Cannot read dataset {path}: {e}") from e
        return cls(filename=os.path.basename(path), content=content)

@dataclass(frozen=True)
class DatasetPreview:
    as_of: Optional[str]
    assets: List[str]
    weights: List[float]

def normalize_weights(vals: np.ndarray) -> np.ndarray:
    vals = np.array(vals, dtype=float)
    if not np.isfinite(vals).all():
        raise DatasetError("Portfolio contains non-numeric values.")
    if np.allclose(vals, 0):
        raise DatasetError("All portfolio values are zero.")
    s = float(np.sum(vals))
    if abs(s - 1.0) < 1e-3:
        w = vals
    else:
        w = np.maximum(vals, 0.0)
        w = w / float(np.sum(w))
    return w

def preview_dataset(handle: DatasetHandle) -> DatasetPreview:
    """
    Parse the portfolio the way the optimizer service will read it.

    Wide format: one row, a date column then one column per asset holding the
    starting weight. The long asset,weight[,date] format is accepted too.
    """
    try:
        df = pd.read_csv(io.BytesIO(handle.content))
    except (ValueError, pd.errors.ParserError) as e:
        raise DatasetError(f"{handle.filename} is not a readable CSV: {e}") from e

    cols_lower = [str(c).lower() for c in df.columns]

    if "asset" in cols_lower and "weight" in cols_lower:
        df.columns = cols_lower
        as_of = None
        if "date" in df.columns:
            df["date"] = pd.to_datetime(df["date"], errors="coerce")
            df = df.dropna(subset=["date"])
            if df.empty:
                raise DatasetError("No rows with a valid date.")
            latest = df["date"].max()
            df = df[df["date"] == latest].copy()
            as_of = str(latest.date())
        assets = df["asset"].astype(str).tolist()
        weights = normalize_weights(pd.to_numeric(df["weight"], errors="coerce").to_numpy(dtype=float))
        return DatasetPreview(as_of, assets, weights.tolist())

    if df.shape[0] < 1 or df.shape[1] < 2:
        raise DatasetError(f"{handle.filename} must be 1 row: date + at least 1 asset column.")

    first = df.columns[0]
    as_of = None
    parsed = pd.to_datetime(pd.Series([df.loc[0, first]]), errors="coerce").iloc[0]
    if not pd.isna(parsed):
        as_of = str(parsed.date())

    assets = [str(c) for c in df.columns[1:]]
    vals = pd.to_numeric(df.loc[0, df.columns[1:]], errors="coerce").to_numpy(dtype=float)
    if np.any(~np.isfinite(vals)):
        bad = [a for a, v in zip(assets, vals) if not np.isfinite(v)]
        raise DatasetError(f"Non-numeric values for assets: {bad}")

    return DatasetPreview(as_of, assets, normalize_weights(vals).tolist())
