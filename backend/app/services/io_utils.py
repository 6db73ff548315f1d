from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd


def load_market_dataset(
    csv_path: str | Path,
    parquet_path: Optional[str | Path] = None,
    *,
    columns: Optional[Iterable[str]] = None,
    **csv_kwargs: Any,
) -> pd.DataFrame:
    """Load the market dataset preferring Parquet with CSV fallback.

    Parameters
    ----------
    csv_path:
        Location of the canonical CSV export.
    parquet_path:
        Optional explicit Parquet path. When omitted we look for ``<csv>.parquet``.
    columns:
        Columns to keep. Missing columns raise ``ValueError`` so seeding
        never silently writes empty fields.
    csv_kwargs:
        Additional keyword arguments forwarded to :func:`pandas.read_csv`.

    Text columns are read as strings and stripped of surrounding whitespace;
    missing values become empty strings whichever format was read.
    """

    csv_path = Path(csv_path)
    pq_path = Path(parquet_path) if parquet_path is not None else csv_path.with_suffix(".parquet")
    column_list = list(columns) if columns is not None else None

    if pq_path.exists():
        frame = pd.read_parquet(pq_path)
    elif csv_path.exists():
        csv_kwargs.setdefault("dtype", str)
        csv_kwargs.setdefault("keep_default_na", False)
        frame = pd.read_csv(csv_path, **csv_kwargs)
    else:
        raise FileNotFoundError(f"Dataset not found at {csv_path} or {pq_path}")

    if column_list is not None:
        missing = [col for col in column_list if col not in frame.columns]
        if missing:
            raise ValueError(f"Dataset is missing required columns: {missing}")
        frame = frame[column_list].copy()

    for col in frame.columns:
        if pd.api.types.is_object_dtype(frame[col]) or pd.api.types.is_string_dtype(frame[col]):
            frame[col] = frame[col].fillna("").astype(str).str.strip()
    return frame
