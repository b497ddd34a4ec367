"""CSV loader: path or URL -> ordered list of raw row mappings."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

import numpy as np
import pandas as pd

logger = logging.getLogger("uvicorn.error")


class LoadFailure(RuntimeError):
    """Raised when a dataset cannot be fetched or parsed."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Failed to load '{source}': {reason}")
        self.source = source
        self.reason = reason


def _read_csv(source: str, auto_type: bool) -> pd.DataFrame:
    if not auto_type:
        # Every cell as text, header casing untouched.
        return pd.read_csv(source, dtype=str, keep_default_na=False)
    try:
        return pd.read_csv(source, engine="pyarrow")
    except Exception:
        logger.debug("pyarrow engine unavailable for %s; using default parser", source)
        return pd.read_csv(source)


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Rows as dicts; NaN / ±inf / blank text become None."""
    if df.empty:
        return []
    tmp = df.replace([np.inf, -np.inf], np.nan)
    tmp = tmp.astype(object)
    tmp = tmp.where(pd.notna(tmp), None)
    records = tmp.to_dict(orient="records")
    for rec in records:
        for key, val in rec.items():
            if isinstance(val, str) and not val.strip():
                rec[key] = None
            elif isinstance(val, np.generic):
                rec[key] = val.item()
    return records


def load_rows(source: str, *, auto_type: bool = False) -> List[Dict[str, Any]]:
    """Read a comma-separated table into raw rows.

    With ``auto_type`` pandas infers numeric columns; otherwise every cell is
    delivered as text. Either way the aggregators re-validate what they read.
    """
    if not source:
        raise LoadFailure(str(source), "no source given")
    try:
        df = _read_csv(source, auto_type)
    except (OSError, ValueError, pd.errors.ParserError) as e:
        raise LoadFailure(source, str(e)) from e
    except Exception as e:
        # e.g. ImportError for a remote scheme whose filesystem package is missing
        raise LoadFailure(source, f"{type(e).__name__}: {e}") from e
    df.columns = [str(c).replace("\ufeff", "") for c in df.columns]
    rows = _records(df)
    logger.info("Loaded %d rows x %d columns from %s", len(rows), len(df.columns), source)
    return rows


async def fetch_rows(source: str, *, auto_type: bool = False) -> List[Dict[str, Any]]:
    """Async wrapper: parse in a worker thread so the event loop stays free."""
    return await asyncio.to_thread(load_rows, source, auto_type=auto_type)
