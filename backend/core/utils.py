"""
Shared utility helpers for the aggregation pipeline.

Pure functions without I/O.
"""

from __future__ import annotations

import math
import numbers
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Alias tables
# ---------------------------------------------------------------------------

TITLE_ALIASES: List[str] = ["title", "book_title", "name"]

GENRE_ALIASES: List[str] = ["genres", "genre"]

YEAR_ALIASES: List[str] = [
    "publication_year",
    "published_year",
    "original_publication_year",
    "year",
    "publicationyear",
]

RATING_ALIASES: List[str] = ["average_rating", "avg_rating", "rating", "rating_average"]

# Tooltip lookup on the parallel-coordinates chart uses a slightly different order.
TOOLTIP_RATING_ALIASES: List[str] = ["average_rating", "rating_average", "avg_rating", "rating"]

PREFERRED_DIMENSION_GROUPS: List[List[str]] = [
    ["publication_year", "publicationyear", "published_year", "original_publication_year", "year"],
    ["average_rating", "rating_average", "avg_rating", "rating"],
    ["page_count", "pagecount", "pages"],
    ["ratings_count", "rating_count", "num_ratings", "ratingscount"],
    ["swap_count", "swapcount", "exchange_count", "exchangecount", "swaps"],
    ["popularity_score", "popularityscore", "popularity", "score"],
]


# ---------------------------------------------------------------------------
# Column resolution
# ---------------------------------------------------------------------------

def resolve_column(row: Optional[Mapping[str, Any]], aliases: Sequence[str]) -> Optional[str]:
    """Return the row's actual field name for the first matching alias.

    Matching is case-insensitive and follows alias order, not row-key order,
    so callers can rank synonyms (``average_rating`` before ``rating``).
    """
    if not row:
        return None
    lower_map: Dict[str, str] = {}
    for key in row.keys():
        lower_map.setdefault(str(key).lower(), key)
    for alias in aliases:
        actual = lower_map.get(alias.lower())
        if actual is not None:
            return actual
    return None


def resolve_roles(
    row: Optional[Mapping[str, Any]],
    role_aliases: Mapping[str, Sequence[str]],
) -> Dict[str, Optional[str]]:
    """Resolve several semantic roles against one sample row."""
    return {role: resolve_column(row, aliases) for role, aliases in role_aliases.items()}


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

_NULL_TOKENS = {"n/a", "na", "nan", "none", "null", "-", "--", "—"}

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_THOUSANDS_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")


def coerce_number(val: Any) -> Optional[float]:
    """Read a cell as a finite float; ``None`` marks it invalid.

    Booleans, blanks, null tokens, NaN and infinities are all invalid.
    """
    if val is None or isinstance(val, (bool, np.bool_)):
        return None
    if isinstance(val, numbers.Real):
        try:
            num = float(val)
        except (OverflowError, ValueError):
            return None
        return num if math.isfinite(num) else None
    if not isinstance(val, str):
        return None
    text = val.strip()
    if not text or text.lower() in _NULL_TOKENS:
        return None
    if _THOUSANDS_RE.match(text):
        text = text.replace(",", "")
    if not _NUMBER_RE.match(text):
        return None
    num = float(text)
    return num if math.isfinite(num) else None


def coerce_series(series: pd.Series) -> pd.Series:
    """Coerce a Series cell by cell; invalid cells become NaN."""
    converted = series.map(coerce_number)
    return pd.to_numeric(converted, errors="coerce").astype("float64")


def is_blank(val: Any) -> bool:
    """True for cells that carry no text at all (None, NaN, whitespace)."""
    if val is None:
        return True
    if isinstance(val, float) and math.isnan(val):
        return True
    if val is pd.NA:
        return True
    return isinstance(val, str) and not val.strip()


def rows_frame(rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    """Positional DataFrame view of the rows; index i maps back to rows[i]."""
    return pd.DataFrame.from_records([dict(r or {}) for r in rows]).reset_index(drop=True)


# ---------------------------------------------------------------------------
# Labels & numeric helpers
# ---------------------------------------------------------------------------

def format_label(key: str) -> str:
    """Human axis label: ``average_rating`` / ``pageCount`` -> ``Average Rating`` / ``Page Count``."""
    spaced = str(key).replace("_", " ")
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", spaced).strip()
    return " ".join(w[0].upper() + w[1:] for w in spaced.split() if w)


def population_variance(values: pd.Series) -> float:
    """Mean squared deviation from the mean; 0 for fewer than two values."""
    valid = values.dropna()
    if len(valid) < 2:
        return 0.0
    var = float(valid.var(ddof=0))
    return var if math.isfinite(var) else 0.0
