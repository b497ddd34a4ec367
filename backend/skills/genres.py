"""
Genre frequency skill.

Splits multi-valued genre cells and ranks the categories for the bar chart.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

import pandas as pd

from core.models import CategoryCount
from core.utils import GENRE_ALIASES, is_blank, resolve_column

logger = logging.getLogger("uvicorn.error")


def split_categories(cell: Any) -> List[str]:
    """``"Fantasy, Drama,"`` -> ``["Fantasy", "Drama"]``; blanks give ``[]``."""
    if is_blank(cell):
        return []
    return [part.strip() for part in str(cell).split(",") if part.strip()]


def aggregate_genres(
    rows: Sequence[Mapping[str, Any]],
    top_n: int = 10,
    *,
    genre_key: Optional[str] = None,
) -> List[CategoryCount]:
    """
    Count genres across rows, rank descending, keep the top ``top_n``.

    Ties keep first-encountered order (stable sort), so the output is
    identical across reruns on the same input.
    """
    if not rows:
        return []
    key = genre_key or resolve_column(rows[0], GENRE_ALIASES)
    if not key:
        logger.debug("No genre column among %s", list(rows[0].keys()))
        return []

    pieces = pd.Series(
        [g for row in rows for g in split_categories((row or {}).get(key))],
        dtype="object",
    )
    if pieces.empty:
        return []

    # first-seen order, then a stable descending sort keeps ties in that order
    counts = pieces.value_counts().reindex(pd.unique(pieces))
    ranked = sorted(counts.items(), key=lambda kv: -int(kv[1]))[: max(0, int(top_n))]
    return [CategoryCount(category=str(g), count=int(n)) for g, n in ranked]
