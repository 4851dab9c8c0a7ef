"""Significance of compartment switches between conditions.

For a pair of conditions (condition.1 < condition.2) every position
present in both gets a *concordance difference*: the median, over all
pairs of one condition.1 replicate and one condition.2 replicate, of
the absolute difference of their concordances.

Positions keeping their A/B label form the null.  Within each
chromosome × condition-pair group, a switching position's p-value is
the fraction of (strictly positive) null differences that exceed its
own, i.e. ``1 − ECDF_null(d)``.  P-values are then Benjamini–Hochberg
adjusted per group.

A group without switching positions contributes no rows.  A group whose
null is empty cannot be tested; its switching positions are reported
with NaN p-values and a warning.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Any, List, Optional, Sequence

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

logger = logging.getLogger(__name__)

__all__ = [
    "DIFFERENCE_COLUMNS",
    "A_TO_B",
    "B_TO_A",
    "concordance_differences",
    "empirical_pvalues",
    "adjust_pvalues",
    "find_differences",
    "significant",
]

DIFFERENCE_COLUMNS = ("chromosome", "index", "condition.1", "condition.2",
                      "pvalue", "pvalue.adjusted", "direction")

A_TO_B = "A→B"
B_TO_A = "B→A"


# ═══════════════════════════════════════════════════════════════════
# Statistics
# ═══════════════════════════════════════════════════════════════════

def empirical_pvalues(null: Sequence[float], values: Sequence[float]) -> np.ndarray:
    """Upper-tail p-values of *values* against the positive part of *null*.

    Returns NaN for every value when the null has no positive entry.
    """
    values = np.asarray(values, dtype=np.float64)
    null = np.asarray(null, dtype=np.float64)
    null = np.sort(null[null > 0])
    if null.size == 0:
        return np.full(values.shape, np.nan)
    ecdf = np.searchsorted(null, values, side="right") / null.size
    return np.clip(1.0 - ecdf, 0.0, 1.0)


def adjust_pvalues(pvalues: Sequence[float]) -> np.ndarray:
    """Benjamini–Hochberg adjustment; NaN entries are left out and kept NaN."""
    p = np.asarray(pvalues, dtype=np.float64)
    adjusted = np.full(p.shape, np.nan)
    ok = np.isfinite(p)
    if ok.any():
        adjusted[ok] = multipletests(p[ok], method="fdr_bh")[1]
    return np.clip(adjusted, 0.0, 1.0)


def concordance_differences(
    concordances: pd.DataFrame, condition_1: Any, condition_2: Any,
) -> pd.DataFrame:
    """Median absolute concordance difference per shared position.

    Returns
    -------
    DataFrame
        ``chromosome, index, difference`` for positions with at least one
        replicate in each condition.
    """
    keys = ["chromosome", "index"]
    first = concordances.loc[concordances["condition"] == condition_1,
                             keys + ["concordance"]]
    second = concordances.loc[concordances["condition"] == condition_2,
                              keys + ["concordance"]]
    # Inner merge on position = replicate cross product, shared positions only.
    pairs = first.merge(second, on=keys, suffixes=(".1", ".2"))
    pairs["difference"] = (pairs["concordance.1"] - pairs["concordance.2"]).abs()
    return (pairs.groupby(keys, sort=True)["difference"].median()
            .reset_index())


# ═══════════════════════════════════════════════════════════════════
# Switch detection
# ═══════════════════════════════════════════════════════════════════

def find_differences(
    compartments: pd.DataFrame,
    concordances: pd.DataFrame,
    conditions: Optional[Sequence[Any]] = None,
) -> pd.DataFrame:
    """Test every switching position of every condition pair.

    Parameters
    ----------
    compartments : DataFrame
        ``chromosome, index, condition, compartment`` with A/B labels.
    concordances : DataFrame
        ``chromosome, index, condition, replicate, concordance``.
    conditions : sequence, optional
        Conditions to compare.  Defaults to all, sorted.

    Returns
    -------
    DataFrame
        Columns :data:`DIFFERENCE_COLUMNS`, one row per switching
        position and pair.  Empty (with these columns) when nothing
        switches.
    """
    if compartments.empty or concordances.empty:
        return _empty()
    if conditions is None:
        conditions = sorted(pd.unique(compartments["condition"]))
    frames: List[pd.DataFrame] = []
    for condition_1, condition_2 in combinations(sorted(conditions), 2):
        pair = _test_pair(compartments, concordances, condition_1, condition_2)
        if not pair.empty:
            frames.append(pair)
    if not frames:
        return _empty()
    return pd.concat(frames, ignore_index=True)[list(DIFFERENCE_COLUMNS)]


def _test_pair(compartments, concordances, condition_1, condition_2):
    keys = ["chromosome", "index"]
    diffs = concordance_differences(concordances, condition_1, condition_2)
    labels = (
        compartments.loc[compartments["condition"] == condition_1,
                         keys + ["compartment"]]
        .merge(compartments.loc[compartments["condition"] == condition_2,
                                keys + ["compartment"]],
               on=keys, suffixes=(".1", ".2"))
    )
    diffs = diffs.merge(labels, on=keys, how="inner")
    if diffs.empty:
        return _empty()
    diffs["switch"] = diffs["compartment.1"] != diffs["compartment.2"]

    frames = []
    for chromosome, group in diffs.groupby("chromosome", sort=True):
        switching = group[group["switch"]]
        if switching.empty:
            continue
        null = group.loc[~group["switch"], "difference"].to_numpy()
        pvalues = empirical_pvalues(null, switching["difference"].to_numpy())
        if np.all(np.isnan(pvalues)):
            logger.warning(
                "Chromosome %s, conditions %s/%s: no non-switching position "
                "with a positive difference; p-values undefined",
                chromosome, condition_1, condition_2)
        frames.append(pd.DataFrame({
            "chromosome": chromosome,
            "index": switching["index"].to_numpy(),
            "condition.1": condition_1,
            "condition.2": condition_2,
            "pvalue": pvalues,
            "pvalue.adjusted": adjust_pvalues(pvalues),
            "direction": np.where(switching["compartment.1"] == "A",
                                  A_TO_B, B_TO_A),
        }))
    if not frames:
        return _empty()
    return pd.concat(frames, ignore_index=True)


def _empty() -> pd.DataFrame:
    return pd.DataFrame(columns=list(DIFFERENCE_COLUMNS))


def significant(differences: pd.DataFrame, threshold: float = 0.05) -> pd.DataFrame:
    """Rows whose adjusted p-value is at most *threshold*."""
    keep = differences["pvalue.adjusted"].astype(float) <= threshold
    return differences[keep].reset_index(drop=True)
