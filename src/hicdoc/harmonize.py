"""Cross-condition label harmonization.

Each unit is clustered on its own, so cluster 1 in one condition may be
cluster 2 in another.  For every chromosome the smallest condition is
taken as reference and every other condition is matched to it: the
centroid pairing (identity or swapped) with the smaller total euclidean
distance to the reference centroids wins, identity on ties.

A swap relabels that unit everywhere at once: compartments, distances
and centroids exchange ids 1 ↔ 2 and concordance changes sign, since
concordance is measured from centroid 1 towards centroid 2.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import HarmonizationGap
from .tables import ClusterTables, centroid_matrix

logger = logging.getLogger(__name__)

__all__ = [
    "HarmonizedTables",
    "swap_needed",
    "harmonize",
    "relabel",
]


@dataclass(frozen=True, eq=False)
class HarmonizedTables:
    """Clustering tables with cluster ids consistent per chromosome.

    Attributes
    ----------
    tables : ClusterTables
    references : dict
        ``{chromosome: reference condition}``.
    swapped : tuple of (chromosome, condition)
        Units whose ids were exchanged.
    gaps : tuple of HarmonizationGap
        Chromosomes that could not be harmonized (no clustered condition).
    """

    tables: ClusterTables
    references: Dict[Any, Any]
    swapped: Tuple[Tuple[Any, Any], ...]
    gaps: Tuple[HarmonizationGap, ...] = ()

    def summary(self) -> str:
        return (
            f"HarmonizedTables({len(self.references)} chromosomes, "
            f"{len(self.swapped)} swapped units, {len(self.gaps)} gaps)"
        )


def swap_needed(centroids: np.ndarray, reference: np.ndarray) -> bool:
    """True if pairing (c1, c2) with (r2, r1) is strictly closer."""
    c = np.asarray(centroids, dtype=np.float64)
    r = np.asarray(reference, dtype=np.float64)
    identity = np.linalg.norm(c[0] - r[0]) + np.linalg.norm(c[1] - r[1])
    crossed = np.linalg.norm(c[0] - r[1]) + np.linalg.norm(c[1] - r[0])
    return bool(crossed < identity)


def harmonize(
    tables: ClusterTables,
    chromosomes: Optional[Sequence[Any]] = None,
) -> HarmonizedTables:
    """Align cluster ids of every condition to its chromosome's reference.

    Parameters
    ----------
    tables : ClusterTables
        Merged clustering output (numeric compartment ids).
    chromosomes : sequence, optional
        Chromosomes expected downstream.  Any of them without a
        clustered condition is reported as a gap.

    Returns
    -------
    HarmonizedTables
        New tables; *tables* is left untouched.  Running this again on
        the result swaps nothing.
    """
    centroids = tables.centroids
    references: Dict[Any, Any] = {}
    swaps = []
    for chromosome in tables.chromosomes:
        conditions = tables.conditions_of(chromosome)
        reference = conditions[0]
        references[chromosome] = reference
        ref_centroids = centroid_matrix(centroids, chromosome, reference)
        for condition in conditions[1:]:
            unit_centroids = centroid_matrix(centroids, chromosome, condition)
            if swap_needed(unit_centroids, ref_centroids):
                swaps.append((chromosome, condition))

    gaps = []
    for chromosome in (chromosomes or ()):
        if chromosome not in references:
            gap = HarmonizationGap(
                "no clustered condition to use as reference",
                chromosome=chromosome)
            logger.warning("%s; excluded from comparisons", gap)
            gaps.append(gap)

    if swaps:
        logger.info("Harmonization swapped %d of %d units",
                    len(swaps), len(centroids) // 2)
    return HarmonizedTables(
        tables=relabel(tables, swaps),
        references=references,
        swapped=tuple(swaps),
        gaps=tuple(gaps),
    )


def relabel(
    tables: ClusterTables, units: Sequence[Tuple[Any, Any]],
) -> ClusterTables:
    """Exchange cluster ids 1 ↔ 2 for the given (chromosome, condition) units."""
    units = list(units)
    frames = {}
    for name in ("compartments", "concordances", "distances", "centroids"):
        frame = getattr(tables, name).copy()
        if units and not frame.empty:
            hit = _unit_mask(frame, units)
            frame.loc[hit, "compartment"] = 3 - frame.loc[hit, "compartment"]
            if name == "concordances":
                frame.loc[hit, "concordance"] = -frame.loc[hit, "concordance"]
        frames[name] = frame

    # Keep the documented sort order after ids changed.
    frames["distances"] = frames["distances"].sort_values(
        ["chromosome", "index", "condition", "replicate", "compartment"],
        kind="mergesort").reset_index(drop=True)
    frames["centroids"] = frames["centroids"].sort_values(
        ["chromosome", "condition", "compartment"],
        kind="mergesort").reset_index(drop=True)
    return ClusterTables(**frames)


def _unit_mask(frame: pd.DataFrame, units) -> np.ndarray:
    keys = pd.MultiIndex.from_arrays(
        [frame["chromosome"].to_numpy(), frame["condition"].to_numpy()])
    return np.asarray(keys.isin(units))
