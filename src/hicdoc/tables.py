"""Clustering output tables, per unit and merged.

Every stage of the pipeline receives a :class:`ClusterTables` and returns a
new one; none of them edits a table it was given.

Columns
-------
compartments   chromosome, index, condition, compartment
concordances   chromosome, index, condition, replicate, compartment, concordance
distances      chromosome, index, condition, replicate, compartment, distance
centroids      chromosome, condition, compartment, centroid

``compartment`` holds the numeric cluster id (1 or 2) until the
classifier replaces it with ``"A"``/``"B"``.  In ``concordances`` it is
the cluster of the row's position; in ``distances`` it is the cluster
whose centroid the distance is measured to.

A position with no observed contact in a unit has no rows in that unit's
tables, so it never takes part in a comparison with another condition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .clustering import ClusteringResult
from .concordance import centroid_distances, concordance_scores
from .units import InteractionUnit

__all__ = [
    "TABLE_COLUMNS",
    "SORT_KEYS",
    "ClusterTables",
    "centroid_matrix",
]

TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "compartments": ("chromosome", "index", "condition", "compartment"),
    "concordances": ("chromosome", "index", "condition", "replicate",
                     "compartment", "concordance"),
    "distances": ("chromosome", "index", "condition", "replicate",
                  "compartment", "distance"),
    "centroids": ("chromosome", "condition", "compartment", "centroid"),
}

SORT_KEYS: Dict[str, Tuple[str, ...]] = {
    "compartments": ("chromosome", "index", "condition"),
    "concordances": ("chromosome", "index", "condition", "replicate"),
    "distances": ("chromosome", "index", "condition", "replicate",
                  "compartment"),
    "centroids": ("chromosome", "condition", "compartment"),
}


@dataclass(frozen=True, eq=False)
class ClusterTables:
    """The four per-row/per-cluster tables produced by clustering."""

    compartments: pd.DataFrame
    concordances: pd.DataFrame
    distances: pd.DataFrame
    centroids: pd.DataFrame

    # ── construction ────────────────────────────────────────────

    @classmethod
    def empty(cls) -> "ClusterTables":
        return cls(**{
            name: pd.DataFrame(columns=list(cols))
            for name, cols in TABLE_COLUMNS.items()
        })

    @classmethod
    def from_unit(
        cls, unit: InteractionUnit, result: ClusteringResult,
    ) -> "ClusterTables":
        """Tabulate one unit's clustering and concordance scores.

        Rows without a single observed contact are clustered with the
        rest but left out of the tables; a position is listed in
        ``compartments`` when at least one replicate observed it.
        """
        positions = np.asarray(unit.positions, dtype=np.int64)
        n_positions = positions.size
        observed_rows = unit.observed.any(axis=1)
        observed_positions = observed_rows.reshape(-1, n_positions).any(axis=0)
        row_positions = unit.row_positions[observed_rows]
        row_replicates = unit.row_replicates[observed_rows]
        k = result.n_clusters

        distances = centroid_distances(unit.matrix, result.centroids)
        concordances = concordance_scores(unit.matrix, result.centroids)

        compartments = pd.DataFrame({
            "chromosome": unit.chromosome,
            "index": positions[observed_positions],
            "condition": unit.condition,
            "compartment": result.group_labels[observed_positions].astype(np.int64),
        })
        conc = pd.DataFrame({
            "chromosome": unit.chromosome,
            "index": row_positions,
            "condition": unit.condition,
            "replicate": row_replicates,
            "compartment": result.labels[observed_rows].astype(np.int64),
            "concordance": concordances[observed_rows],
        })
        dist = pd.DataFrame({
            "chromosome": unit.chromosome,
            "index": np.tile(row_positions, k),
            "condition": unit.condition,
            "replicate": np.tile(row_replicates, k),
            "compartment": np.repeat(np.arange(1, k + 1, dtype=np.int64),
                                     row_positions.size),
            "distance": distances[observed_rows].T.ravel(),
        })
        cents = pd.DataFrame({
            "chromosome": unit.chromosome,
            "condition": unit.condition,
            "compartment": np.arange(1, k + 1, dtype=np.int64),
        })
        cents["centroid"] = pd.Series(
            [np.asarray(c, dtype=np.float64) for c in result.centroids],
            index=cents.index, dtype=object)
        return cls(compartments, conc, dist, cents)

    @classmethod
    def concat(cls, parts: Sequence["ClusterTables"]) -> "ClusterTables":
        """Merge unit tables, sorted so completion order never matters."""
        if not parts:
            return cls.empty()
        merged = {}
        for name in TABLE_COLUMNS:
            frame = pd.concat([getattr(p, name) for p in parts],
                              ignore_index=True)
            merged[name] = _sorted(frame, SORT_KEYS[name])
        return cls(**merged)

    # ── access ──────────────────────────────────────────────────

    @property
    def chromosomes(self) -> List[Any]:
        return sorted(pd.unique(self.centroids["chromosome"]))

    def conditions_of(self, chromosome: Any) -> List[Any]:
        cents = self.centroids
        return sorted(pd.unique(
            cents.loc[cents["chromosome"] == chromosome, "condition"]))

    def replace(self, **frames: pd.DataFrame) -> "ClusterTables":
        """Return new tables with some frames swapped out."""
        current = {name: getattr(self, name) for name in TABLE_COLUMNS}
        current.update(frames)
        return ClusterTables(**current)

    def summary(self) -> str:
        return (
            f"ClusterTables({len(self.chromosomes)} chromosomes, "
            f"{len(self.compartments)} compartments, "
            f"{len(self.concordances)} concordances, "
            f"{len(self.centroids)} centroids)"
        )


def centroid_matrix(centroids: pd.DataFrame, chromosome: Any, condition: Any,
                    order: Sequence[Any] = (1, 2)) -> np.ndarray:
    """Stack one unit's centroids in *order* of compartment."""
    sub = centroids[(centroids["chromosome"] == chromosome)
                    & (centroids["condition"] == condition)]
    by_label = dict(zip(sub["compartment"], sub["centroid"]))
    return np.vstack([by_label[c] for c in order])


def _sorted(frame: pd.DataFrame, keys: Sequence[str]) -> pd.DataFrame:
    return frame.sort_values(list(keys), kind="mergesort").reset_index(drop=True)
