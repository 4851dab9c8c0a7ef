"""Per-(chromosome, condition) clustering units.

A unit stacks the square interaction matrices of every valid replicate of
one condition on one chromosome::

    rows  = replicate r, position i      (row r * n_positions + i)
    cols  = position j
    value = normalised contact intensity between i and j in replicate r

Rows describing the same position across replicates form a *must-link
group*: the clustering engine always gives them the same label.

Units are plain value objects.  They own their arrays, never alias the
interaction table they were built from, and are not mutated after
construction, so they can be shipped to worker threads or processes.

Usage
-----
>>> units = build_units(interactions)       # long-format DataFrame
>>> unit = units[0]
>>> unit.matrix.shape                        # (n_rep * n_pos, n_pos)
>>> unit.must_link[0]                        # rows of position 0
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InputError

__all__ = [
    "INTERACTION_COLUMNS",
    "InteractionUnit",
    "build_units",
    "unit_seed",
]

INTERACTION_COLUMNS: Tuple[str, ...] = (
    "chromosome", "position.1", "position.2",
    "condition", "replicate", "value",
)
"""Columns required in a long-format interaction table."""


# ═══════════════════════════════════════════════════════════════════
# InteractionUnit
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class InteractionUnit:
    """Interaction profiles of one chromosome under one condition.

    Attributes
    ----------
    chromosome, condition
        Unit identity.
    replicates : tuple
        Valid replicates, in row-block order.
    positions : tuple[int, ...]
        Bin indices, in column order.
    matrix : np.ndarray
        ``(n_replicates * n_positions, n_positions)`` float64; missing
        contacts are stored as 0.
    observed : np.ndarray
        Boolean mask of the same shape; False where no contact was given.
    """

    chromosome: Any
    condition: Any
    replicates: Tuple[Any, ...]
    positions: Tuple[int, ...]
    matrix: np.ndarray = field(repr=False)
    observed: np.ndarray = field(repr=False)

    # ── shape ───────────────────────────────────────────────────

    @property
    def n_replicates(self) -> int:
        return len(self.replicates)

    @property
    def n_positions(self) -> int:
        return len(self.positions)

    @property
    def key(self) -> Tuple[Any, Any]:
        return (self.chromosome, self.condition)

    @property
    def must_link(self) -> Tuple[np.ndarray, ...]:
        """One row-index array per position, spanning all replicates."""
        offsets = np.arange(self.n_replicates) * self.n_positions
        return tuple(offsets + i for i in range(self.n_positions))

    @property
    def row_replicates(self) -> np.ndarray:
        """Replicate of every matrix row."""
        return np.repeat(np.asarray(self.replicates, dtype=object),
                         self.n_positions)

    @property
    def row_positions(self) -> np.ndarray:
        """Bin index of every matrix row."""
        return np.tile(np.asarray(self.positions, dtype=np.int64),
                       self.n_replicates)

    # ── checks ──────────────────────────────────────────────────

    def validate(self, n_clusters: int = 2) -> "InteractionUnit":
        """Fail fast on anything the clustering engine cannot handle.

        Raises
        ------
        InputError
            Wrong shape, non-finite values, or fewer positions than
            clusters.
        """
        expected = (self.n_replicates * self.n_positions, self.n_positions)
        if self.matrix.ndim != 2 or self.matrix.shape != expected:
            raise InputError(
                f"matrix has shape {self.matrix.shape}, expected {expected}",
                chromosome=self.chromosome, condition=self.condition)
        if self.observed.shape != self.matrix.shape:
            raise InputError(
                "observed mask does not match matrix shape",
                chromosome=self.chromosome, condition=self.condition)
        if self.n_replicates == 0:
            raise InputError(
                "no valid replicate",
                chromosome=self.chromosome, condition=self.condition)
        if self.n_positions < n_clusters:
            raise InputError(
                f"{self.n_positions} positions for {n_clusters} clusters",
                chromosome=self.chromosome, condition=self.condition)
        if not np.all(np.isfinite(self.matrix)):
            bad = int(np.sum(~np.isfinite(self.matrix)))
            raise InputError(
                f"{bad} non-finite interaction values",
                chromosome=self.chromosome, condition=self.condition)
        return self

    # ── construction ────────────────────────────────────────────

    @classmethod
    def from_matrices(
        cls,
        chromosome: Any,
        condition: Any,
        matrices: Union[Mapping[Any, np.ndarray], Sequence[np.ndarray]],
        positions: Optional[Sequence[int]] = None,
        replicates: Optional[Sequence[Any]] = None,
    ) -> "InteractionUnit":
        """Build a unit from square per-replicate matrices.

        Parameters
        ----------
        matrices : mapping replicate → array, or sequence of arrays
            Square ``(n_positions, n_positions)`` matrices; NaN marks a
            missing contact.  A sequence is numbered ``1..n``.
        positions : sequence of int, optional
            Bin indices of the columns.  Defaults to ``0..n-1``.
        replicates : sequence, optional
            Names for a sequence of matrices.  Ignored for a mapping.
        """
        if not isinstance(matrices, Mapping):
            matrices = list(matrices)
            if replicates is None:
                replicates = range(1, len(matrices) + 1)
            replicates = list(replicates)
            if len(replicates) != len(matrices):
                raise InputError(
                    f"{len(replicates)} replicate names for "
                    f"{len(matrices)} matrices",
                    chromosome=chromosome, condition=condition)
            matrices = dict(zip(replicates, matrices))
        if not matrices:
            raise InputError("no replicate matrices given",
                             chromosome=chromosome, condition=condition)

        replicates = tuple(matrices.keys())
        blocks = [np.asarray(matrices[r], dtype=np.float64) for r in replicates]
        n = blocks[0].shape[0]
        for r, b in zip(replicates, blocks):
            if b.ndim != 2 or b.shape != (n, n):
                raise InputError(
                    f"replicate {r} matrix has shape {b.shape}, "
                    f"expected ({n}, {n})",
                    chromosome=chromosome, condition=condition)

        if positions is None:
            positions = range(n)
        positions = tuple(int(p) for p in positions)
        if len(positions) != n:
            raise InputError(
                f"{len(positions)} positions for {n} matrix columns",
                chromosome=chromosome, condition=condition)

        stacked = np.vstack(blocks)
        observed = ~np.isnan(stacked)
        return cls(
            chromosome=chromosome,
            condition=condition,
            replicates=replicates,
            positions=positions,
            matrix=np.where(observed, stacked, 0.0),
            observed=observed,
        )


# ═══════════════════════════════════════════════════════════════════
# Long-format table → units
# ═══════════════════════════════════════════════════════════════════

def build_units(
    interactions: pd.DataFrame,
    chromosomes: Optional[Sequence[Any]] = None,
    conditions: Optional[Sequence[Any]] = None,
) -> List[InteractionUnit]:
    """Split a long-format interaction table into clustering units.

    Parameters
    ----------
    interactions : DataFrame
        Columns :data:`INTERACTION_COLUMNS`.  Each unordered position pair
        may be listed once; matrices are symmetrised.  Missing values are
        dropped before anything else.
    chromosomes, conditions : sequence, optional
        Restrict to these.  Defaults to everything in the table.

    Returns
    -------
    list of InteractionUnit
        Sorted by ``(chromosome, condition)``.  A replicate with no valid
        interaction on a chromosome is left out of that chromosome's
        units; a condition with no valid replicate gets no unit.
    """
    missing = [c for c in INTERACTION_COLUMNS if c not in interactions.columns]
    if missing:
        raise InputError(f"interaction table lacks columns {missing}")

    data = interactions.loc[:, list(INTERACTION_COLUMNS)]
    data = data[data["value"].notna()]

    if chromosomes is None:
        chromosomes = sorted(pd.unique(data["chromosome"]))
    if conditions is None:
        conditions = sorted(pd.unique(data["condition"]))

    units: List[InteractionUnit] = []
    for chromosome in chromosomes:
        chrom_data = data[data["chromosome"] == chromosome]
        if chrom_data.empty:
            continue
        # Shared column space across conditions keeps centroids comparable.
        positions = np.union1d(
            chrom_data["position.1"].to_numpy(dtype=np.int64),
            chrom_data["position.2"].to_numpy(dtype=np.int64),
        )
        for condition in conditions:
            cond_data = chrom_data[chrom_data["condition"] == condition]
            matrices = _replicate_matrices(cond_data, positions)
            if not matrices:
                continue
            units.append(InteractionUnit.from_matrices(
                chromosome, condition, matrices, positions=positions))
    return units


def _replicate_matrices(
    cond_data: pd.DataFrame, positions: np.ndarray,
) -> Dict[Any, np.ndarray]:
    n = len(positions)
    matrices: Dict[Any, np.ndarray] = {}
    for replicate in sorted(pd.unique(cond_data["replicate"])):
        rep = cond_data[cond_data["replicate"] == replicate]
        if rep.empty:
            continue
        i = np.searchsorted(positions, rep["position.1"].to_numpy(dtype=np.int64))
        j = np.searchsorted(positions, rep["position.2"].to_numpy(dtype=np.int64))
        values = rep["value"].to_numpy(dtype=np.float64)
        mat = np.full((n, n), np.nan)
        mat[i, j] = values
        mat[j, i] = values
        matrices[replicate] = mat
    return matrices


# ═══════════════════════════════════════════════════════════════════
# Seeds
# ═══════════════════════════════════════════════════════════════════

def unit_seed(master_seed: int, chromosome: Any, condition: Any) -> int:
    """Derive a unit's clustering seed from the master seed.

    Depends only on ``(master_seed, chromosome, condition)``, so results do
    not change with the number of workers or the order units finish in.
    """
    token = f"{int(master_seed)}\x1f{chromosome}\x1f{condition}".encode("utf-8")
    digest = hashlib.sha256(token).digest()
    return int.from_bytes(digest[:8], "little")
