"""A/B labelling of harmonized clusters and per-chromosome sanity checks.

Self-interaction ratio
----------------------
For replicate *r* and position *i* the ratio is the diagonal contact
minus the sum of every off-diagonal contact of *i*::

    ratio(r, i) = M_r[i, i] − Σ_{j ≠ i} M_r[i, j]

Open (A) chromatin interacts comparatively more with the rest of the
chromosome, so the cluster with the lower median ratio is called A.
Rows with no contact at all are not reported; rows with a missing
diagonal score 0.

Sanity checks
-------------
* **centroid check**: all centroids of a chromosome (both clusters, every
  condition) are projected by PCA; the first component must carry at
  least ``checks.pc1_threshold`` of the variance, otherwise the two
  clusters are not the dominant axis of variation.
* **assignment check**: A ratios should be stochastically smaller than B
  ratios (one-sided Mann–Whitney U, level ``checks.assignment_alpha``).

Both checks only report.  Downstream code decides whether to drop failing
chromosomes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable

import numpy as np
import pandas as pd
from scipy.stats import mannwhitneyu
from sklearn.decomposition import PCA

from .harmonize import HarmonizedTables
from .tables import ClusterTables
from .units import InteractionUnit

logger = logging.getLogger(__name__)

__all__ = [
    "RATIO_COLUMNS",
    "CHECK_COLUMNS",
    "ClassifiedTables",
    "self_interaction_ratios",
    "assign_ab",
    "classify",
    "centroid_check",
    "assignment_check",
    "sanity_checks",
]

RATIO_COLUMNS = ("chromosome", "index", "condition", "replicate", "ratio")
CHECK_COLUMNS = ("chromosome", "PC1", "centroid.check",
                 "assignment.pvalue", "assignment.check")

DEFAULT_LABELS: Dict[int, str] = {1: "A", 2: "B"}


# ═══════════════════════════════════════════════════════════════════
# Self-interaction ratios
# ═══════════════════════════════════════════════════════════════════

def self_interaction_ratios(units: Iterable[InteractionUnit]) -> pd.DataFrame:
    """Diagonal minus summed off-diagonal contacts, per row of every unit."""
    frames = []
    for unit in units:
        n_rows = unit.matrix.shape[0]
        rows = np.arange(n_rows)
        diag_cols = np.tile(np.arange(unit.n_positions), unit.n_replicates)
        diagonal = unit.matrix[rows, diag_cols]
        off_diagonal = unit.matrix.sum(axis=1) - diagonal
        ratio = np.where(unit.observed[rows, diag_cols],
                         diagonal - off_diagonal, 0.0)
        keep = unit.observed.any(axis=1)
        frames.append(pd.DataFrame({
            "chromosome": unit.chromosome,
            "index": unit.row_positions[keep],
            "condition": unit.condition,
            "replicate": unit.row_replicates[keep],
            "ratio": ratio[keep],
        }))
    if not frames:
        return pd.DataFrame(columns=list(RATIO_COLUMNS))
    ratios = pd.concat(frames, ignore_index=True)
    return ratios.sort_values(
        ["chromosome", "index", "condition", "replicate"],
        kind="mergesort").reset_index(drop=True)


# ═══════════════════════════════════════════════════════════════════
# A/B assignment
# ═══════════════════════════════════════════════════════════════════

def assign_ab(
    compartments: pd.DataFrame, ratios: pd.DataFrame,
) -> Dict[Any, Dict[int, str]]:
    """Map each chromosome's cluster ids to ``"A"``/``"B"``.

    The cluster with the lower median ratio over all its (position,
    condition, replicate) members is A; cluster 1 is A on ties or when a
    median is undefined.
    """
    labelled = ratios.merge(
        compartments[["chromosome", "index", "condition", "compartment"]],
        on=["chromosome", "index", "condition"], how="inner")
    medians = (labelled.dropna(subset=["ratio"])
               .groupby(["chromosome", "compartment"])["ratio"].median())

    mapping: Dict[Any, Dict[int, str]] = {}
    for chromosome in sorted(pd.unique(compartments["chromosome"])):
        m1 = medians.get((chromosome, 1), np.nan)
        m2 = medians.get((chromosome, 2), np.nan)
        if np.isnan(m1) or np.isnan(m2):
            logger.warning(
                "Chromosome %s: no self-interaction ratio for one cluster, "
                "calling cluster 1 A", chromosome)
            mapping[chromosome] = dict(DEFAULT_LABELS)
        elif m2 < m1:
            mapping[chromosome] = {1: "B", 2: "A"}
        else:
            mapping[chromosome] = dict(DEFAULT_LABELS)
    return mapping


@dataclass(frozen=True, eq=False)
class ClassifiedTables:
    """Tables with A/B compartments and A-positive concordance."""

    compartments: pd.DataFrame
    concordances: pd.DataFrame
    distances: pd.DataFrame
    centroids: pd.DataFrame
    labels: Dict[Any, Dict[int, str]]

    def summary(self) -> str:
        n_a = int(np.sum(self.compartments["compartment"] == "A"))
        return (
            f"ClassifiedTables({len(self.labels)} chromosomes, "
            f"{n_a}/{len(self.compartments)} positions in A)"
        )


def classify(
    harmonized: HarmonizedTables, ratios: pd.DataFrame,
) -> ClassifiedTables:
    """Apply the per-chromosome A/B mapping to every table.

    Concordance is negated on chromosomes where cluster 1 is A, so that in
    the result it is positive for rows closer to the A centroid.
    """
    tables: ClusterTables = harmonized.tables
    labels = assign_ab(tables.compartments, ratios)

    label_frame = pd.DataFrame(
        [(chrom, cid, lab) for chrom, m in labels.items()
         for cid, lab in m.items()],
        columns=["chromosome", "compartment", "label"])

    def _apply(frame: pd.DataFrame) -> pd.DataFrame:
        if frame.empty:
            return frame.copy()
        out = frame.merge(label_frame, on=["chromosome", "compartment"],
                          how="left", sort=False)
        out["compartment"] = out.pop("label")
        return out[list(frame.columns)]

    concordances = _apply(tables.concordances)
    if not concordances.empty:
        sign = concordances["chromosome"].map(
            {chrom: (-1.0 if m[1] == "A" else 1.0) for chrom, m in labels.items()})
        concordances["concordance"] = concordances["concordance"] * sign

    return ClassifiedTables(
        compartments=_apply(tables.compartments),
        concordances=concordances,
        distances=_apply(tables.distances),
        centroids=_apply(tables.centroids),
        labels=labels,
    )


# ═══════════════════════════════════════════════════════════════════
# Sanity checks
# ═══════════════════════════════════════════════════════════════════

def centroid_check(
    centroids: pd.DataFrame, threshold: float,
) -> pd.DataFrame:
    """Variance explained by PC1 of every chromosome's centroids.

    Returns
    -------
    DataFrame
        ``chromosome, PC1, centroid.check``.  Centroids without any
        variance give ``PC1 = NaN`` and fail.
    """
    rows = []
    for chromosome in sorted(pd.unique(centroids["chromosome"])):
        vectors = centroids.loc[centroids["chromosome"] == chromosome,
                                "centroid"]
        x = np.vstack(list(vectors))
        if x.shape[0] < 2 or not np.any(np.var(x, axis=0) > 0):
            pc1 = np.nan
        else:
            pca = PCA(n_components=1, svd_solver="full")
            pca.fit(x)
            pc1 = float(pca.explained_variance_ratio_[0])
        rows.append((chromosome, pc1, bool(pc1 >= threshold)))
    return pd.DataFrame(rows, columns=["chromosome", "PC1", "centroid.check"])


def assignment_check(
    compartments: pd.DataFrame, ratios: pd.DataFrame, alpha: float,
) -> pd.DataFrame:
    """One-sided test that A ratios are lower than B ratios.

    Returns
    -------
    DataFrame
        ``chromosome, assignment.pvalue, assignment.check``.
    """
    labelled = ratios.merge(
        compartments[["chromosome", "index", "condition", "compartment"]],
        on=["chromosome", "index", "condition"], how="inner"
    ).dropna(subset=["ratio"])
    rows = []
    for chromosome in sorted(pd.unique(compartments["chromosome"])):
        sub = labelled[labelled["chromosome"] == chromosome]
        a = sub.loc[sub["compartment"] == "A", "ratio"].to_numpy(dtype=float)
        b = sub.loc[sub["compartment"] == "B", "ratio"].to_numpy(dtype=float)
        if a.size == 0 or b.size == 0:
            pvalue = np.nan
        else:
            pvalue = float(mannwhitneyu(a, b, alternative="less").pvalue)
        rows.append((chromosome, pvalue, bool(pvalue < alpha)))
    return pd.DataFrame(
        rows, columns=["chromosome", "assignment.pvalue", "assignment.check"])


def sanity_checks(
    classified: ClassifiedTables,
    ratios: pd.DataFrame,
    pc1_threshold: float = 0.75,
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Run both checks and log every failing chromosome."""
    if classified.centroids.empty:
        return pd.DataFrame(columns=list(CHECK_COLUMNS))
    checks = centroid_check(classified.centroids, pc1_threshold).merge(
        assignment_check(classified.compartments, ratios, alpha),
        on="chromosome", how="outer")
    checks["centroid.check"] = checks["centroid.check"].eq(True)
    checks["assignment.check"] = checks["assignment.check"].eq(True)

    for row in checks.itertuples(index=False):
        chromosome, pc1, centroid_ok, pvalue, assignment_ok = row
        if not centroid_ok:
            logger.warning(
                "Chromosome %s: centroid PC1 explains %.3f of variance "
                "(< %.2f); two-compartment structure is doubtful",
                chromosome, pc1, pc1_threshold)
        if not assignment_ok:
            logger.warning(
                "Chromosome %s: A/B assignment test p=%.3g (>= %.2f)",
                chromosome, pvalue, alpha)
    return checks[list(CHECK_COLUMNS)]
