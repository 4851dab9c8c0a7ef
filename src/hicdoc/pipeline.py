"""Compartment detection end to end.

Stages
------
1. **units**: split the interaction table into (chromosome, condition)
   units (:func:`~hicdoc.units.build_units`).
2. **clustering**: constrained k-means + concordance per unit, sequential
   or through a caller-supplied :class:`concurrent.futures.Executor`.
3. **harmonization**: align cluster ids across conditions.
4. **classification**: self-interaction ratios, A/B labels, sanity checks.
5. **differences**: switching positions per condition pair.

Each stage returns a new object; nothing is edited in place.  A unit that
fails (bad input, degenerate clustering) is recorded in
:attr:`CompartmentResults.failures` and the others carry on.

Reproducibility
---------------
Every unit's seed is derived from ``seed`` and the unit's identity only,
so sequential runs and thread-pool runs give bit-identical tables.
Process pools compute the same numbers in practice, but platform
differences in floating-point libraries between processes are not
guarded against.

Usage
-----
>>> from concurrent.futures import ThreadPoolExecutor
>>> results = detect_compartments(interactions, seed=3215)
>>> with ThreadPoolExecutor(4) as pool:
...     results = detect_compartments(interactions, seed=3215, executor=pool)
>>> results.significant_differences()
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from .classify import (
    ClassifiedTables,
    classify,
    sanity_checks,
    self_interaction_ratios,
)
from .clustering import ClusteringResult, constrained_kmeans
from .differences import find_differences, significant
from .errors import (
    ClusteringFailure,
    HarmonizationGap,
    InputError,
    SanityCheckFailure,
    UnitFailure,
)
from .harmonize import harmonize
from .parameters import DEFAULT_PARAMETERS, ParameterRegistry
from .tables import ClusterTables
from .units import InteractionUnit, build_units, unit_seed

logger = logging.getLogger(__name__)

__all__ = [
    "N_CLUSTERS",
    "UnitClustering",
    "CompartmentResults",
    "cluster_unit",
    "run_units",
    "detect_compartments",
]

N_CLUSTERS: int = 2


# ═══════════════════════════════════════════════════════════════════
# Per-unit work
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class UnitClustering:
    """Clustering of one unit, tabulated."""

    chromosome: Any
    condition: Any
    result: ClusteringResult
    tables: ClusterTables

    @property
    def key(self) -> Tuple[Any, Any]:
        return (self.chromosome, self.condition)


def cluster_unit(
    unit: InteractionUnit,
    parameters: ParameterRegistry = DEFAULT_PARAMETERS,
    master_seed: int = 0,
) -> UnitClustering:
    """Validate, cluster and score one unit.

    Raises
    ------
    InputError, ClusteringFailure
    """
    unit.validate(N_CLUSTERS)
    result = constrained_kmeans(
        unit.matrix,
        unit.must_link,
        delta=float(parameters["kmeans.delta"]),
        max_iterations=int(parameters["kmeans.iterations"]),
        restarts=int(parameters["kmeans.restarts"]),
        max_attempts=int(parameters["kmeans.max_attempts"]),
        seed=unit_seed(master_seed, unit.chromosome, unit.condition),
        n_clusters=N_CLUSTERS,
        chromosome=unit.chromosome,
        condition=unit.condition,
    )
    if not result.converged:
        logger.info(
            "Chromosome %s, condition %s: clustering stopped after %d "
            "iterations without converging", unit.chromosome, unit.condition,
            result.iterations)
    return UnitClustering(
        chromosome=unit.chromosome,
        condition=unit.condition,
        result=result,
        tables=ClusterTables.from_unit(unit, result),
    )


def _cluster_or_fail(
    unit: InteractionUnit,
    parameters: ParameterRegistry,
    master_seed: int,
) -> Union[UnitClustering, UnitFailure]:
    try:
        return cluster_unit(unit, parameters, master_seed)
    except (InputError, ClusteringFailure) as exc:
        return UnitFailure.from_exception(unit.chromosome, unit.condition, exc)


def run_units(
    units: Sequence[InteractionUnit],
    parameters: ParameterRegistry = DEFAULT_PARAMETERS,
    seed: int = 0,
    executor: Optional[Executor] = None,
    verbose: bool = False,
) -> Tuple[List[UnitClustering], List[UnitFailure]]:
    """Cluster every unit, in order, optionally through *executor*.

    Returns
    -------
    (clustered, failures)
        Both in the order of *units*.
    """
    work = partial(_cluster_or_fail, parameters=parameters, master_seed=seed)
    if executor is None:
        outcomes = map(work, units)
    else:
        outcomes = executor.map(work, units)
    outcomes = list(tqdm(outcomes, total=len(units), desc="Clustering",
                         unit="unit", disable=not verbose))

    clustered, failures = [], []
    for outcome in outcomes:
        if isinstance(outcome, UnitFailure):
            logger.warning("Skipping unit: %s", outcome.message)
            failures.append(outcome)
        else:
            clustered.append(outcome)
    return clustered, failures


# ═══════════════════════════════════════════════════════════════════
# CompartmentResults
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class CompartmentResults:
    """Everything :func:`detect_compartments` produces.

    Attributes
    ----------
    compartments, concordances, distances, centroids : DataFrame
        A/B-labelled clustering tables (see :mod:`hicdoc.tables`).
    self_interaction_ratios : DataFrame
        ``chromosome, index, condition, replicate, ratio``.
    differences : DataFrame
        Switching positions with raw and adjusted p-values, unfiltered.
    checks : DataFrame
        ``chromosome, PC1, centroid.check, assignment.pvalue,
        assignment.check``.
    failures : tuple of UnitFailure
        Units that could not be clustered.
    gaps : tuple of HarmonizationGap
        Chromosomes left without any clustered condition.
    parameters : ParameterRegistry
    seed : int
    """

    compartments: pd.DataFrame
    concordances: pd.DataFrame
    distances: pd.DataFrame
    centroids: pd.DataFrame
    self_interaction_ratios: pd.DataFrame
    differences: pd.DataFrame
    checks: pd.DataFrame
    failures: Tuple[UnitFailure, ...] = ()
    gaps: Tuple[HarmonizationGap, ...] = ()
    parameters: ParameterRegistry = field(
        default_factory=lambda: DEFAULT_PARAMETERS)
    seed: int = 0

    # ── checks ──────────────────────────────────────────────────

    def passing_chromosomes(self) -> List[Any]:
        """Chromosomes passing both the centroid and assignment checks."""
        ok = self.checks["centroid.check"] & self.checks["assignment.check"]
        return list(self.checks.loc[ok.astype(bool), "chromosome"])

    def failing_chromosomes(self) -> List[Any]:
        passing = set(self.passing_chromosomes())
        return [c for c in self.checks["chromosome"] if c not in passing]

    def require_checks(self) -> "CompartmentResults":
        """Raise :class:`SanityCheckFailure` if any chromosome failed."""
        failing = self.failing_chromosomes()
        if failing:
            raise SanityCheckFailure(
                f"{len(failing)} chromosome(s) failed sanity checks: "
                f"{', '.join(str(c) for c in failing)}")
        return self

    # ── filtered views ──────────────────────────────────────────

    def compartments_passing(self) -> pd.DataFrame:
        return self._passing(self.compartments)

    def concordances_passing(self) -> pd.DataFrame:
        return self._passing(self.concordances)

    def _passing(self, frame: pd.DataFrame) -> pd.DataFrame:
        keep = frame["chromosome"].isin(self.passing_chromosomes())
        return frame[keep].reset_index(drop=True)

    def significant_differences(
        self, threshold: Optional[float] = None,
    ) -> pd.DataFrame:
        """Switches with adjusted p-value ≤ *threshold*.

        Defaults to the ``differences.threshold`` parameter.
        """
        if threshold is None:
            threshold = float(self.parameters["differences.threshold"])
        return significant(self.differences, threshold)

    # ── reporting ───────────────────────────────────────────────

    def summary(self) -> str:
        chromosomes = sorted(pd.unique(self.compartments["chromosome"]))
        n_a = int(np.sum(self.compartments["compartment"] == "A"))
        lines = [
            f"CompartmentResults (seed={self.seed}, "
            f"parameters={self.parameters.name!r})",
            f"  chromosomes     : {len(chromosomes)} "
            f"({len(self.failing_chromosomes())} failing checks)",
            f"  positions       : {len(self.compartments)} "
            f"({n_a} A / {len(self.compartments) - n_a} B)",
            f"  switches tested : {len(self.differences)}",
            f"  significant     : {len(self.significant_differences())}",
        ]
        changed = self.parameters.overrides()
        if changed:
            lines.append("  overrides       : " + ", ".join(
                f"{k}={v}" for k, v in changed.items()))
        if self.failures:
            lines.append(f"  failed units    : {len(self.failures)}")
        if self.gaps:
            lines.append(f"  harmonization gaps: {len(self.gaps)}")
        return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════
# detect_compartments
# ═══════════════════════════════════════════════════════════════════

def detect_compartments(
    interactions: Optional[pd.DataFrame] = None,
    *,
    units: Optional[Sequence[InteractionUnit]] = None,
    parameters: ParameterRegistry = DEFAULT_PARAMETERS,
    seed: int = 0,
    executor: Optional[Executor] = None,
    chromosomes: Optional[Sequence[Any]] = None,
    conditions: Optional[Sequence[Any]] = None,
    verbose: bool = False,
) -> CompartmentResults:
    """Detect A/B compartments and their switches between conditions.

    Parameters
    ----------
    interactions : DataFrame, optional
        Long-format, filtered and normalised contacts
        (:data:`~hicdoc.units.INTERACTION_COLUMNS`).
    units : sequence of InteractionUnit, optional
        Prebuilt units; used instead of *interactions*.
    parameters : ParameterRegistry
        Validated before anything runs.
    seed : int
        Master seed for every clustering restart.
    executor : concurrent.futures.Executor, optional
        Runs units concurrently.  ``None`` runs them in this thread.
    chromosomes, conditions : sequence, optional
        Restrict the analysis.
    verbose : bool
        Show a progress bar over units.

    Raises
    ------
    InputError
        Invalid parameters or an unusable interaction table.  Problems
        inside a single unit are recorded, not raised.
    """
    parameters.validate()
    changed = parameters.overrides()
    if changed:
        logger.info("Parameters changed from defaults: %s", changed)
    if units is None:
        if interactions is None:
            raise InputError("either interactions or units must be given")
        units = build_units(interactions, chromosomes=chromosomes,
                            conditions=conditions)
        expected = chromosomes if chromosomes is not None else sorted(
            pd.unique(interactions["chromosome"]))
    else:
        units = [u for u in units
                 if (chromosomes is None or u.chromosome in chromosomes)
                 and (conditions is None or u.condition in conditions)]
        expected = chromosomes if chromosomes is not None else sorted(
            {u.chromosome for u in units})
    units = sorted(units, key=lambda u: (u.chromosome, u.condition))

    logger.info("Clustering %d units on %d chromosomes",
                len(units), len(expected))
    clustered, failures = run_units(units, parameters, seed, executor, verbose)

    tables = ClusterTables.concat([c.tables for c in clustered])
    harmonized = harmonize(tables, chromosomes=expected)

    done = {c.key for c in clustered}
    ratios = self_interaction_ratios(u for u in units if u.key in done)
    classified: ClassifiedTables = classify(harmonized, ratios)
    checks = sanity_checks(
        classified, ratios,
        pc1_threshold=float(parameters["checks.pc1_threshold"]),
        alpha=float(parameters["checks.assignment_alpha"]),
    )

    logger.info("Detecting significant differences")
    differences = find_differences(classified.compartments,
                                   classified.concordances)

    return CompartmentResults(
        compartments=classified.compartments,
        concordances=classified.concordances,
        distances=classified.distances,
        centroids=classified.centroids,
        self_interaction_ratios=ratios,
        differences=differences,
        checks=checks,
        failures=tuple(failures),
        gaps=harmonized.gaps,
        parameters=parameters,
        seed=seed,
    )
