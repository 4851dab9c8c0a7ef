"""Synthetic, already-normalised interaction tables with known compartments.

Positions are laid out in alternating A/B blocks.  Contacts follow a
plaid pattern: A–A pairs interact strongly, B–B pairs moderately and
A–B pairs are depleted, plus Gaussian noise per replicate.  Every
condition after the first flips a fixed fraction of positions to the
other compartment, so the switches are known exactly.

Usage
-----
>>> interactions, truth = make_example_interactions(seed=1)
>>> results = detect_compartments(interactions, seed=1)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    "ExampleConfig",
    "make_example_interactions",
]


@dataclass(frozen=True)
class ExampleConfig:
    """Shape and signal of a synthetic data set."""

    chromosomes: Tuple[str, ...] = ("chr1", "chr2")
    conditions: Tuple[str, ...] = ("C1", "C2")
    replicates: Tuple[str, ...] = ("R1", "R2")
    n_positions: int = 60
    min_block: int = 4          # shortest A or B stretch
    max_block: int = 12
    switch_fraction: float = 0.1
    a_contact: float = 1.0
    b_contact: float = 0.2
    cross_contact: float = -0.5
    diagonal: float = 2.0
    noise: float = 0.3
    missing_fraction: float = 0.0   # off-diagonal pairs dropped at random
    seed: int = 0


def make_example_interactions(
    config: ExampleConfig = ExampleConfig(), **overrides,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Generate a long-format interaction table and its ground truth.

    Parameters
    ----------
    config : ExampleConfig
    **overrides
        Field overrides applied on top of *config*.

    Returns
    -------
    interactions : DataFrame
        ``chromosome, position.1, position.2, condition, replicate, value``
        with ``position.1 <= position.2``.
    truth : DataFrame
        ``chromosome, index, condition, compartment`` (``"A"``/``"B"``).
    """
    if overrides:
        config = replace(config, **overrides)
    rng = np.random.default_rng(config.seed)
    n = config.n_positions
    iu, ju = np.triu_indices(n)

    frames, truths = [], []
    for chromosome in config.chromosomes:
        base = _block_labels(n, config.min_block, config.max_block, rng)
        labels = base.copy()
        for c_idx, condition in enumerate(config.conditions):
            if c_idx > 0:
                labels = base.copy()
                n_switch = int(round(config.switch_fraction * n))
                flip = rng.choice(n, size=n_switch, replace=False)
                labels[flip] = ~labels[flip]
            truths.append(pd.DataFrame({
                "chromosome": chromosome,
                "index": np.arange(n),
                "condition": condition,
                "compartment": np.where(labels, "A", "B"),
            }))
            signal = _plaid(labels, config)
            for replicate in config.replicates:
                noisy = signal + rng.normal(0.0, config.noise, size=(n, n))
                noisy = (noisy + noisy.T) / 2.0
                values = noisy[iu, ju]
                keep = np.ones(values.shape, dtype=bool)
                if config.missing_fraction > 0:
                    off = iu != ju
                    keep[off] = rng.random(int(off.sum())) >= config.missing_fraction
                frames.append(pd.DataFrame({
                    "chromosome": chromosome,
                    "position.1": iu[keep],
                    "position.2": ju[keep],
                    "condition": condition,
                    "replicate": replicate,
                    "value": values[keep],
                }))

    interactions = pd.concat(frames, ignore_index=True)
    truth = pd.concat(truths, ignore_index=True)
    logger.debug("Generated %d interactions over %d chromosomes",
                 len(interactions), len(config.chromosomes))
    return interactions, truth


def _block_labels(n: int, lo: int, hi: int, rng: np.random.Generator) -> np.ndarray:
    """Alternating A (True) / B (False) stretches covering *n* positions.

    Stretches come in equal-length A/B pairs, so the two compartments
    differ in size by at most one stretch.
    """
    labels = np.empty(n, dtype=bool)
    first = bool(rng.integers(2))
    start = 0
    while start < n:
        length = int(rng.integers(lo, hi + 1))
        labels[start:start + length] = first
        labels[start + length:start + 2 * length] = not first
        start += 2 * length
    return labels


def _plaid(labels: np.ndarray, config: ExampleConfig) -> np.ndarray:
    a = labels[:, None] & labels[None, :]
    b = ~labels[:, None] & ~labels[None, :]
    signal = np.full(a.shape, config.cross_contact)
    signal[a] = config.a_contact
    signal[b] = config.b_contact
    np.fill_diagonal(signal, config.diagonal)
    return signal
