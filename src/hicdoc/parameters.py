"""ParameterRegistry: every tunable number of compartment detection.

Collects the clustering, sanity-check and difference-calling knobs into a
typed, immutable registry that can be:

* **inspected**: ``registry["kmeans.restarts"]``
* **overridden**: ``registry.replace({"kmeans.restarts": 50})``
* **compared**: ``registry.overrides()`` lists what differs from the defaults
* **validated**: ``registry.validate()`` before any clustering runs

The registry does *not* cover filtering or normalisation parameters; the
interaction table handed to :func:`~hicdoc.pipeline.detect_compartments`
is expected to be filtered and normalised already.

Usage
-----
>>> from hicdoc.parameters import DEFAULT_PARAMETERS
>>> params = DEFAULT_PARAMETERS.replace({"kmeans.restarts": 5})
>>> params.overrides()                   # {'kmeans.restarts': 5}
>>> from_legacy({"PC1CheckThreshold": 0.8})["checks.pc1_threshold"]   # 0.8
"""

from __future__ import annotations

import math
import numbers
from typing import Dict, Mapping, Optional, Union

from .errors import InputError

__all__ = [
    "ParameterRegistry",
    "DEFAULT_PARAMETERS",
    "LEGACY_NAMES",
    "from_legacy",
]

Number = Union[int, float]


# ═══════════════════════════════════════════════════════════════════
# ParameterRegistry
# ═══════════════════════════════════════════════════════════════════

class ParameterRegistry:
    """Immutable mapping of dotted parameter keys → numbers.

    Parameters
    ----------
    data : dict[str, int | float]
        ``{"section.name": value, ...}``.
    name : str, optional
        Human-readable label (e.g. ``"default"``, ``"restarts-50"``).

    Notes
    -----
    * Read-only: ``__setitem__`` raises ``TypeError``.
    * ``replace()`` returns a new registry.
    * ``validate()`` raises :class:`~hicdoc.errors.InputError` on the
      first out-of-range value.
    """

    def __init__(self, data: Mapping[str, Number], *, name: str = "custom"):
        self._data: Dict[str, Number] = dict(data)
        self._name = name

    # ── read ────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    def __getitem__(self, key: str) -> Number:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ParameterRegistry({self._name!r}, {len(self._data)} keys)"

    def to_dict(self) -> Dict[str, Number]:
        """Return a mutable copy of the data."""
        return dict(self._data)

    # ── immutable mutation ──────────────────────────────────────

    def __setitem__(self, key: str, value: Number):
        raise TypeError(
            "ParameterRegistry is immutable, use .replace() instead")

    def replace(
        self,
        overrides: Mapping[str, Number],
        *,
        name: Optional[str] = None,
    ) -> "ParameterRegistry":
        """Return a new registry with selected keys overridden.

        Raises
        ------
        KeyError
            If any key in *overrides* is not in the registry.
        """
        for k in overrides:
            if k not in self._data:
                raise KeyError(
                    f"Unknown parameter key {k!r}. "
                    f"Valid keys: {sorted(self._data.keys())}"
                )
        merged = dict(self._data)
        merged.update(overrides)
        return ParameterRegistry(merged, name=name or (self._name + "+"))

    # ── comparison ──────────────────────────────────────────────

    def overrides(
        self, base: Optional["ParameterRegistry"] = None,
    ) -> Dict[str, Number]:
        """Keys whose value differs from *base*, with this registry's value.

        *base* defaults to :data:`DEFAULT_PARAMETERS`.
        """
        if base is None:
            base = DEFAULT_PARAMETERS
        return {
            k: v for k, v in sorted(self._data.items())
            if k not in base._data or base._data[k] != v
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterRegistry):
            return NotImplemented
        return self._data == other._data

    # ── validation ──────────────────────────────────────────────

    def validate(self) -> "ParameterRegistry":
        """Check every known key against its admissible range.

        Returns the registry itself so calls can be chained.

        Raises
        ------
        InputError
            On the first missing or out-of-range value.
        """
        for key, check, expected in _RULES:
            if key not in self._data:
                raise InputError(f"Missing parameter {key!r}")
            value = self._data[key]
            if not check(value):
                raise InputError(
                    f"Parameter {key!r} must be {expected}, got {value!r}")
        return self


def _positive_int(v) -> bool:
    return float(v).is_integer() and v > 0


def _finite(v) -> bool:
    return (isinstance(v, numbers.Real) and not isinstance(v, bool)
            and math.isfinite(v))


_RULES = (
    ("kmeans.delta", lambda v: _finite(v) and v > 0, "a positive number"),
    ("kmeans.iterations", lambda v: _finite(v) and _positive_int(v),
     "a positive integer"),
    ("kmeans.restarts", lambda v: _finite(v) and _positive_int(v),
     "a positive integer"),
    ("kmeans.max_attempts", lambda v: _finite(v) and _positive_int(v),
     "a positive integer"),
    ("checks.pc1_threshold", lambda v: _finite(v) and 0 < v <= 1,
     "in (0, 1]"),
    ("checks.assignment_alpha", lambda v: _finite(v) and 0 < v < 1,
     "in (0, 1)"),
    ("differences.threshold", lambda v: _finite(v) and 0 <= v <= 1,
     "in [0, 1]"),
)


# ═══════════════════════════════════════════════════════════════════
# DEFAULT_PARAMETERS
# ═══════════════════════════════════════════════════════════════════

_DEFAULT_DATA: Dict[str, Number] = {

    # ── kmeans: constrained clustering ─────────────────────────
    "kmeans.delta": 1e-4,           # centroid movement stop criterion
    "kmeans.iterations": 50,        # max assignment/update rounds
    "kmeans.restarts": 20,          # independent initialisations
    "kmeans.max_attempts": 10,      # re-draws after an empty cluster

    # ── checks: per-chromosome sanity checks ──────────────────
    "checks.pc1_threshold": 0.75,   # min variance on centroid PC1
    "checks.assignment_alpha": 0.05,  # A-vs-B ratio test level

    # ── differences: reporting ────────────────────────────────
    "differences.threshold": 0.05,  # adjusted p-value cut-off
}


DEFAULT_PARAMETERS: ParameterRegistry = ParameterRegistry(
    _DEFAULT_DATA, name="default",
)
"""The default parameter registry."""


LEGACY_NAMES: Dict[str, str] = {
    "kMeansDelta": "kmeans.delta",
    "kMeansIterations": "kmeans.iterations",
    "kMeansRestarts": "kmeans.restarts",
    "PC1CheckThreshold": "checks.pc1_threshold",
}


def from_legacy(
    overrides: Mapping[str, Number],
    base: ParameterRegistry = DEFAULT_PARAMETERS,
) -> ParameterRegistry:
    """Apply camelCase overrides (``kMeansDelta``, ...) onto *base*.

    Dotted keys are accepted as well.  Unknown names raise ``KeyError``.
    """
    translated = {}
    for k, v in overrides.items():
        key = LEGACY_NAMES.get(k, k)
        translated[key] = v
    return base.replace(translated, name="legacy")
