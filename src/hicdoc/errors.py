"""Exception taxonomy and failure records.

Only :class:`InputError` and :class:`ClusteringFailure` are ever raised by
the per-unit code.  The pipeline catches both per (chromosome, condition)
unit and turns them into :class:`UnitFailure` records, so one bad unit
never stops the others.  :class:`HarmonizationGap` and
:class:`SanityCheckFailure` are reported in the result bundle and raised
only on explicit request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

__all__ = [
    "HiCDOCError",
    "InputError",
    "ClusteringFailure",
    "HarmonizationGap",
    "SanityCheckFailure",
    "UnitFailure",
]


class HiCDOCError(Exception):
    """Base class for every error raised by :mod:`hicdoc`.

    Parameters
    ----------
    message : str
    chromosome, condition : optional
        Identity of the unit the error belongs to, when there is one.
    """

    def __init__(
        self,
        message: str,
        *,
        chromosome: Optional[Any] = None,
        condition: Optional[Any] = None,
    ):
        self.chromosome = chromosome
        self.condition = condition
        if chromosome is not None or condition is not None:
            where = _describe(chromosome, condition)
            message = f"{where}: {message}"
        super().__init__(message)


class InputError(HiCDOCError, ValueError):
    """Malformed input: bad shape, non-finite values, bad parameters."""


class ClusteringFailure(HiCDOCError, RuntimeError):
    """Clustering kept producing an empty cluster beyond the retry bound."""


class HarmonizationGap(HiCDOCError):
    """A chromosome has no condition usable as harmonization reference."""


class SanityCheckFailure(HiCDOCError):
    """One or more chromosomes failed the centroid or assignment check."""


def _describe(chromosome, condition) -> str:
    parts = []
    if chromosome is not None:
        parts.append(f"chromosome {chromosome}")
    if condition is not None:
        parts.append(f"condition {condition}")
    return ", ".join(parts)


@dataclass(frozen=True)
class UnitFailure:
    """Record of a unit that could not be clustered.

    Attributes
    ----------
    chromosome, condition
        Unit identity.
    kind : str
        Exception class name (``"InputError"`` or ``"ClusteringFailure"``).
    message : str
    """

    chromosome: Any
    condition: Any
    kind: str
    message: str

    @classmethod
    def from_exception(cls, chromosome, condition, exc: Exception) -> "UnitFailure":
        return cls(
            chromosome=chromosome,
            condition=condition,
            kind=type(exc).__name__,
            message=str(exc),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chromosome": self.chromosome,
            "condition": self.condition,
            "kind": self.kind,
            "message": self.message,
        }
