"""Tests for unit construction, validation and seed derivation."""

import numpy as np
import pandas as pd
import pytest

from hicdoc.errors import HiCDOCError, InputError
from hicdoc.units import (
    INTERACTION_COLUMNS,
    InteractionUnit,
    build_units,
    unit_seed,
)


def _long(matrix, chromosome="chr1", condition="C1", replicate="R1"):
    """Upper triangle of a dense matrix as long-format rows."""
    m = np.asarray(matrix, dtype=float)
    i, j = np.triu_indices(m.shape[0])
    return pd.DataFrame({
        "chromosome": chromosome,
        "position.1": i,
        "position.2": j,
        "condition": condition,
        "replicate": replicate,
        "value": m[i, j],
    })


# ═══════════════════════════════════════════════════════════════════
# InteractionUnit
# ═══════════════════════════════════════════════════════════════════

class TestInteractionUnit:

    def test_from_sequence_numbers_replicates(self):
        unit = InteractionUnit.from_matrices("chr1", "C1",
                                             [np.eye(3), 2 * np.eye(3)])
        assert unit.replicates == (1, 2)
        assert unit.positions == (0, 1, 2)
        assert unit.matrix.shape == (6, 3)
        assert unit.key == ("chr1", "C1")

    def test_sequence_with_replicate_names(self):
        unit = InteractionUnit.from_matrices(
            "chr1", "C1", [np.eye(2), np.eye(2)], replicates=["a", "b"])
        assert unit.replicates == ("a", "b")
        with pytest.raises(InputError, match="replicate names"):
            InteractionUnit.from_matrices("chr1", "C1", [np.eye(2)],
                                          replicates=["a", "b"])

    def test_nan_becomes_unobserved_zero(self):
        m = np.array([[1.0, np.nan], [np.nan, 2.0]])
        unit = InteractionUnit.from_matrices("chr1", "C1", {"R1": m})
        assert unit.matrix[0, 1] == 0.0
        assert not unit.observed[0, 1]
        assert unit.observed[0, 0]

    def test_must_link_spans_replicates(self):
        unit = InteractionUnit.from_matrices(
            "chr1", "C1", {"R1": np.eye(4), "R2": np.eye(4), "R3": np.eye(4)})
        groups = unit.must_link
        assert len(groups) == 4
        assert list(groups[1]) == [1, 5, 9]
        covered = np.sort(np.concatenate(groups))
        assert list(covered) == list(range(12))

    def test_row_annotations(self):
        unit = InteractionUnit.from_matrices(
            "chr1", "C1", {"R1": np.eye(2), "R2": np.eye(2)}, positions=[10, 20])
        assert list(unit.row_replicates) == ["R1", "R1", "R2", "R2"]
        assert list(unit.row_positions) == [10, 20, 10, 20]

    def test_non_square_raises(self):
        with pytest.raises(InputError, match="replicate R2"):
            InteractionUnit.from_matrices(
                "chr1", "C1", {"R1": np.eye(3), "R2": np.ones((3, 2))})

    def test_position_count_mismatch_raises(self):
        with pytest.raises(InputError, match="positions"):
            InteractionUnit.from_matrices("chr1", "C1", [np.eye(3)],
                                          positions=[0, 1])

    def test_empty_raises(self):
        with pytest.raises(InputError):
            InteractionUnit.from_matrices("chr1", "C1", {})


class TestValidate:

    def test_valid_returns_self(self):
        unit = InteractionUnit.from_matrices("chr1", "C1", [np.eye(3)])
        assert unit.validate() is unit

    def test_too_few_positions(self):
        unit = InteractionUnit.from_matrices("chr1", "C1", [np.eye(1)])
        with pytest.raises(InputError, match="1 positions for 2 clusters"):
            unit.validate(2)

    def test_non_finite_values(self):
        m = np.eye(3)
        m[0, 1] = np.inf
        unit = InteractionUnit.from_matrices("chr1", "C1", [m])
        with pytest.raises(InputError, match="non-finite"):
            unit.validate()

    def test_error_names_unit(self):
        unit = InteractionUnit.from_matrices("chr7", "KO", [np.eye(1)])
        with pytest.raises(HiCDOCError) as info:
            unit.validate()
        assert "chromosome chr7, condition KO" in str(info.value)
        assert info.value.chromosome == "chr7"
        assert info.value.condition == "KO"


# ═══════════════════════════════════════════════════════════════════
# build_units
# ═══════════════════════════════════════════════════════════════════

class TestBuildUnits:

    def test_symmetrised_from_upper_triangle(self):
        m = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 5.0], [3.0, 5.0, 6.0]])
        (unit,) = build_units(_long(m))
        np.testing.assert_array_equal(unit.matrix, m)
        assert unit.observed.all()

    def test_sorted_and_split(self):
        m = np.eye(3) + 1.0
        table = pd.concat([
            _long(m, chromosome="chr2", condition="C2"),
            _long(m, chromosome="chr1", condition="C2"),
            _long(m, chromosome="chr1", condition="C1", replicate="R2"),
            _long(m, chromosome="chr1", condition="C1", replicate="R1"),
        ], ignore_index=True)
        units = build_units(table)
        assert [u.key for u in units] == [
            ("chr1", "C1"), ("chr1", "C2"), ("chr2", "C2")]
        assert units[0].replicates == ("R1", "R2")

    def test_positions_shared_across_conditions(self):
        m3 = np.ones((3, 3))
        m2 = np.ones((2, 2))
        table = pd.concat([_long(m3, condition="C1"),
                           _long(m2, condition="C2")], ignore_index=True)
        c1, c2 = build_units(table)
        assert c1.positions == c2.positions == (0, 1, 2)
        assert not c2.observed[2].any()

    def test_nan_values_dropped(self):
        m = np.ones((3, 3))
        table = _long(m)
        table2 = _long(m, replicate="R2")
        table2["value"] = np.nan
        units = build_units(pd.concat([table, table2], ignore_index=True))
        assert units[0].replicates == ("R1",)

    def test_filter_chromosomes(self):
        m = np.ones((2, 2))
        table = pd.concat([_long(m, chromosome="chr1"),
                           _long(m, chromosome="chr2")], ignore_index=True)
        units = build_units(table, chromosomes=["chr2"])
        assert [u.chromosome for u in units] == ["chr2"]

    def test_missing_columns_raise(self):
        table = _long(np.ones((2, 2))).drop(columns=["replicate"])
        with pytest.raises(InputError, match="replicate"):
            build_units(table)

    def test_input_not_modified(self):
        table = _long(np.ones((2, 2)))
        before = table.copy()
        build_units(table)
        pd.testing.assert_frame_equal(table, before)
        assert list(INTERACTION_COLUMNS) == list(table.columns)


# ═══════════════════════════════════════════════════════════════════
# unit_seed
# ═══════════════════════════════════════════════════════════════════

class TestUnitSeed:

    def test_deterministic(self):
        assert unit_seed(3215, "chr1", "C1") == unit_seed(3215, "chr1", "C1")

    def test_depends_on_every_part(self):
        base = unit_seed(3215, "chr1", "C1")
        assert unit_seed(3216, "chr1", "C1") != base
        assert unit_seed(3215, "chr2", "C1") != base
        assert unit_seed(3215, "chr1", "C2") != base

    def test_fits_in_64_bits(self):
        assert 0 <= unit_seed(0, "chrX", "WT") < 2 ** 64
