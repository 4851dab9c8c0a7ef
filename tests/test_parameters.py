"""Tests for the ParameterRegistry.

Covers:
1. ParameterRegistry: reading, immutability, replace, overrides
2. validate(): admissible ranges
3. DEFAULT_PARAMETERS and legacy camelCase names
"""

import numpy as np
import pytest

from hicdoc.errors import InputError
from hicdoc.parameters import (
    DEFAULT_PARAMETERS,
    LEGACY_NAMES,
    ParameterRegistry,
    from_legacy,
)


# ═══════════════════════════════════════════════════════════════════
# 1. ParameterRegistry core behaviour
# ═══════════════════════════════════════════════════════════════════

class TestParameterRegistry:

    def test_reads_clustering_keys(self):
        assert DEFAULT_PARAMETERS["kmeans.restarts"] == 20
        assert "checks.assignment_alpha" in DEFAULT_PARAMETERS
        assert "kmeans.seed" not in DEFAULT_PARAMETERS
        assert len(DEFAULT_PARAMETERS) == 7
        with pytest.raises(KeyError):
            _ = DEFAULT_PARAMETERS["kmeans.seed"]

    def test_repr_names_registry(self):
        fast = DEFAULT_PARAMETERS.replace({"kmeans.restarts": 4}, name="fast")
        assert repr(fast) == "ParameterRegistry('fast', 7 keys)"
        assert ParameterRegistry({}).name == "custom"

    def test_is_read_only(self):
        with pytest.raises(TypeError, match="immutable"):
            DEFAULT_PARAMETERS["kmeans.restarts"] = 1
        data = DEFAULT_PARAMETERS.to_dict()
        data["kmeans.restarts"] = 1
        assert DEFAULT_PARAMETERS["kmeans.restarts"] == 20
        assert ParameterRegistry(data)["kmeans.restarts"] == 1

    def test_replace_leaves_original(self):
        strict = DEFAULT_PARAMETERS.replace({"checks.pc1_threshold": 0.9})
        assert strict["checks.pc1_threshold"] == 0.9
        assert strict["kmeans.delta"] == DEFAULT_PARAMETERS["kmeans.delta"]
        assert DEFAULT_PARAMETERS["checks.pc1_threshold"] == 0.75
        assert strict.name == "default+"

    def test_replace_rejects_typos(self):
        with pytest.raises(KeyError, match="Unknown parameter key"):
            DEFAULT_PARAMETERS.replace({"kmeans.restart": 5})

    def test_equality_ignores_name(self):
        renamed = DEFAULT_PARAMETERS.replace({}, name="copy")
        assert renamed == DEFAULT_PARAMETERS
        assert renamed != DEFAULT_PARAMETERS.replace({"kmeans.delta": 1e-3})


class TestOverrides:

    def test_defaults_have_none(self):
        assert DEFAULT_PARAMETERS.overrides() == {}
        assert DEFAULT_PARAMETERS.replace({"kmeans.restarts": 20}).overrides() == {}

    def test_lists_changed_values_sorted(self):
        params = DEFAULT_PARAMETERS.replace({"kmeans.restarts": 4,
                                             "checks.pc1_threshold": 0.8})
        assert list(params.overrides().items()) == [
            ("checks.pc1_threshold", 0.8), ("kmeans.restarts", 4)]

    def test_against_other_base(self):
        fast = DEFAULT_PARAMETERS.replace({"kmeans.restarts": 4})
        faster = fast.replace({"kmeans.iterations": 10})
        assert faster.overrides(fast) == {"kmeans.iterations": 10}

    def test_extra_keys_count_as_overrides(self):
        data = DEFAULT_PARAMETERS.to_dict()
        data["kmeans.tolerance"] = 0.5
        assert ParameterRegistry(data).overrides() == {"kmeans.tolerance": 0.5}


# ═══════════════════════════════════════════════════════════════════
# 2. Validation
# ═══════════════════════════════════════════════════════════════════

class TestValidate:

    def test_defaults_are_valid(self):
        assert DEFAULT_PARAMETERS.validate() is DEFAULT_PARAMETERS

    def test_numpy_scalars_accepted(self):
        reg = DEFAULT_PARAMETERS.replace({"kmeans.restarts": np.int64(5),
                                          "kmeans.delta": np.float64(1e-3)})
        reg.validate()

    @pytest.mark.parametrize("key,value", [
        ("kmeans.delta", 0.0),
        ("kmeans.delta", -1e-4),
        ("kmeans.delta", float("nan")),
        ("kmeans.iterations", 0),
        ("kmeans.iterations", 2.5),
        ("kmeans.restarts", -3),
        ("kmeans.max_attempts", 0),
        ("checks.pc1_threshold", 0.0),
        ("checks.pc1_threshold", 1.5),
        ("checks.assignment_alpha", 1.0),
        ("differences.threshold", -0.1),
        ("kmeans.restarts", True),
    ])
    def test_out_of_range_raises(self, key, value):
        reg = DEFAULT_PARAMETERS.replace({key: value})
        with pytest.raises(InputError, match=key):
            reg.validate()

    def test_missing_key_raises(self):
        data = DEFAULT_PARAMETERS.to_dict()
        del data["kmeans.restarts"]
        with pytest.raises(InputError, match="Missing parameter"):
            ParameterRegistry(data).validate()

    def test_input_error_is_value_error(self):
        reg = DEFAULT_PARAMETERS.replace({"kmeans.delta": -1.0})
        with pytest.raises(ValueError):
            reg.validate()


# ═══════════════════════════════════════════════════════════════════
# 3. Defaults and legacy names
# ═══════════════════════════════════════════════════════════════════

class TestDefaults:

    def test_default_values(self):
        assert DEFAULT_PARAMETERS["kmeans.delta"] == 1e-4
        assert DEFAULT_PARAMETERS["kmeans.iterations"] == 50
        assert DEFAULT_PARAMETERS["kmeans.restarts"] == 20
        assert DEFAULT_PARAMETERS["checks.pc1_threshold"] == 0.75
        assert DEFAULT_PARAMETERS["differences.threshold"] == 0.05

    def test_name(self):
        assert DEFAULT_PARAMETERS.name == "default"


class TestLegacy:

    def test_all_legacy_names_map_to_known_keys(self):
        for dotted in LEGACY_NAMES.values():
            assert dotted in DEFAULT_PARAMETERS

    def test_from_legacy_translates(self):
        reg = from_legacy({"kMeansRestarts": 5, "PC1CheckThreshold": 0.8})
        assert reg["kmeans.restarts"] == 5
        assert reg["checks.pc1_threshold"] == 0.8
        assert reg.name == "legacy"
        assert DEFAULT_PARAMETERS["kmeans.restarts"] == 20

    def test_from_legacy_accepts_dotted(self):
        assert from_legacy({"kmeans.delta": 1e-3})["kmeans.delta"] == 1e-3

    def test_from_legacy_unknown_raises(self):
        with pytest.raises(KeyError):
            from_legacy({"minLength": 10})
