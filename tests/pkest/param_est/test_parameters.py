########################################################################################
##
##                                  TESTS FOR
##                    'opt/parameters.py' and 'opt/observations.py'
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np
import pytest

from pkest.opt import ObservationChannel, ObservationSet, ParameterVector


# ═══════════════════════════════════════════════════════════════════════════
# ParameterVector
# ═══════════════════════════════════════════════════════════════════════════

class TestParameterVector:

    def test_order_is_preserved(self):
        theta = ParameterVector({"VC": 20.0, "CL": 1.0, "KA": 0.6})
        assert theta.names == ("VC", "CL", "KA")
        assert list(theta) == ["VC", "CL", "KA"]
        np.testing.assert_array_equal(theta.array, [20.0, 1.0, 0.6])

    def test_mapping_access(self):
        theta = ParameterVector([("CL", 1.0), ("VC", 20.0)])
        assert theta["VC"] == 20.0
        assert len(theta) == 2
        assert "CL" in theta
        assert dict(theta) == {"CL": 1.0, "VC": 20.0}

    def test_missing_name_raises_key_error(self):
        with pytest.raises(KeyError):
            ParameterVector({"CL": 1.0})["VC"]

    def test_array_is_read_only(self):
        theta = ParameterVector({"CL": 1.0})
        with pytest.raises(ValueError):
            theta.array[0] = 2.0

    def test_with_values_returns_new_vector(self):
        theta = ParameterVector({"CL": 1.0, "VC": 20.0})
        updated = theta.with_values(VC=25.0)
        assert theta["VC"] == 20.0
        assert updated["VC"] == 25.0
        assert updated.names == theta.names

    def test_with_values_unknown_name(self):
        with pytest.raises(KeyError):
            ParameterVector({"CL": 1.0}).with_values(KA=1.0)

    def test_perturbed(self):
        theta = ParameterVector({"CL": 1.0, "VC": 20.0})
        np.testing.assert_array_equal(theta.perturbed(1, -0.5).array, [1.0, 19.5])
        np.testing.assert_array_equal(theta.array, [1.0, 20.0])

    def test_from_array_length_mismatch(self):
        with pytest.raises(ValueError):
            ParameterVector.from_array(["a", "b"], [1.0])

    def test_equality_and_hash(self):
        a = ParameterVector({"CL": 1.0, "VC": 2.0})
        b = ParameterVector.from_array(("CL", "VC"), [1.0, 2.0])
        c = ParameterVector({"VC": 2.0, "CL": 1.0})
        assert a == b
        assert hash(a) == hash(b)
        assert a != c

    @pytest.mark.parametrize("values", [{}, {"a": np.nan}, [("a", 1.0), ("a", 2.0)]])
    def test_invalid_construction(self, values):
        with pytest.raises(ValueError):
            ParameterVector(values)

    def test_repr_lists_values(self):
        assert repr(ParameterVector({"CL": 1.5})) == "ParameterVector(CL=1.5)"


# ═══════════════════════════════════════════════════════════════════════════
# Observations
# ═══════════════════════════════════════════════════════════════════════════

class TestObservationChannel:

    def test_basic(self):
        ch = ObservationChannel([0.5, 1.0, 1.0], [1.0, 2.0, 2.5])
        assert ch.length == 3
        assert ch.output == "concentration"

    @pytest.mark.parametrize(
        "time, data",
        [
            ([1.0, 0.5], [1.0, 2.0]),      # decreasing
            ([-1.0, 0.5], [1.0, 2.0]),     # negative
            ([0.5, 1.0], [1.0]),           # length mismatch
            ([], []),                      # empty
            ([0.5, np.inf], [1.0, 2.0]),   # non-finite
        ],
    )
    def test_invalid(self, time, data):
        with pytest.raises(ValueError):
            ObservationChannel(time, data)


class TestObservationSet:

    def test_flattened_channel_by_channel(self):
        obs = ObservationSet([
            ObservationChannel([1.0, 2.0], [10.0, 20.0], "parent"),
            ObservationChannel([0.5], [3.0], "metabolite"),
        ])
        assert obs.outputs == ("parent", "metabolite")
        assert len(obs) == 3
        np.testing.assert_array_equal(obs.times, [1.0, 2.0, 0.5])
        np.testing.assert_array_equal(obs.values, [10.0, 20.0, 3.0])

    def test_from_mapping(self):
        obs = ObservationSet.from_mapping({"concentration": ([1.0], [2.0])})
        assert obs.outputs == ("concentration",)

    def test_duplicate_outputs_rejected(self):
        with pytest.raises(ValueError):
            ObservationSet([ObservationChannel([1.0], [1.0]), ObservationChannel([2.0], [1.0])])

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            ObservationSet([])
