########################################################################################
##
##                                  TESTS FOR
##          'models/pk.py', 'models/error_models.py' and 'models/dosing.py'
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np
import pytest

from pkest.exceptions import ParameterDomainError
from pkest.models import (
    AdditiveError,
    CombinedError,
    DosingEvent,
    OneCompartmentIV,
    OneCompartmentOral,
    ProportionalError,
    TwoCompartmentOral,
    dosing_table,
)


# ═══════════════════════════════════════════════════════════════════════════
# Model declarations
# ═══════════════════════════════════════════════════════════════════════════

class TestParameterDeclaration:

    def test_one_compartment_oral_parameters(self):
        model = OneCompartmentOral()
        assert model.parameter_names == ("CL", "VC", "KA", "sigma1")
        assert model.error_parameters == ("sigma1",)
        assert model.n_compartments == 2

    def test_error_model_parameters_follow_structural(self):
        model = TwoCompartmentOral(error_model=CombinedError("add", "prop"))
        assert model.parameter_names == ("CL", "VC", "Q", "VP", "KA", "add", "prop")
        assert model.error_parameters == ("add", "prop")

    def test_fixed_error_scale_declares_no_parameter(self):
        model = OneCompartmentIV(error_model=ProportionalError(0.1))
        assert model.parameter_names == ("CL", "VC")
        assert model.error_parameters == ()

    def test_error_parameter_clash_rejected(self):
        with pytest.raises(ValueError, match="collide"):
            OneCompartmentIV(error_model=AdditiveError("CL"))


class TestDomain:

    def test_positive_values_accepted(self):
        OneCompartmentOral().check_domain({"CL": 1.0, "VC": 20.0, "KA": 0.6, "sigma1": 0.1})

    def test_negative_clearance_rejected(self):
        with pytest.raises(ParameterDomainError) as info:
            OneCompartmentOral().check_domain({"CL": -1.0, "VC": 20.0, "KA": 0.6, "sigma1": 0.1})
        assert info.value.name == "CL"
        assert info.value.value == -1.0

    def test_zero_volume_rejected(self):
        with pytest.raises(ParameterDomainError, match="VC"):
            OneCompartmentIV().check_domain({"CL": 1.0, "VC": 0.0, "sigma1": 0.1})

    def test_non_finite_rejected(self):
        with pytest.raises(ParameterDomainError, match="finite"):
            OneCompartmentIV().check_domain({"CL": np.inf, "VC": 1.0, "sigma1": 0.1})

    def test_domain_error_is_value_error(self):
        with pytest.raises(ValueError):
            OneCompartmentIV().check_domain({"CL": 1.0, "VC": -2.0, "sigma1": 0.1})


# ═══════════════════════════════════════════════════════════════════════════
# Right-hand sides and observation functions
# ═══════════════════════════════════════════════════════════════════════════

class TestRightHandSide:

    def test_oral_mass_balance(self):
        p = {"CL": 2.0, "VC": 10.0, "KA": 1.5, "sigma1": 0.1}
        da = OneCompartmentOral().rhs(0.0, np.array([100.0, 50.0]), p)
        np.testing.assert_allclose(da, [-150.0, 150.0 - 0.2 * 50.0])

    def test_two_compartment_distribution_conserves_mass(self):
        p = {"CL": 1e-12, "VC": 10.0, "Q": 3.0, "VP": 30.0, "KA": 1.0, "sigma1": 0.1}
        da = TwoCompartmentOral().rhs(0.0, np.array([0.0, 40.0, 20.0]), p)
        assert abs(da.sum()) < 1e-9

    def test_observe_is_central_concentration(self):
        p = {"CL": 1.0, "VC": 20.0, "KA": 0.6, "sigma1": 0.1}
        a = np.array([[10.0, 40.0], [5.0, 60.0]])
        np.testing.assert_allclose(OneCompartmentOral().observe(a, p), [[2.0], [3.0]])


class TestErrorModels:

    def test_proportional_variance(self):
        var = ProportionalError("s").variance(np.array([1.0, 10.0]), {"s": 0.1})
        np.testing.assert_allclose(var, [0.01, 1.0])

    def test_additive_variance_is_constant(self):
        var = AdditiveError(0.5).variance(np.array([1.0, 10.0, 100.0]), {})
        np.testing.assert_allclose(var, [0.25, 0.25, 0.25])

    def test_combined_variance(self):
        var = CombinedError("a", "b").variance(np.array([2.0]), {"a": 1.0, "b": 0.5})
        np.testing.assert_allclose(var, [2.0])

    def test_proportional_variance_zero_at_zero_mean(self):
        var = ProportionalError().variance(np.array([0.0]), {"sigma1": 0.1})
        assert var[0] == 0.0


# ═══════════════════════════════════════════════════════════════════════════
# Dosing
# ═══════════════════════════════════════════════════════════════════════════

class TestDosing:

    def test_bolus_defaults(self):
        ev = DosingEvent(0.0, 1000.0, 1)
        assert not ev.is_infusion
        assert ev.end == 0.0
        assert ev.rate == np.inf

    def test_infusion_rate(self):
        ev = DosingEvent(1.0, 100.0, 2, duration=4.0)
        assert ev.is_infusion
        assert ev.end == 5.0
        assert ev.rate == 25.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            dict(time=-1.0, amount=1.0),
            dict(time=0.0, amount=np.nan),
            dict(time=0.0, amount=1.0, compartment=0),
            dict(time=0.0, amount=1.0, duration=-1.0),
        ],
    )
    def test_invalid_events_rejected(self, kwargs):
        with pytest.raises(ValueError):
            DosingEvent(**kwargs)

    def test_dosing_table_sorts_rows(self):
        table = dosing_table([(12.0, 500.0, 1), (0.0, 1000.0, 1, 0.5)])
        assert [ev.time for ev in table] == [0.0, 12.0]
        assert table[0].duration == 0.5

    def test_dosing_table_accepts_events(self):
        ev = DosingEvent(0.0, 1.0)
        assert dosing_table([ev]) == (ev,)

    def test_dosing_table_rejects_short_rows(self):
        with pytest.raises(ValueError):
            dosing_table([(0.0, 1.0)])
