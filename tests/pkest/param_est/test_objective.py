########################################################################################
##
##                                  TESTS FOR
##                               'opt/objective.py'
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np
import pytest

from pkest.exceptions import InvalidVarianceError, ParameterDomainError
from pkest.models import DosingEvent, OneCompartmentOral
from pkest.opt import (
    ModelEvaluator,
    ObjectiveFunction,
    ObservationSet,
    ParameterVector,
    minus_two_log_likelihood,
    neg_log_likelihood,
)


# HELPERS ==============================================================================

T_OBS = [0.2864, 0.5155, 1.0309, 2.0619, 6.0710, 8.0756]
Y_OBS = [5.746, 9.7379, 15.1815, 28.6089, 24.9798, 25.3427]
THETA = ParameterVector({"CL": 1.0, "VC": 20.0, "KA": 0.6, "sigma1": 0.1})
DOSING = (DosingEvent(0.0, 1000.0, 1),)


# TESTS ================================================================================

class TestMinusTwoLogLikelihood:

    def test_hand_computed_value(self):
        y = np.array([1.0, 3.0])
        mu = np.array([2.0, 3.0])
        var = np.array([1.0, 4.0])
        expected = 2.0 * np.log(2.0 * np.pi) + (1.0 + np.log(1.0)) + (0.0 + np.log(4.0))
        assert minus_two_log_likelihood(y, mu, var) == pytest.approx(expected)

    def test_matches_scipy_normal_logpdf(self):
        from scipy.stats import norm

        rng = np.random.default_rng(0)
        y, mu = rng.normal(size=5), rng.normal(size=5)
        var = rng.uniform(0.5, 2.0, size=5)
        ll = norm.logpdf(y, loc=mu, scale=np.sqrt(var)).sum()
        assert minus_two_log_likelihood(y, mu, var) == pytest.approx(-2.0 * ll)

    def test_permutation_invariance(self):
        rng = np.random.default_rng(1)
        y, mu = rng.normal(size=8), rng.normal(size=8)
        var = rng.uniform(0.1, 1.0, size=8)
        perm = rng.permutation(8)
        assert minus_two_log_likelihood(y, mu, var) == pytest.approx(
            minus_two_log_likelihood(y[perm], mu[perm], var[perm])
        )

    @pytest.mark.parametrize("bad", [0.0, -1.0, np.nan])
    def test_invalid_variance(self, bad):
        with pytest.raises(InvalidVarianceError) as info:
            minus_two_log_likelihood([1.0, 2.0], [1.0, 2.0], [1.0, bad])
        assert info.value.indices == [1]

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            minus_two_log_likelihood([1.0], [1.0, 2.0], [1.0, 1.0])


class TestObjectiveFunction:

    def test_equals_likelihood_of_predictions(self):
        ev = ModelEvaluator(OneCompartmentOral())
        obs = ObservationSet.single(T_OBS, Y_OBS)
        pred = ev.evaluate(THETA, obs, DOSING)

        objective = ObjectiveFunction(ev, obs, DOSING)
        assert objective(THETA) == pytest.approx(
            minus_two_log_likelihood(Y_OBS, pred.mean, pred.variance)
        )
        assert objective.n_observations == 6

    def test_function_and_class_agree(self):
        ev = ModelEvaluator(OneCompartmentOral())
        obs = ObservationSet.single(T_OBS, Y_OBS)
        assert neg_log_likelihood(ev, THETA, obs, DOSING) == ObjectiveFunction(ev, obs, DOSING)(THETA)

    def test_zero_prediction_gives_invalid_variance(self):
        # oral dose: nothing in the central compartment at t = 0
        ev = ModelEvaluator(OneCompartmentOral())
        obs = ObservationSet.single([0.0, 1.0], [0.0, 15.0])
        with pytest.raises(InvalidVarianceError) as info:
            ObjectiveFunction(ev, obs, DOSING)(THETA)
        assert info.value.indices == [0]

    def test_evaluator_errors_propagate(self):
        ev = ModelEvaluator(OneCompartmentOral())
        obs = ObservationSet.single(T_OBS, Y_OBS)
        with pytest.raises(ParameterDomainError):
            ObjectiveFunction(ev, obs, DOSING)(THETA.with_values(VC=-5.0))

    def test_requires_observation_set(self):
        with pytest.raises(TypeError):
            ObjectiveFunction(ModelEvaluator(OneCompartmentOral()), Y_OBS, DOSING)
