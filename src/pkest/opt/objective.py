#########################################################################################
##
##                           NEGATIVE LOG-LIKELIHOOD OBJECTIVE
##                                 (opt/objective.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np

from ..exceptions import InvalidVarianceError
from ..models.dosing import DosingEvent
from .evaluator import ModelEvaluator
from .observations import ObservationSet


LOG_2PI = float(np.log(2.0 * np.pi))


# FUNCTIONS =============================================================================

def minus_two_log_likelihood(observed, mean, variance) -> float:
    """Gaussian -2 log-likelihood with observation-specific variances.

    .. math::

        -2\\,LL = n \\ln(2\\pi) + \\sum_i \\left[
            \\frac{(y_i - \\hat y_i)^2}{\\sigma_i^2} + \\ln \\sigma_i^2 \\right]

    Raises
    ------
    InvalidVarianceError
        If any variance is zero, negative or not finite.
    """
    y = np.asarray(observed, dtype=float).reshape(-1)
    mu = np.asarray(mean, dtype=float).reshape(-1)
    var = np.asarray(variance, dtype=float).reshape(-1)

    if not (y.size == mu.size == var.size):
        raise ValueError(
            f"observed, mean and variance must align; got {y.size}, {mu.size}, {var.size}"
        )

    bad = np.flatnonzero(~(np.isfinite(var) & (var > 0.0)))
    if bad.size:
        raise InvalidVarianceError(bad)

    return float(y.size * LOG_2PI + np.sum((y - mu) ** 2 / var + np.log(var)))


def neg_log_likelihood(
    evaluator: ModelEvaluator,
    params: Mapping[str, float],
    observed: ObservationSet,
    dosing: Sequence[DosingEvent],
) -> float:
    """Objective value (-2 log-likelihood) of *observed* under *params*.

    Evaluator errors (``ParameterDomainError``, ``IntegrationError``)
    propagate unchanged.
    """
    pred = evaluator.evaluate(params, observed, dosing)
    return minus_two_log_likelihood(observed.values, pred.mean, pred.variance)


# CLASS =================================================================================

class ObjectiveFunction:
    """Objective bound to one model, data set and dosing schedule.

    The returned value is the -2 log-likelihood (the "objective function
    value" reported by population PK software). It differs from -LL by a
    factor of two, which leaves the optimum unchanged but matters when
    objective values are compared across fits.

    Parameters
    ----------
    evaluator : ModelEvaluator
    observed : ObservationSet
    dosing : sequence of DosingEvent
    """

    def __init__(self, evaluator: ModelEvaluator, observed: ObservationSet, dosing: Sequence[DosingEvent]):
        if not isinstance(observed, ObservationSet):
            raise TypeError(
                f"ObjectiveFunction expects ObservationSet, got {type(observed).__name__}"
            )
        self.evaluator = evaluator
        self.observed = observed
        self.dosing = tuple(dosing)


    @property
    def n_observations(self) -> int:
        return len(self.observed)


    def neg_log_likelihood(self, params: Mapping[str, float]) -> float:
        return neg_log_likelihood(self.evaluator, params, self.observed, self.dosing)


    def __call__(self, params: Mapping[str, float]) -> float:
        return self.neg_log_likelihood(params)
