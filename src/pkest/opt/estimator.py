#########################################################################################
##
##                     PARAMETER ESTIMATION DRIVER (fit + covariance)
##                                 (opt/estimator.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..models.dosing import DosingEvent, dosing_table
from ..solvers.ivp import SolverOptions
from ..utils.logger import LoggerManager
from .evaluator import ModelEvaluator
from .objective import ObjectiveFunction
from .observations import ObservationSet
from .optimizer import FitOptions, FitResult, NelderMeadOptimizer
from .parameters import ParameterVector
from .uncertainty import CovarianceResult, UncertaintyEstimator

logger = LoggerManager().get_logger("opt.estimator")


# CLASS =================================================================================

class ParameterEstimator:
    """Maximum-likelihood estimation driver for one subject.

    Wires a model, its observations and a dosing schedule through the
    evaluator, objective, Nelder-Mead search and finite-difference
    covariance step. Everything is passed in explicitly; the only state kept
    is the most recent fit and covariance result.

    Parameters
    ----------
    model : CompartmentModel
        Structural and residual error model.
    observed : ObservationSet
        Measured data.
    dosing : sequence of DosingEvent or rows
        Doses, either ``DosingEvent`` objects or
        ``(time, amount, compartment[, duration])`` rows.
    solver_options : SolverOptions, optional
        ODE integration settings (also set the finite-difference steps).
    fit_options : FitOptions or mapping, optional
        Default optimizer options.
    variance_term_scale : float
        See :class:`UncertaintyEstimator`.

    Example
    -------
    .. code-block:: python

        from pkest import OneCompartmentOral
        from pkest.opt import ObservationSet, ParameterEstimator

        est = ParameterEstimator(
            OneCompartmentOral(),
            ObservationSet.single(t_obs, c_obs),
            dosing=[(0.0, 1000.0, 1)],
        )
        fit = est.fit({"CL": 1.0, "VC": 10.0, "KA": 0.6, "sigma1": 0.1})
        cov = est.covariance()
        est.display()
    """

    def __init__(
        self,
        model,
        observed: ObservationSet,
        dosing: Sequence[DosingEvent | Sequence[float]],
        *,
        solver_options: SolverOptions | None = None,
        fit_options: FitOptions | Mapping[str, Any] | None = None,
        variance_term_scale: float = 1.0,
    ):
        if not isinstance(observed, ObservationSet):
            raise TypeError(
                f"ParameterEstimator expects ObservationSet, got {type(observed).__name__}"
            )

        self.model = model
        self.observed = observed
        self.dosing = dosing_table(dosing)

        self.evaluator = ModelEvaluator(model, solver_options)
        self.objective = ObjectiveFunction(self.evaluator, observed, self.dosing)
        self.optimizer = NelderMeadOptimizer(fit_options)
        self.uncertainty = UncertaintyEstimator(self.evaluator, variance_term_scale)

        self.result: FitResult | None = None
        self.covariance_result: CovarianceResult | None = None


    # INTERNAL HELPERS ------------------------------------------------------------------

    def _as_parameters(self, values: ParameterVector | Mapping[str, float]) -> ParameterVector:
        """Order *values* as the model declares its parameters."""
        names = self.model.parameter_names
        missing = [n for n in names if n not in values]
        extra = [n for n in values if n not in names]
        if missing or extra:
            raise ValueError(
                f"{type(self.model).__name__} expects parameters {list(names)}; "
                f"missing={missing}, unexpected={extra}"
            )
        return ParameterVector((n, values[n]) for n in names)


    # ESTIMATION API --------------------------------------------------------------------

    def evaluate(self, params: ParameterVector | Mapping[str, float]):
        """Predictions at *params* for the registered observations."""
        return self.evaluator.evaluate(self._as_parameters(params), self.observed, self.dosing)


    def fit(
        self,
        initial_guess: ParameterVector | Mapping[str, float],
        options: FitOptions | Mapping[str, Any] | None = None,
    ) -> FitResult:
        """Run the Nelder-Mead search from *initial_guess*."""
        theta0 = self._as_parameters(initial_guess)
        logger.info("fitting %s to %d observation(s)", type(self.model).__name__, len(self.observed))

        self.result = self.optimizer.minimize(self.objective, theta0, options)
        self.covariance_result = None
        return self.result


    def covariance(self, params: ParameterVector | Mapping[str, float] | None = None) -> CovarianceResult:
        """Covariance at *params*, defaulting to the most recent fit estimate."""
        if params is None:
            if self.result is None:
                raise ValueError(
                    "No params provided and no fit result available. "
                    "Run fit() first or pass params explicitly."
                )
            params = self.result.estimate

        self.covariance_result = self.uncertainty.covariance(
            self._as_parameters(params), self.observed, self.dosing
        )
        return self.covariance_result


    # RESULTS ---------------------------------------------------------------------------

    def display(self) -> None:
        """Print the fit summary and, when available, the precision table."""
        W = 72
        print("=" * W)
        print("  Maximum-Likelihood Estimation Results")
        print("=" * W)

        if self.result is None:
            print("  (not fitted)")
            print("=" * W)
            return

        res = self.result
        print(f"  Model          : {type(self.model).__name__}")
        print(f"  Status         : {res.status.value}  ({res.message})")
        print(f"  -2LL           : {res.objective:.6g}")
        print(f"  AIC / BIC      : {res.aic:.6g} / {res.bic:.6g}")
        print(f"  Iterations     : {res.iterations}  (evaluations: {res.n_evaluations}, "
              f"failed: {res.n_failed_evaluations})")
        print("-" * W)
        for name, value in res.estimate.items():
            print(f"  {name:<22} = {value:.6g}")
        print("=" * W)

        if self.covariance_result is not None:
            print()
            self.covariance_result.display()
