#########################################################################################
##
##                 FINITE-DIFFERENCE FISHER INFORMATION AND COVARIANCE
##                                (opt/uncertainty.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import scipy.linalg as sci_linalg

from ..exceptions import InvalidVarianceError, SingularInformationMatrixError
from ..models.dosing import DosingEvent
from ..utils.logger import LoggerManager
from .evaluator import ModelEvaluator
from .observations import ObservationSet
from .parameters import ParameterVector

logger = LoggerManager().get_logger("opt.uncertainty")

# RSE (percent) above which a parameter is reported as imprecisely estimated
RSE_LIMIT = 50.0
CORRELATION_LIMIT = 0.95


# HELPERS ===============================================================================

def finite_difference_steps(values, rtol: float, atol: float) -> np.ndarray:
    """Central-difference steps ``h_i = sqrt(rtol) * max(|theta_i|, atol)``."""
    values = np.asarray(values, dtype=float)
    return np.sqrt(rtol) * np.maximum(np.abs(values), atol)


def mean_information(d_mean: np.ndarray, variance: np.ndarray, mean_mask: np.ndarray) -> np.ndarray:
    """Variance-weighted mean-sensitivity term ``J_mu^T V^-1 J_mu``.

    Only parameters flagged in *mean_mask* (those entering the predicted
    mean) contribute; the rows and columns of pure error parameters are zero.
    """
    mask = np.asarray(mean_mask, dtype=bool)
    n_p = mask.size
    J = np.asarray(d_mean, dtype=float)[:, mask]
    w = 1.0 / np.asarray(variance, dtype=float)

    M = np.zeros((n_p, n_p))
    M[np.ix_(mask, mask)] = J.T @ (J * w[:, None])
    return M


def variance_information(d_variance: np.ndarray, variance: np.ndarray, scale: float = 1.0) -> np.ndarray:
    """Variance-sensitivity term ``scale * J_v^T V^-2 J_v`` over all parameters."""
    J = np.asarray(d_variance, dtype=float)
    w = 1.0 / np.asarray(variance, dtype=float) ** 2
    return scale * (J.T @ (J * w[:, None]))


def invert_information(information: np.ndarray, names: Sequence[str] = ()) -> np.ndarray:
    """Invert a symmetric positive definite information matrix.

    Raises
    ------
    SingularInformationMatrixError
        If the matrix has non-finite entries, is not numerically positive
        definite, or its inverse is not finite.
    """
    M = np.asarray(information, dtype=float)
    n_p = M.shape[0]

    if not np.all(np.isfinite(M)):
        raise SingularInformationMatrixError("matrix has non-finite entries", matrix=M)

    M = 0.5 * (M + M.T)
    eigenvalues = np.linalg.eigvalsh(M)

    null = [names[i] for i in range(min(len(names), n_p)) if not np.any(M[i])]
    if null:
        raise SingularInformationMatrixError(
            f"no sensitivity to parameter(s) {null}", matrix=M, eigenvalues=eigenvalues
        )

    if eigenvalues[-1] <= 0.0 or eigenvalues[0] <= eigenvalues[-1] * n_p * np.finfo(float).eps:
        raise SingularInformationMatrixError(
            f"not positive definite (eigenvalues {eigenvalues[0]:.3g} .. {eigenvalues[-1]:.3g})",
            matrix=M,
            eigenvalues=eigenvalues,
        )

    try:
        factor = sci_linalg.cho_factor(M)
    except np.linalg.LinAlgError as exc:
        raise SingularInformationMatrixError(str(exc), matrix=M, eigenvalues=eigenvalues) from exc

    covariance = sci_linalg.cho_solve(factor, np.eye(n_p))
    covariance = 0.5 * (covariance + covariance.T)

    if not np.all(np.isfinite(covariance)) or np.any(np.diag(covariance) < 0.0):
        raise SingularInformationMatrixError(
            "inverse is not a valid covariance matrix", matrix=M, eigenvalues=eigenvalues
        )
    return covariance


def _build_stats(covariance: np.ndarray, information: np.ndarray, estimates: np.ndarray) -> dict:
    """Standard errors, RSE, correlation and FIM spectrum from a covariance matrix."""
    std_errors = np.sqrt(np.diag(covariance))

    with np.errstate(divide="ignore", invalid="ignore"):
        rse = np.where(estimates != 0.0, std_errors / np.abs(estimates) * 100.0, np.inf)
        correlation = covariance / np.outer(std_errors, std_errors)
    np.fill_diagonal(correlation, 1.0)

    eigenvalues = np.linalg.eigvalsh(information)[::-1]
    condition_number = (
        float(eigenvalues[0] / eigenvalues[-1]) if eigenvalues[-1] > 0.0 else np.inf
    )

    return dict(
        std_errors=std_errors,
        relative_standard_errors=rse,
        correlation=correlation,
        eigenvalues=eigenvalues,
        condition_number=condition_number,
    )


def _print_param_table(names, estimates, std_errors, rse, rse_limit, W=72):
    """Print estimates with standard errors, RSE and Wald 95% intervals."""
    dash = "-" * W
    print(f"  {'Parameter':<12} {'Estimate':>11} {'Std Error':>11} {'RSE':>9}   {'95% CI':<20}")
    print(dash)
    for name, val, se, r in zip(names, estimates, std_errors, rse):
        rse_str = f"{r:.1f}%" if np.isfinite(r) else "N/A"
        flag = " *" if r > rse_limit else ""
        ci = f"[{val - 1.96 * se:.4g}, {val + 1.96 * se:.4g}]"
        print(f"  {name:<12} {val:>11.5g} {se:>11.4g} {rse_str:>9}   {ci:<20}{flag}")
    print(dash)


def _print_precision_flags(result: "CovarianceResult", rse_limit, correlation_limit):
    """Print identifiability warnings: imprecise parameters and strong correlations."""
    imprecise = result.imprecise(rse_limit)
    if imprecise:
        print(f"  * RSE above {rse_limit:g}%: {', '.join(imprecise)}")
    else:
        print(f"  All parameters have RSE <= {rse_limit:g}%")

    pairs = result.correlated_pairs(correlation_limit)
    for a, b, r in pairs:
        print(f"  Correlation {a} ~ {b} = {r:+.3f}")
    if not pairs:
        print(f"  No correlations beyond +/-{correlation_limit:g}")

    digits = np.log10(result.condition_number) if np.isfinite(result.condition_number) else np.inf
    print(f"  FIM condition number : {result.condition_number:.3g}  (~{digits:.1f} digits lost)")


# SENSITIVITIES =========================================================================

@dataclass(frozen=True)
class Sensitivities:
    """Central-difference derivatives of the predictions at one point.

    Attributes
    ----------
    names : tuple of str
        Parameter names, column order of the derivative matrices.
    mean, variance : np.ndarray, shape (n_obs,)
        Predictions at the unperturbed parameters.
    d_mean, d_variance : np.ndarray, shape (n_obs, n_params)
        Derivatives of the predicted mean and variance. ``d_mean`` columns of
        pure error parameters are zero.
    steps : np.ndarray, shape (n_params,)
        Finite-difference step per parameter.
    mean_mask : np.ndarray of bool, shape (n_params,)
        ``True`` for parameters that enter the predicted mean.
    """

    names: tuple
    mean: np.ndarray
    variance: np.ndarray
    d_mean: np.ndarray
    d_variance: np.ndarray
    steps: np.ndarray
    mean_mask: np.ndarray


# COVARIANCE RESULT =====================================================================

class CovarianceResult:
    """Parameter covariance at an estimate, with derived precision summaries.

    Parameters
    ----------
    names : sequence of str
        Parameter names in covariance row order.
    estimates : array_like
        Parameter values at which the information was evaluated.
    information : np.ndarray
        Fisher information approximation.
    covariance : np.ndarray
        Its inverse.

    Attributes
    ----------
    std_errors : np.ndarray
        ``sqrt(diag(covariance))``.
    relative_standard_errors : np.ndarray
        ``std_errors / |estimates| * 100`` (percent).
    correlation : np.ndarray
        Covariance normalised by the outer product of standard errors.
    eigenvalues : np.ndarray
        Information-matrix eigenvalues, descending.
    condition_number : float
        Largest over smallest information eigenvalue.
    """

    def __init__(self, names, estimates, information, covariance):
        self.names = tuple(names)
        self.estimates = np.asarray(estimates, dtype=float)
        self.information = np.asarray(information, dtype=float)
        self.covariance = np.asarray(covariance, dtype=float)

        stats = _build_stats(self.covariance, self.information, self.estimates)
        self.std_errors = stats["std_errors"]
        self.relative_standard_errors = stats["relative_standard_errors"]
        self.correlation = stats["correlation"]
        self.eigenvalues = stats["eigenvalues"]
        self.condition_number = stats["condition_number"]


    def __getitem__(self, key: tuple[str, str]) -> float:
        """Covariance entry by parameter names, ``cov["CL", "VC"]``."""
        i, j = (self.names.index(k) for k in key)
        return float(self.covariance[i, j])


    def as_dict(self) -> dict[str, dict[str, float]]:
        """``{name: {"estimate", "std_error", "rse"}}`` summary."""
        return {
            name: {
                "estimate": float(self.estimates[i]),
                "std_error": float(self.std_errors[i]),
                "rse": float(self.relative_standard_errors[i]),
            }
            for i, name in enumerate(self.names)
        }


    def imprecise(self, rse_limit: float = RSE_LIMIT) -> tuple[str, ...]:
        """Names of parameters whose RSE exceeds *rse_limit* percent."""
        return tuple(
            name for name, r in zip(self.names, self.relative_standard_errors) if r > rse_limit
        )


    def correlated_pairs(self, limit: float = CORRELATION_LIMIT) -> list[tuple[str, str, float]]:
        """Parameter pairs with ``|correlation| > limit``, strongest first."""
        n_p = len(self.names)
        pairs = [
            (self.names[i], self.names[j], float(self.correlation[i, j]))
            for i in range(n_p)
            for j in range(i + 1, n_p)
            if abs(self.correlation[i, j]) > limit
        ]
        return sorted(pairs, key=lambda pair: -abs(pair[2]))


    def display(
        self, rse_limit: float = RSE_LIMIT, correlation_limit: float = CORRELATION_LIMIT
    ) -> None:
        """Print the precision table and identifiability warnings."""
        W = 72
        line = "=" * W

        print(line)
        print("  Parameter Precision (finite-difference Fisher information)")
        print(line)
        _print_param_table(
            self.names, self.estimates, self.std_errors, self.relative_standard_errors,
            rse_limit, W,
        )
        _print_precision_flags(self, rse_limit, correlation_limit)
        print(line)


    def __repr__(self) -> str:
        body = ", ".join(
            f"{n}={v:.4g}±{se:.2g}" for n, v, se in zip(self.names, self.estimates, self.std_errors)
        )
        return f"CovarianceResult({body})"


# ESTIMATOR =============================================================================

class UncertaintyEstimator:
    """Covariance of maximum-likelihood estimates from finite differences.

    For every parameter the model is evaluated at ``theta_i +/- h_i`` with
    ``h_i = sqrt(rtol) * max(|theta_i|, atol)``, where ``rtol`` and ``atol``
    are the evaluator's ODE tolerances. These ``2 * n_params`` evaluations
    give both the mean and the variance derivatives. The information matrix
    is the sum of two separately computed terms::

        M = J_mu^T V^-1 J_mu  +  scale * J_v^T V^-2 J_v

    where the first term only involves parameters that enter the mean.

    Parameters
    ----------
    evaluator : ModelEvaluator
        Supplies predictions and the solver tolerances.
    variance_term_scale : float
        Weight of the variance-sensitivity term. ``1.0`` (default) follows
        the classic hand-rolled estimate used for single-subject PK fits;
        ``0.5`` gives the expected Fisher information of a Gaussian model.

    Notes
    -----
    Evaluation errors are never masked: any ``IntegrationError`` or
    ``ParameterDomainError`` raised at a perturbed point aborts the
    computation.
    """

    def __init__(self, evaluator: ModelEvaluator, variance_term_scale: float = 1.0):
        if not variance_term_scale >= 0.0:
            raise ValueError(f"variance_term_scale must be >= 0, got {variance_term_scale}")
        self.evaluator = evaluator
        self.variance_term_scale = float(variance_term_scale)


    def steps(self, params: ParameterVector) -> np.ndarray:
        """Finite-difference step for each parameter of *params*."""
        return finite_difference_steps(params.array, self.evaluator.rtol, self.evaluator.atol)


    def sensitivities(
        self,
        params: ParameterVector,
        observed: ObservationSet,
        dosing: Sequence[DosingEvent],
    ) -> Sensitivities:
        """Evaluate central-difference mean and variance derivatives at *params*."""
        if not isinstance(params, ParameterVector):
            params = ParameterVector(params)

        base = self.evaluator.evaluate(params, observed, dosing)
        bad = np.flatnonzero(~(np.isfinite(base.variance) & (base.variance > 0.0)))
        if bad.size:
            raise InvalidVarianceError(bad)

        error_params = set(self.evaluator.error_parameters)
        mean_mask = np.array([name not in error_params for name in params.names])
        steps = self.steps(params)

        n_obs, n_p = base.mean.size, len(params)
        d_mean = np.zeros((n_obs, n_p))
        d_var = np.zeros((n_obs, n_p))

        for i, h in enumerate(steps):
            plus = self.evaluator.evaluate(params.perturbed(i, h), observed, dosing)
            minus = self.evaluator.evaluate(params.perturbed(i, -h), observed, dosing)

            if mean_mask[i]:
                d_mean[:, i] = (plus.mean - minus.mean) / (2.0 * h)
            d_var[:, i] = (plus.variance - minus.variance) / (2.0 * h)

        return Sensitivities(
            names=params.names,
            mean=base.mean,
            variance=base.variance,
            d_mean=d_mean,
            d_variance=d_var,
            steps=steps,
            mean_mask=mean_mask,
        )


    def information_matrix(self, sens: Sensitivities) -> np.ndarray:
        """Assemble the information matrix from precomputed sensitivities."""
        return (
            mean_information(sens.d_mean, sens.variance, sens.mean_mask)
            + variance_information(sens.d_variance, sens.variance, self.variance_term_scale)
        )


    def covariance(
        self,
        params: ParameterVector,
        observed: ObservationSet,
        dosing: Sequence[DosingEvent],
    ) -> CovarianceResult:
        """Covariance matrix of the estimates at *params*.

        Raises
        ------
        SingularInformationMatrixError
            If the information matrix cannot be inverted, e.g. because a
            parameter has no influence on any prediction.
        """
        if not isinstance(params, ParameterVector):
            params = ParameterVector(params)

        sens = self.sensitivities(params, observed, dosing)
        information = self.information_matrix(sens)
        covariance = invert_information(information, params.names)

        result = CovarianceResult(params.names, params.array, information, covariance)
        logger.info(
            "covariance step complete: %d parameter(s), condition number %.3g",
            len(params), result.condition_number,
        )
        return result
