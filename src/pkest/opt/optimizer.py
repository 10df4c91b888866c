#########################################################################################
##
##                         NELDER-MEAD MAXIMUM-LIKELIHOOD SEARCH
##                                 (opt/optimizer.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Mapping

import numpy as np
import scipy.optimize as sci_opt

from ..exceptions import (
    IntegrationError,
    InvalidVarianceError,
    OptimizationFailedError,
    ParameterDomainError,
)
from ..utils.logger import LoggerManager
from .parameters import ParameterVector

logger = LoggerManager().get_logger("opt.optimizer")


# OPTIONS ===============================================================================

class ConvergenceStatus(str, Enum):
    """Why the search stopped."""

    CONVERGED = "tolerance satisfied"
    MAX_ITERATIONS = "iteration limit reached"
    FAILED = "solver reported failure"


@dataclass(frozen=True)
class FitOptions:
    """Nelder-Mead stopping and start-up settings.

    Parameters
    ----------
    max_iterations : int
        Cap on objective (model) evaluations.
    x_tol : float
        Stop threshold on the simplex extent in log-parameter space, i.e. on
        the relative change of every parameter.
    f_tol : float
        Stop threshold on the spread of objective values across the simplex,
        relative to ``max(1, |objective(initial_guess)|)``.
    initial_step : float
        Relative size of the initial simplex along each parameter.
    adaptive : bool
        Use dimension-adapted Nelder-Mead coefficients.

    Notes
    -----
    The search stops as soon as either threshold is met. Setting one of them
    to ``0`` leaves the other as the only stopping criterion.
    """

    max_iterations: int = 5000
    x_tol: float = 1e-6
    f_tol: float = 1e-10
    initial_step: float = 0.1
    adaptive: bool = False

    _ALIASES = {
        "maxIterations": "max_iterations",
        "xTolerance": "x_tol",
        "fTolerance": "f_tol",
        "initialStep": "initial_step",
    }


    def __post_init__(self) -> None:
        if int(self.max_iterations) < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if not self.x_tol >= 0.0 or not self.f_tol >= 0.0:
            raise ValueError("x_tol and f_tol must be non-negative")
        if not self.initial_step > 0.0:
            raise ValueError(f"initial_step must be > 0, got {self.initial_step}")


    @classmethod
    def coerce(cls, options: "FitOptions | Mapping[str, Any] | None") -> "FitOptions":
        """Accept ``None``, a :class:`FitOptions` or a mapping of option names."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise TypeError(f"Expected FitOptions or mapping, got {type(options).__name__}")

        valid = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = cls._ALIASES.get(key, key)
            if name not in valid:
                raise ValueError(f"Unknown optimizer option '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


# RESULT ================================================================================

@dataclass
class FitResult:
    """Maximum-likelihood fit result.

    ``objective`` is the -2 log-likelihood at ``estimate``.
    """

    estimate: ParameterVector
    objective: float
    iterations: int
    status: ConvergenceStatus
    message: str
    n_evaluations: int = 0
    n_failed_evaluations: int = 0
    n_observations: int | None = None


    @property
    def success(self) -> bool:
        return self.status is ConvergenceStatus.CONVERGED


    @property
    def log_likelihood(self) -> float:
        return -0.5 * self.objective


    @property
    def aic(self) -> float:
        return self.objective + 2.0 * len(self.estimate)


    @property
    def bic(self) -> float:
        if self.n_observations is None:
            raise ValueError("BIC requires the number of observations")
        return self.objective + len(self.estimate) * np.log(self.n_observations)


    def __repr__(self) -> str:
        return (
            f"FitResult({self.status.name}, objective={self.objective:.6g}, "
            f"iterations={self.iterations}, nfev={self.n_evaluations}, "
            f"estimate={self.estimate})"
        )


# PENALIZED OBJECTIVE ===================================================================

class _PenalizedObjective:
    """Optimizer-space wrapper: log-parameters in, objective (or ``+inf``) out.

    Evaluation failures that only say "this point is infeasible" become an
    infinite objective so the simplex can move away from them. If every
    vertex of the initial simplex fails the search cannot proceed.
    """

    _RECOVERABLE = (IntegrationError, ParameterDomainError, InvalidVarianceError)

    def __init__(self, objective: Callable[[ParameterVector], float], template: ParameterVector):
        self.objective = objective
        self.template = template
        self.n_vertices = len(template) + 1
        self.n_evaluations = 0
        self.n_failed = 0
        self._memo: tuple[bytes, float] | None = None
        self.log: list[tuple[np.ndarray, float]] = []


    def to_params(self, z: np.ndarray) -> ParameterVector:
        return self.template.with_array(np.exp(z))


    def remember(self, z: np.ndarray, value: float) -> None:
        self._memo = (np.asarray(z, dtype=float).tobytes(), value)


    def __call__(self, z: np.ndarray) -> float:
        z = np.asarray(z, dtype=float)
        if self._memo is not None and self._memo[0] == z.tobytes():
            self.log.append((z.copy(), self._memo[1]))
            return self._memo[1]

        self.n_evaluations += 1
        with np.errstate(over="ignore"):
            theta = np.exp(z)

        if not np.all(np.isfinite(theta)):
            logger.debug("objective penalized at overflowing point %s", z)
            value = np.inf
        else:
            try:
                value = float(self.objective(self.template.with_array(theta)))
            except self._RECOVERABLE as exc:
                logger.debug("objective penalized at %s: %s", theta, exc)
                value = np.inf

        if not np.isfinite(value):
            self.n_failed += 1
            value = np.inf

        if self.n_evaluations == self.n_vertices and self.n_failed == self.n_evaluations:
            raise OptimizationFailedError(
                "every vertex of the initial simplex failed to evaluate",
                self.n_evaluations,
            )
        self.log.append((z.copy(), value))
        return value


# SIMPLEX MONITOR =======================================================================

class _SimplexMonitor:
    """Nelder-Mead callback stopping the search when either tolerance holds.

    SciPy only hands the best vertex to the callback, so the monitor replays
    each iteration from the objective's evaluation log: one or two trial
    points replace the worst vertex, while ``n + 2`` points mean the simplex
    was shrunk towards the best vertex. The replayed simplex is sorted the
    same way SciPy sorts it. If it ever disagrees with the best vertex SciPy
    reports, the monitor stops checking and SciPy's own rule (both
    tolerances) applies. Iterations cut short by the evaluation limit are
    never checked.
    """

    def __init__(self, fun: "_PenalizedObjective", x_tol: float, f_tol: float, max_calls: int):
        self.fun = fun
        self.max_calls = max_calls
        self.n_calls = 0
        self.x_tol = x_tol
        self.f_tol = f_tol
        self.sim: np.ndarray | None = None
        self.fsim: np.ndarray | None = None
        self.in_sync = True
        self.reason: str | None = None


    def _pop_log(self) -> list[tuple[np.ndarray, float]]:
        log = self.fun.log
        self.fun.log = []
        self.n_calls += len(log)
        return log


    def _replay(self) -> None:
        log = self._pop_log()

        if self.n_calls >= self.max_calls:
            self.in_sync = False
            return

        if self.sim is None:
            n_vertices = self.fun.n_vertices
            if len(log) < n_vertices:
                self.in_sync = False
                return
            self.sim = np.array([z for z, _ in log[:n_vertices]])
            self.fsim = np.array([f for _, f in log[:n_vertices]])
            self._sort()
            log = log[n_vertices:]

        n = self.sim.shape[1]
        if len(log) == n + 2:
            # shrink: the last n trial points are the new vertices 1..n
            for j, (z, f) in enumerate(log[2:], start=1):
                self.sim[j] = z
                self.fsim[j] = f
        elif len(log) == 1 or (len(log) == 2 and log[0][1] != log[1][1]):
            best = int(np.argmin([f for _, f in log]))
            self.sim[-1] = log[best][0]
            self.fsim[-1] = log[best][1]
        else:
            self.in_sync = False
            return
        self._sort()


    def _sort(self) -> None:
        ind = np.argsort(self.fsim)
        self.sim = np.take(self.sim, ind, 0)
        self.fsim = np.take(self.fsim, ind, 0)


    def __call__(self, intermediate_result) -> None:
        if not self.in_sync:
            return

        self._replay()
        if not self.in_sync or not np.array_equal(self.sim[0], intermediate_result.x):
            logger.debug("simplex replay lost track; falling back to SciPy's stopping rule")
            self.in_sync = False
            return

        with np.errstate(invalid="ignore"):
            x_extent = np.max(np.abs(self.sim[1:] - self.sim[0]))
            f_spread = np.max(np.abs(self.fsim[1:] - self.fsim[0]))

        if x_extent <= self.x_tol:
            self.reason = f"simplex extent {x_extent:.3g} <= x_tol"
        elif f_spread <= self.f_tol:
            self.reason = f"objective spread {f_spread:.3g} <= f_tol"
        else:
            return
        raise StopIteration


# OPTIMIZER =============================================================================

class NelderMeadOptimizer:
    """Derivative-free minimization of a likelihood objective.

    The search runs on ``log(theta)``, which keeps every candidate positive
    and makes ``x_tol`` a relative tolerance. Each candidate is passed to the
    objective as a fresh :class:`ParameterVector`; only the best is kept.

    Parameters
    ----------
    options : FitOptions or mapping, optional
        Default options for :meth:`minimize`.

    Example
    -------
    .. code-block:: python

        objective = ObjectiveFunction(ModelEvaluator(model), observed, dosing)
        result = NelderMeadOptimizer().minimize(objective, theta0, {"maxIterations": 2000})
    """

    def __init__(self, options: FitOptions | Mapping[str, Any] | None = None):
        self.options = FitOptions.coerce(options)


    def minimize(
        self,
        objective: Callable[[ParameterVector], float],
        initial_guess: ParameterVector,
        options: FitOptions | Mapping[str, Any] | None = None,
    ) -> FitResult:
        """Minimize *objective* starting from *initial_guess*.

        Parameters
        ----------
        objective : callable
            Maps a :class:`ParameterVector` to a scalar objective value.
        initial_guess : ParameterVector
            Strictly positive starting values.
        options : FitOptions or mapping, optional
            Overrides the optimizer's default options.

        Returns
        -------
        FitResult

        Raises
        ------
        OptimizationFailedError
            If the initial simplex cannot be evaluated at all or no finite
            objective value was ever found.
        """
        opts = self.options if options is None else FitOptions.coerce(options)

        if not isinstance(initial_guess, ParameterVector):
            initial_guess = ParameterVector(initial_guess)

        for name, value in initial_guess.items():
            if value <= 0.0:
                raise ParameterDomainError(name, value, "must be positive for the log-space search")

        n = len(initial_guess)
        z0 = np.log(initial_guess.array)
        fun = _PenalizedObjective(objective, initial_guess)

        f0 = fun(z0)
        fun.remember(z0, f0)
        fun.log = []
        f_scale = max(1.0, abs(f0)) if np.isfinite(f0) else 1.0
        f_tol = float(opts.f_tol) * f_scale
        monitor = _SimplexMonitor(fun, float(opts.x_tol), f_tol, int(opts.max_iterations))

        simplex = np.tile(z0, (n + 1, 1))
        simplex[1:] += np.eye(n) * np.log1p(opts.initial_step)

        logger.info(
            "Nelder-Mead start: %d parameter(s), objective=%.6g, max evaluations=%d",
            n, f0, opts.max_iterations,
        )

        with np.errstate(invalid="ignore", over="ignore"):
            res = sci_opt.minimize(
                fun,
                x0=z0,
                method="Nelder-Mead",
                options={
                    "maxfev": int(opts.max_iterations),
                    "maxiter": int(opts.max_iterations),
                    "xatol": float(opts.x_tol),
                    "fatol": f_tol,
                    "initial_simplex": simplex,
                    "adaptive": bool(opts.adaptive),
                },
                callback=monitor,
            )

        if not np.isfinite(res.fun):
            raise OptimizationFailedError(
                "no finite objective value was found", fun.n_evaluations
            )

        message = str(res.message)
        if monitor.reason is not None:
            status = ConvergenceStatus.CONVERGED
            message = f"Tolerance satisfied: {monitor.reason}"
        elif res.status == 0:
            status = ConvergenceStatus.CONVERGED
        elif res.status in (1, 2):
            status = ConvergenceStatus.MAX_ITERATIONS
        else:
            status = ConvergenceStatus.FAILED

        result = FitResult(
            estimate=fun.to_params(res.x),
            objective=float(res.fun),
            iterations=int(res.nit),
            status=status,
            message=message,
            n_evaluations=fun.n_evaluations,
            n_failed_evaluations=fun.n_failed,
            n_observations=getattr(objective, "n_observations", None),
        )

        if status is ConvergenceStatus.MAX_ITERATIONS:
            logger.warning("Nelder-Mead stopped on the iteration limit: %s", result.message)
        logger.info(
            "Nelder-Mead finished (%s): objective=%.6g after %d evaluation(s), %d failed",
            status.value, result.objective, result.n_evaluations, result.n_failed_evaluations,
        )
        return result


def minimize(
    objective: Callable[[ParameterVector], float],
    initial_guess: ParameterVector,
    options: FitOptions | Mapping[str, Any] | None = None,
) -> FitResult:
    """Functional shortcut for ``NelderMeadOptimizer().minimize(...)``."""
    return NelderMeadOptimizer().minimize(objective, initial_guess, options)
