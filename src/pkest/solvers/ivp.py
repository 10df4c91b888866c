#########################################################################################
##
##                         DOSE-AWARE ODE INTEGRATION (SciPy)
##                                 (solvers/ivp.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
from scipy.integrate import solve_ivp

from ..exceptions import IntegrationError
from ..models.dosing import DosingEvent


# OPTIONS ===============================================================================

@dataclass(frozen=True)
class SolverOptions:
    """ODE solver configuration.

    Parameters
    ----------
    method : str
        Any ``scipy.integrate.solve_ivp`` method. ``"LSODA"`` switches
        automatically between stiff and non-stiff schemes.
    rtol : float
        Relative local error tolerance.
    atol : float
        Absolute local error tolerance.
    max_step : float
        Largest allowed internal step.

    Notes
    -----
    ``rtol`` and ``atol`` also set the finite-difference step used by
    :class:`pkest.opt.UncertaintyEstimator`, so tightening them improves the
    derivative estimates as well as the predictions.
    """

    method: str = "LSODA"
    rtol: float = 1e-8
    atol: float = 1e-10
    max_step: float = np.inf


    def __post_init__(self) -> None:
        if not self.rtol > 0.0:
            raise ValueError(f"rtol must be > 0, got {self.rtol}")
        if not self.atol > 0.0:
            raise ValueError(f"atol must be > 0, got {self.atol}")
        if not self.max_step > 0.0:
            raise ValueError(f"max_step must be > 0, got {self.max_step}")


# HELPERS ===============================================================================

def _infusion_rate(dosing: Sequence[DosingEvent], t: float, n_cmt: int) -> np.ndarray:
    """Summed zero-order input per compartment active on ``[t, next edge)``."""
    rate = np.zeros(n_cmt)
    for ev in dosing:
        if ev.is_infusion and ev.time <= t < ev.end:
            rate[ev.compartment - 1] += ev.rate
    return rate


def _solve_segment(model, p, a0, rate, t0, t1, t_eval, options):
    """Integrate one dose-free segment and return states at ``t_eval``."""

    def fun(t, a):
        return model.rhs(t, a, p) + rate

    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        sol = solve_ivp(
            fun,
            (t0, t1),
            a0,
            method=options.method,
            t_eval=t_eval,
            rtol=options.rtol,
            atol=options.atol,
            max_step=options.max_step,
        )

    if sol.status < 0:
        raise IntegrationError(str(sol.message), time=t0)
    if sol.y.shape[1] != t_eval.size:
        raise IntegrationError("solver stopped before the end of the segment", time=t0)
    if not np.all(np.isfinite(sol.y)):
        raise IntegrationError("non-finite compartment amounts", time=t0)

    return sol.y


# INTEGRATION ===========================================================================

def integrate(
    model,
    p: Mapping[str, float],
    dosing: Sequence[DosingEvent],
    times,
    options: SolverOptions | None = None,
) -> np.ndarray:
    """Integrate a compartmental model under a dosing schedule.

    The system starts empty at ``t = 0`` and is integrated piecewise between
    dose edges (bolus times, infusion starts and ends). A bolus is added to
    its compartment at its time, so an observation taken exactly at a bolus
    time sees the post-dose amounts.

    Parameters
    ----------
    model : CompartmentModel
        Provides ``n_compartments`` and ``rhs(t, a, p)``.
    p : mapping
        Parameter values by name.
    dosing : sequence of DosingEvent
        Doses. Doses after the last requested time are ignored.
    times : array_like
        Non-negative sampling times in any order (duplicates allowed).

    Returns
    -------
    np.ndarray
        Amounts of shape ``(len(times), n_compartments)`` in the order of
        ``times``.

    Raises
    ------
    IntegrationError
        If the solver fails on any segment.
    """
    options = options if options is not None else SolverOptions()

    times = np.asarray(times, dtype=float).reshape(-1)
    if times.size == 0:
        raise ValueError("integrate requires at least one sampling time")
    if not np.all(np.isfinite(times)) or np.any(times < 0.0):
        raise ValueError("sampling times must be finite and non-negative")

    n_cmt = int(model.n_compartments)
    for ev in dosing:
        if ev.compartment > n_cmt:
            raise ValueError(
                f"Dose into compartment {ev.compartment}, but {type(model).__name__} "
                f"has {n_cmt} compartment(s)"
            )

    grid, inverse = np.unique(times, return_inverse=True)
    t_end = float(grid[-1])

    edges = {0.0, t_end}
    for ev in dosing:
        if ev.time <= t_end:
            edges.add(float(ev.time))
        if ev.is_infusion and ev.end < t_end:
            edges.add(float(ev.end))
    edges = np.array(sorted(edges))

    states = np.empty((grid.size, n_cmt))
    a = np.zeros(n_cmt)

    for k, t0 in enumerate(edges):
        for ev in dosing:
            if not ev.is_infusion and ev.time == t0:
                a[ev.compartment - 1] += ev.amount

        states[grid == t0] = a

        if k + 1 == edges.size:
            break

        t1 = edges[k + 1]
        inside = (grid > t0) & (grid < t1)
        t_eval = np.append(grid[inside], t1)

        y = _solve_segment(
            model, p, a, _infusion_rate(dosing, t0, n_cmt), t0, t1, t_eval, options
        )
        states[inside] = y[:, :-1].T
        a = y[:, -1].copy()

    return states[inverse.reshape(-1)]
