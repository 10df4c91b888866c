#########################################################################################
##
##                                  MODEL EVALUATOR
##                                 (opt/evaluator.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from ..models.dosing import DosingEvent
from ..solvers.ivp import SolverOptions, integrate
from .observations import ObservationSet


# PREDICTION RESULT =====================================================================

@dataclass(frozen=True)
class PredictionResult:
    """Predicted means and residual variances, aligned with the observations.

    Parameters
    ----------
    mean : np.ndarray
        Predicted observations, flattened channel by channel.
    variance : np.ndarray
        Predicted residual variances, same length as ``mean``.
    """

    mean: np.ndarray
    variance: np.ndarray


    def __post_init__(self) -> None:
        if self.mean.shape != self.variance.shape:
            raise ValueError(
                f"mean and variance must have the same shape, "
                f"got {self.mean.shape} and {self.variance.shape}"
            )


    def __len__(self) -> int:
        return self.mean.size


# EVALUATOR =============================================================================

class ModelEvaluator:
    """Evaluate a compartmental model at observation times.

    Configures the model with a parameter set, applies the dosing schedule,
    integrates and samples every output channel, then attaches the residual
    variances from the model's error sub-model. Evaluations are pure: the
    evaluator holds only the fixed model structure and solver options.

    Parameters
    ----------
    model : CompartmentModel
        The structural + residual error model.
    solver_options : SolverOptions, optional
        ODE integration settings.
    """

    def __init__(self, model, solver_options: SolverOptions | None = None):
        self.model = model
        self.solver_options = solver_options if solver_options is not None else SolverOptions()


    # PROPERTIES ------------------------------------------------------------------------

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self.model.parameter_names


    @property
    def error_parameters(self) -> tuple[str, ...]:
        return self.model.error_parameters


    @property
    def rtol(self) -> float:
        return self.solver_options.rtol


    @property
    def atol(self) -> float:
        return self.solver_options.atol


    # INTERNAL HELPERS ------------------------------------------------------------------

    def _check_parameters(self, params: Mapping[str, float]) -> dict[str, float]:
        """Require exactly the declared parameters and return a plain dict."""
        declared = set(self.model.parameter_names)
        given = set(params)
        if given != declared:
            missing = sorted(declared - given)
            extra = sorted(given - declared)
            raise ValueError(
                f"{type(self.model).__name__} expects parameters "
                f"{list(self.model.parameter_names)}; missing={missing}, unexpected={extra}"
            )
        return {name: float(params[name]) for name in self.model.parameter_names}


    def _channel_times(self, observation_times) -> list[tuple[int, np.ndarray]]:
        """Resolve observation times into ``(output column, times)`` pairs."""
        outputs = tuple(self.model.outputs)

        if isinstance(observation_times, ObservationSet):
            pairs = [(ch.output, ch.time) for ch in observation_times.channels]
        elif isinstance(observation_times, Mapping):
            pairs = list(observation_times.items())
        else:
            pairs = [(outputs[0], observation_times)]

        resolved = []
        for output, times in pairs:
            if output not in outputs:
                raise ValueError(
                    f"Unknown output '{output}'; {type(self.model).__name__} "
                    f"provides {list(outputs)}"
                )
            t = np.asarray(times, dtype=float).reshape(-1)
            if t.size == 0:
                raise ValueError(f"No observation times for output '{output}'")
            if np.any(np.diff(t) < 0.0):
                raise ValueError(f"Observation times for output '{output}' must be sorted ascending")
            resolved.append((outputs.index(output), t))

        return resolved


    # EVALUATION ------------------------------------------------------------------------

    def evaluate(
        self,
        params: Mapping[str, float],
        observation_times,
        dosing: Sequence[DosingEvent],
    ) -> PredictionResult:
        """Predict means and variances at the observation times.

        Parameters
        ----------
        params : ParameterVector or mapping
            Exactly the parameters declared by the model.
        observation_times : ObservationSet, mapping or array_like
            Sampling times; an array is taken as the model's first output.
        dosing : sequence of DosingEvent
            Doses applied during integration.

        Returns
        -------
        PredictionResult
            Predictions in the same order and count as the observation times.

        Raises
        ------
        ParameterDomainError
            If a parameter violates the model's declared domain.
        IntegrationError
            If the ODE solver cannot complete.
        """
        p = self._check_parameters(params)
        self.model.check_domain(p)

        channels = self._channel_times(observation_times)
        all_times = np.concatenate([t for _, t in channels])

        amounts = integrate(self.model, p, dosing, all_times, self.solver_options)
        outputs = np.asarray(self.model.observe(amounts, p), dtype=float)

        pieces = []
        offset = 0
        for col, t in channels:
            pieces.append(outputs[offset:offset + t.size, col])
            offset += t.size

        mean = np.concatenate(pieces)
        variance = np.asarray(self.model.variance(mean, p), dtype=float).reshape(-1)
        return PredictionResult(mean=mean, variance=variance)
