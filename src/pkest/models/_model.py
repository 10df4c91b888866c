#########################################################################################
##
##                          COMPARTMENTAL MODEL BASE CLASS
##                                (models/_model.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Mapping

import numpy as np

from ..exceptions import ParameterDomainError
from .error_models import ErrorModel, ProportionalError


# CLASS =================================================================================

class CompartmentModel:
    """Base class for linear and nonlinear compartmental ODE models.

    Subclasses declare their structural parameters and implement the
    right-hand side of the amount ODEs and the observation function. The
    residual error sub-model contributes the remaining (error) parameters.

    Class Attributes
    ----------------
    structural_parameters : tuple[str, ...]
        Parameters that enter the ODEs / observation function.
    n_compartments : int
        Number of state variables. Compartment ids are 1-based.
    outputs : tuple[str, ...]
        Names of the observed output channels, in column order of
        :meth:`observe`.

    Parameters
    ----------
    error_model : ErrorModel, optional
        Residual error model; defaults to ``ProportionalError("sigma1")``.
    """

    structural_parameters: tuple[str, ...] = ()
    n_compartments: int = 1
    outputs: tuple[str, ...] = ("concentration",)

    def __init__(self, error_model: ErrorModel | None = None):
        self.error_model = error_model if error_model is not None else ProportionalError()

        clash = set(self.error_model.parameters) & set(self.structural_parameters)
        if clash:
            raise ValueError(
                f"Error model parameter(s) {sorted(clash)} collide with structural parameters"
            )


    # PROPERTIES ------------------------------------------------------------------------

    @property
    def error_parameters(self) -> tuple[str, ...]:
        """Parameters that affect only the predicted variance."""
        return self.error_model.parameters


    @property
    def parameter_names(self) -> tuple[str, ...]:
        """All declared parameters: structural first, then error parameters."""
        return tuple(self.structural_parameters) + self.error_parameters


    # MODEL INTERFACE -------------------------------------------------------------------

    def check_domain(self, p: Mapping[str, float]) -> None:
        """Raise :class:`ParameterDomainError` if any value is invalid.

        All compartmental parameters are rates, volumes or error scales and
        must be finite and strictly positive.
        """
        for name in self.parameter_names:
            value = float(p[name])
            if not np.isfinite(value):
                raise ParameterDomainError(name, value, "must be finite")
            if value <= 0.0:
                raise ParameterDomainError(name, value, "must be positive")


    def rhs(self, t: float, a: np.ndarray, p: Mapping[str, float]) -> np.ndarray:
        """Time derivative of the compartment amounts."""
        raise NotImplementedError


    def observe(self, a: np.ndarray, p: Mapping[str, float]) -> np.ndarray:
        """Map amounts of shape ``(n_times, n_compartments)`` to outputs
        of shape ``(n_times, len(outputs))``."""
        raise NotImplementedError


    def variance(self, mean: np.ndarray, p: Mapping[str, float]) -> np.ndarray:
        """Predicted residual variance for the predicted means."""
        return self.error_model.variance(mean, p)


    def __repr__(self) -> str:
        return f"{type(self).__name__}(error_model={self.error_model!r})"
