#########################################################################################
##
##                                ESTIMATION ERRORS
##                                 (exceptions.py)
##
#########################################################################################

"""Error kinds raised by model evaluation, optimization and uncertainty analysis."""


class EstimationError(Exception):
    """Base exception for all pkest estimation errors."""
    pass


class ParameterDomainError(EstimationError, ValueError):
    """A parameter value lies outside the domain declared by the model."""

    def __init__(self, name: str, value: float, reason: str = "must be positive"):
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"Parameter '{name}' = {value!r}: {reason}")


class IntegrationError(EstimationError):
    """The ODE solver could not complete the requested integration."""

    def __init__(self, reason: str, time: float | None = None):
        self.reason = reason
        self.time = time
        where = f" (segment starting at t={time:g})" if time is not None else ""
        super().__init__(f"Integration failed{where}: {reason}")


class InvalidVarianceError(EstimationError):
    """A predicted residual variance is zero, negative or not finite."""

    def __init__(self, indices):
        self.indices = [int(i) for i in indices]
        shown = ", ".join(str(i) for i in self.indices[:5])
        more = ", ..." if len(self.indices) > 5 else ""
        super().__init__(
            f"Predicted variance must be strictly positive; "
            f"invalid at observation index {shown}{more}"
        )


class OptimizationFailedError(EstimationError):
    """The search could not proceed (e.g. every simplex vertex failed)."""

    def __init__(self, reason: str, n_evaluations: int = 0):
        self.reason = reason
        self.n_evaluations = n_evaluations
        super().__init__(f"Optimization failed after {n_evaluations} evaluation(s): {reason}")


class SingularInformationMatrixError(EstimationError):
    """The Fisher information matrix is not positive definite."""

    def __init__(self, reason: str, matrix=None, eigenvalues=None):
        self.reason = reason
        self.matrix = matrix
        self.eigenvalues = eigenvalues
        super().__init__(f"Information matrix cannot be inverted: {reason}")
