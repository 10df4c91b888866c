from importlib import metadata

try:
    __version__ = metadata.version("pkest")
except Exception:
    __version__ = "unknown"

from .utils.logger import LoggerManager
from .exceptions import (
    EstimationError,
    ParameterDomainError,
    IntegrationError,
    InvalidVarianceError,
    OptimizationFailedError,
    SingularInformationMatrixError,
)
from .models import (
    CompartmentModel,
    DosingEvent,
    dosing_table,
    OneCompartmentOral,
    OneCompartmentIV,
    TwoCompartmentOral,
    ProportionalError,
    AdditiveError,
    CombinedError,
)
from .solvers import SolverOptions
