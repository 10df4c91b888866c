#########################################################################################
##
##                        PARAMETER ESTIMATION TOOLKIT: PUBLIC API
##                                  (opt/__init__.py)
##
#########################################################################################

from .parameters import ParameterVector
from .observations import ObservationChannel, ObservationSet
from .evaluator import ModelEvaluator, PredictionResult
from .objective import ObjectiveFunction, neg_log_likelihood, minus_two_log_likelihood
from .optimizer import (
    ConvergenceStatus,
    FitOptions,
    FitResult,
    NelderMeadOptimizer,
    minimize,
)
from .uncertainty import (
    CovarianceResult,
    Sensitivities,
    UncertaintyEstimator,
    finite_difference_steps,
    invert_information,
    mean_information,
    variance_information,
)
from .estimator import ParameterEstimator
