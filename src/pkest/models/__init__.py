#########################################################################################
##
##                            COMPARTMENTAL MODELS: PUBLIC API
##                                (models/__init__.py)
##
#########################################################################################

from ._model import CompartmentModel
from .dosing import DosingEvent, dosing_table
from .error_models import ErrorModel, ProportionalError, AdditiveError, CombinedError
from .pk import OneCompartmentOral, OneCompartmentIV, TwoCompartmentOral
