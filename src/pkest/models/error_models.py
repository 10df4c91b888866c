#########################################################################################
##
##                              RESIDUAL ERROR MODELS
##                             (models/error_models.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Mapping

import numpy as np


# BASE ==================================================================================

class ErrorModel:
    """Residual error sub-model mapping predicted means to predicted variances.

    A scale may be given either as the name of an estimated parameter (looked
    up in the parameter mapping at evaluation time) or as a fixed number, in
    which case it contributes no parameter to the model.
    """

    def __init__(self, **scales: str | float):
        self._scales = dict(scales)


    @property
    def parameters(self) -> tuple[str, ...]:
        """Names of the estimated parameters this error model reads."""
        return tuple(v for v in self._scales.values() if isinstance(v, str))


    def _scale(self, key: str, p: Mapping[str, float]) -> float:
        v = self._scales[key]
        return float(p[v]) if isinstance(v, str) else float(v)


    def variance(self, mean: np.ndarray, p: Mapping[str, float]) -> np.ndarray:
        raise NotImplementedError


    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self._scales.items())
        return f"{type(self).__name__}({args})"


# ERROR MODELS ==========================================================================

class ProportionalError(ErrorModel):
    """Proportional error, ``var = (mean * sigma)^2``."""

    def __init__(self, sigma: str | float = "sigma1"):
        super().__init__(sigma=sigma)


    def variance(self, mean, p):
        mean = np.asarray(mean, dtype=float)
        return (mean * self._scale("sigma", p)) ** 2


class AdditiveError(ErrorModel):
    """Additive (constant) error, ``var = sigma^2``."""

    def __init__(self, sigma: str | float = "sigma1"):
        super().__init__(sigma=sigma)


    def variance(self, mean, p):
        mean = np.asarray(mean, dtype=float)
        return np.full(mean.shape, self._scale("sigma", p) ** 2)


class CombinedError(ErrorModel):
    """Combined additive and proportional error, ``var = add^2 + (mean * prop)^2``."""

    def __init__(self, additive: str | float = "sigma_add", proportional: str | float = "sigma_prop"):
        super().__init__(additive=additive, proportional=proportional)


    def variance(self, mean, p):
        mean = np.asarray(mean, dtype=float)
        add = self._scale("additive", p)
        prop = self._scale("proportional", p)
        return add ** 2 + (mean * prop) ** 2
