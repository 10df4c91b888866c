#########################################################################################
##
##                              NAMED PARAMETER VECTOR
##                                (opt/parameters.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from collections.abc import Mapping
from typing import Iterable, Iterator, Sequence

import numpy as np


# CLASS =================================================================================

class ParameterVector(Mapping):
    """Immutable, ordered mapping from parameter name to value.

    The order is fixed at construction and defines the layout of every
    optimizer vector, sensitivity column and covariance row derived from it.

    Parameters
    ----------
    values : mapping or iterable of (name, value)
        Parameter values in estimation order.

    Example
    -------
    .. code-block:: python

        theta = ParameterVector({"CL": 1.0, "VC": 20.0, "KA": 0.6, "sigma1": 0.1})
        theta["VC"]                  # 20.0
        theta.with_values(VC=25.0)   # new vector, same order
        theta.array                  # array([ 1. , 20. ,  0.6,  0.1])
    """

    __slots__ = ("_names", "_values")

    def __init__(self, values: Mapping[str, float] | Iterable[tuple[str, float]]):
        items = list(values.items()) if isinstance(values, Mapping) else list(values)

        names = tuple(str(name) for name, _ in items)
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate parameter names in {names}")
        if not names:
            raise ValueError("ParameterVector requires at least one parameter")

        arr = np.array([float(v) for _, v in items], dtype=float)
        if not np.all(np.isfinite(arr)):
            bad = [n for n, v in zip(names, arr) if not np.isfinite(v)]
            raise ValueError(f"Parameter value(s) must be finite: {bad}")
        arr.setflags(write=False)

        self._names = names
        self._values = arr


    @classmethod
    def from_array(cls, names: Sequence[str], values) -> "ParameterVector":
        """Build a vector from parallel name and value sequences."""
        values = np.asarray(values, dtype=float).reshape(-1)
        if len(names) != values.size:
            raise ValueError(f"Expected {len(names)} values, got {values.size}")
        return cls(zip(names, values))


    # PROPERTIES ------------------------------------------------------------------------

    @property
    def names(self) -> tuple[str, ...]:
        return self._names


    @property
    def array(self) -> np.ndarray:
        """Values in parameter order (read-only array)."""
        return self._values


    # MAPPING PROTOCOL ------------------------------------------------------------------

    def __getitem__(self, name: str) -> float:
        try:
            return float(self._values[self._names.index(name)])
        except ValueError:
            raise KeyError(name) from None


    def __iter__(self) -> Iterator[str]:
        return iter(self._names)


    def __len__(self) -> int:
        return len(self._names)


    def __eq__(self, other) -> bool:
        if not isinstance(other, ParameterVector):
            return NotImplemented
        return self._names == other._names and np.array_equal(self._values, other._values)


    def __hash__(self) -> int:
        return hash((self._names, self._values.tobytes()))


    # DERIVED VECTORS -------------------------------------------------------------------

    def as_dict(self) -> dict[str, float]:
        """Plain ``{name: value}`` dict (fast lookups inside ODE right-hand sides)."""
        return {n: float(v) for n, v in zip(self._names, self._values)}


    def with_values(self, **updates: float) -> "ParameterVector":
        """Return a copy with some values replaced."""
        unknown = set(updates) - set(self._names)
        if unknown:
            raise KeyError(f"Unknown parameter(s): {sorted(unknown)}")
        return ParameterVector((n, updates.get(n, v)) for n, v in zip(self._names, self._values))


    def with_array(self, values) -> "ParameterVector":
        """Return a vector with the same names and new values."""
        return ParameterVector.from_array(self._names, values)


    def perturbed(self, index: int, delta: float) -> "ParameterVector":
        """Return a copy with parameter *index* shifted by *delta*."""
        arr = self._values.copy()
        arr[index] += delta
        return self.with_array(arr)


    def __repr__(self) -> str:
        body = ", ".join(f"{n}={v:.6g}" for n, v in zip(self._names, self._values))
        return f"ParameterVector({body})"
