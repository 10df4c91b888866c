#########################################################################################
##
##                            OBSERVATION DATA CONTAINERS
##                               (opt/observations.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

import numpy as np


# CLASSES ===============================================================================

class ObservationChannel:
    """Measured values of one model output channel.

    Parameters
    ----------
    time : array_like
        Sampling times of shape ``(n,)``; non-negative and non-decreasing.
    data : array_like
        Measured values of shape ``(n,)``.
    output : str
        Name of the model output this channel is compared against.
    """

    def __init__(self, time, data, output: str = "concentration"):
        t = np.asarray(time, dtype=float).reshape(-1)
        y = np.asarray(data, dtype=float).reshape(-1)

        if t.size != y.size:
            raise ValueError("ObservationChannel requires time and data with same length")
        if t.size < 1:
            raise ValueError("ObservationChannel requires at least 1 sample")
        if not np.all(np.isfinite(t)) or not np.all(np.isfinite(y)):
            raise ValueError("ObservationChannel requires finite times and values")
        if np.any(t < 0.0):
            raise ValueError("ObservationChannel requires non-negative times")
        if np.any(np.diff(t) < 0.0):
            raise ValueError("ObservationChannel requires non-decreasing time")

        t.setflags(write=False)
        y.setflags(write=False)
        self.time = t
        self.data = y
        self.output = str(output)


    @property
    def length(self) -> int:
        """Number of samples."""
        return self.time.size


    def __repr__(self) -> str:
        return f"ObservationChannel(output={self.output!r}, n={self.length})"


class ObservationSet:
    """Ordered collection of observation channels.

    Observations are flattened channel by channel; every prediction and
    residual vector in the estimation layer uses this flattened order.

    Parameters
    ----------
    channels : iterable of ObservationChannel
        One entry per observed output. Each output may appear only once.

    Example
    -------
    .. code-block:: python

        obs = ObservationSet.single([0.5, 1.0, 2.0], [9.7, 15.2, 28.6])
    """

    def __init__(self, channels: Iterable[ObservationChannel]):
        self.channels: tuple[ObservationChannel, ...] = tuple(channels)

        if not self.channels:
            raise ValueError("ObservationSet requires at least one channel")
        outputs = [ch.output for ch in self.channels]
        if len(set(outputs)) != len(outputs):
            raise ValueError(f"Duplicate output channels in {outputs}")


    @classmethod
    def single(cls, time, data, output: str = "concentration") -> "ObservationSet":
        """Convenience constructor for a single output channel."""
        return cls([ObservationChannel(time, data, output)])


    @classmethod
    def from_mapping(cls, data: Mapping[str, tuple[Sequence[float], Sequence[float]]]) -> "ObservationSet":
        """Build from ``{output: (times, values)}``."""
        return cls(ObservationChannel(t, y, name) for name, (t, y) in data.items())


    # PROPERTIES ------------------------------------------------------------------------

    @property
    def outputs(self) -> tuple[str, ...]:
        return tuple(ch.output for ch in self.channels)


    @property
    def times(self) -> np.ndarray:
        """Flattened sampling times."""
        return np.concatenate([ch.time for ch in self.channels])


    @property
    def values(self) -> np.ndarray:
        """Flattened measured values."""
        return np.concatenate([ch.data for ch in self.channels])


    def __len__(self) -> int:
        return sum(ch.length for ch in self.channels)


    def __repr__(self) -> str:
        return f"ObservationSet(outputs={self.outputs}, n={len(self)})"
