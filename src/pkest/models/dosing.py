#########################################################################################
##
##                                  DOSING EVENTS
##                                (models/dosing.py)
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np


# CLASS =================================================================================

@dataclass(frozen=True)
class DosingEvent:
    """A single administered dose.

    Parameters
    ----------
    time : float
        Administration time (non-negative).
    amount : float
        Dose amount.
    compartment : int
        1-based id of the compartment receiving the dose.
    duration : float
        Infusion duration. ``0`` (default) gives an instantaneous bolus,
        a positive value a zero-order infusion at ``amount / duration``.
    """

    time: float
    amount: float
    compartment: int = 1
    duration: float = 0.0


    def __post_init__(self) -> None:
        if not np.isfinite(self.time) or self.time < 0.0:
            raise ValueError(f"DosingEvent time must be finite and >= 0, got {self.time}")
        if not np.isfinite(self.amount):
            raise ValueError(f"DosingEvent amount must be finite, got {self.amount}")
        if int(self.compartment) != self.compartment or self.compartment < 1:
            raise ValueError(
                f"DosingEvent compartment must be a 1-based integer id, got {self.compartment}"
            )
        if not np.isfinite(self.duration) or self.duration < 0.0:
            raise ValueError(f"DosingEvent duration must be >= 0, got {self.duration}")


    @property
    def is_infusion(self) -> bool:
        return self.duration > 0.0


    @property
    def end(self) -> float:
        """Time at which the dose is fully delivered."""
        return self.time + self.duration


    @property
    def rate(self) -> float:
        """Zero-order infusion rate (``inf`` for a bolus)."""
        return self.amount / self.duration if self.is_infusion else np.inf


# HELPERS ===============================================================================

def dosing_table(rows: Iterable[DosingEvent | Sequence[float]]) -> tuple[DosingEvent, ...]:
    """Build a time-sorted tuple of :class:`DosingEvent` from table rows.

    Each row is either a ``DosingEvent`` or a ``(time, amount, compartment)``
    / ``(time, amount, compartment, duration)`` sequence.

    Example
    -------
    .. code-block:: python

        dosing = dosing_table([(0.0, 1000.0, 1)])
    """
    events = []
    for row in rows:
        if isinstance(row, DosingEvent):
            events.append(row)
            continue

        row = tuple(row)
        if len(row) not in (3, 4):
            raise ValueError(
                f"Dosing rows need (time, amount, compartment[, duration]), got {row!r}"
            )
        time, amount, cmt = float(row[0]), float(row[1]), int(row[2])
        duration = float(row[3]) if len(row) == 4 else 0.0
        events.append(DosingEvent(time, amount, cmt, duration))

    return tuple(sorted(events, key=lambda e: e.time))
