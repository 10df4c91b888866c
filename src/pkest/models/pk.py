#########################################################################################
##
##                          COMPARTMENTAL PHARMACOKINETIC MODELS
##                                   (models/pk.py)
##
##  Amount-based linear models. Concentrations are central amount / volume.
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from ._model import CompartmentModel


# ONE COMPARTMENT =======================================================================

class OneCompartmentOral(CompartmentModel):
    """One-compartment model with first-order absorption.

    .. math::

        \\dot a_1 = -k_a a_1

        \\dot a_2 = k_a a_1 - \\frac{CL}{V_C} a_2

    Compartment 1 is the absorption depot, compartment 2 the central
    compartment. The single output is the central concentration
    ``a_2 / VC``.

    Parameters
    ----------
    error_model : ErrorModel, optional
        Defaults to ``ProportionalError("sigma1")``.
    """

    structural_parameters = ("CL", "VC", "KA")
    n_compartments = 2

    def rhs(self, t, a, p):
        ke = p["CL"] / p["VC"]
        return np.array([
            -p["KA"] * a[0],
            p["KA"] * a[0] - ke * a[1],
        ])


    def observe(self, a, p):
        return a[:, 1:2] / p["VC"]


class OneCompartmentIV(CompartmentModel):
    """One-compartment model for intravascular dosing into compartment 1."""

    structural_parameters = ("CL", "VC")
    n_compartments = 1

    def rhs(self, t, a, p):
        return np.array([-p["CL"] / p["VC"] * a[0]])


    def observe(self, a, p):
        return a[:, 0:1] / p["VC"]


# TWO COMPARTMENT =======================================================================

class TwoCompartmentOral(CompartmentModel):
    """Two-compartment model with first-order absorption.

    Compartments: 1 depot, 2 central (volume ``VC``), 3 peripheral (volume
    ``VP``) exchanging with the central compartment at inter-compartmental
    clearance ``Q``.
    """

    structural_parameters = ("CL", "VC", "Q", "VP", "KA")
    n_compartments = 3

    def rhs(self, t, a, p):
        k10 = p["CL"] / p["VC"]
        k12 = p["Q"] / p["VC"]
        k21 = p["Q"] / p["VP"]
        return np.array([
            -p["KA"] * a[0],
            p["KA"] * a[0] - (k10 + k12) * a[1] + k21 * a[2],
            k12 * a[1] - k21 * a[2],
        ])


    def observe(self, a, p):
        return a[:, 1:2] / p["VC"]
