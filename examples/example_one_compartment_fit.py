#########################################################################################
##
##               pkest example: one-compartment oral absorption fit
##
##  Model:   depot --KA--> central --CL/VC--> elimination
##  Fit:     CL, VC, KA and the proportional error sigma1 from six samples
##
##  Maximum-likelihood fit with Nelder-Mead, followed by the finite-difference
##  covariance step and a precision table.
##
#########################################################################################

# IMPORTS ===============================================================================

import logging

from pkest import LoggerManager, OneCompartmentOral
from pkest.opt import ObservationSet, ParameterEstimator


# DATA ==================================================================================

t_obs = [0.2864, 0.5155, 1.0309, 2.0619, 6.0710, 8.0756]
c_obs = [5.746, 9.7379, 15.1815, 28.6089, 24.9798, 25.3427]

# 1000 units into the depot at t=0
dosing = [(0.0, 1000.0, 1)]


# Run Example ===========================================================================

if __name__ == '__main__':

    LoggerManager().configure(level=logging.INFO)

    est = ParameterEstimator(
        OneCompartmentOral(),
        ObservationSet.single(t_obs, c_obs),
        dosing=dosing,
    )

    result = est.fit(
        {"CL": 1.0, "VC": 10.0, "KA": 0.6, "sigma1": 0.1},
        {"maxIterations": 5000, "xTolerance": 1e-6, "fTolerance": 1e-10},
    )
    est.covariance()

    est.display()
