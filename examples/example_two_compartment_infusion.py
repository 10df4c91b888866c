#########################################################################################
##
##               pkest example: two-compartment model, repeated infusions
##
##  Model:   depot --KA--> central <--Q--> peripheral, elimination CL from central
##  Fit:     structural parameters and a combined error model on simulated data
##
##  Shows the dosing table helper, zero-order infusions and how to inspect
##  parameter correlations after the fit.
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from pkest import CombinedError, TwoCompartmentOral, dosing_table
from pkest.opt import ModelEvaluator, ObservationSet, ParameterEstimator, ParameterVector


# SCENARIO ==============================================================================

truth = ParameterVector({
    "CL": 2.0, "VC": 15.0, "Q": 3.0, "VP": 40.0, "KA": 1.2,
    "sigma_add": 0.05, "sigma_prop": 0.1,
})

# oral loading dose, then two 1-hour infusions into the central compartment
dosing = dosing_table([
    (0.0, 500.0, 1),
    (12.0, 250.0, 2, 1.0),
    (24.0, 250.0, 2, 1.0),
])

t_obs = np.array([0.5, 1.0, 2.0, 4.0, 8.0, 11.5, 12.5, 13.0, 16.0, 23.5, 24.5, 26.0, 30.0, 36.0, 48.0])


# Run Example ===========================================================================

if __name__ == '__main__':

    model = TwoCompartmentOral(error_model=CombinedError())

    # simulated noisy measurements
    rng = np.random.default_rng(7)
    pred = ModelEvaluator(model).evaluate(truth, t_obs, dosing)
    c_obs = pred.mean + np.sqrt(pred.variance) * rng.standard_normal(t_obs.size)
    c_obs = np.maximum(c_obs, 1e-3)

    est = ParameterEstimator(model, ObservationSet.single(t_obs, c_obs), dosing)

    guess = truth.with_values(CL=1.0, VC=10.0, Q=2.0, VP=20.0, KA=0.8)
    est.fit(guess, {"maxIterations": 20000})
    est.covariance()
    est.display()

    print("\nTrue values:")
    for name, value in truth.items():
        print(f"  {name:<12} = {value:.4g}")
