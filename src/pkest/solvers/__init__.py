from .ivp import SolverOptions, integrate
