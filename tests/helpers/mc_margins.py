"""
Monte Carlo margin-of-error calculations.

Single source of truth for all MC tolerance computations.
"""

import numpy as np

from tests.config import MC_Z


def mc_proportion_margin(p, n, z=MC_Z):
    """
    MC margin of error for a proportion (0-1 scale).

    Half-width of an approximate normal CI for a binomial proportion
    estimated from *n* replications.
    """
    return z * np.sqrt(p * (1 - p) / n)


def recovery_se(params):
    """
    Theoretical standard error of the treatment estimate.

    For a balanced design the subject-level difference has variance
    ``tau_slope^2 + 2 * sigma^2 / n_trials``.
    """
    return np.sqrt(params.tau_slope**2 / params.n_subjects + 2 * params.sigma**2 / (params.n_subjects * params.n_trials))
