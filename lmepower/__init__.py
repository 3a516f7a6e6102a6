"""LMEPower - Monte Carlo power analysis for linear mixed models.

Simulates a two-condition repeated-measures experiment (subjects by
trials, correlated random intercepts and treatment slopes), fits
``response ~ condition + (1+condition | subject)`` to every simulated
dataset, and estimates the power to detect the treatment effect.

Example:
    >>> from lmepower import LMEPower
    >>>
    >>> model = LMEPower("n_subjects=20, n_trials=100, intercept=1000, effect=50, "
    ...                  "tau_intercept=80, tau_slope=30, rho=0.2, sigma=200")
    >>> model.find_power()
    >>>
    >>> model.find_sample_size(from_subjects=5, to_subjects=40, by=5)
"""

from importlib.metadata import version as _get_version

from .core import DesignParameters, PowerAggregator, ReplicationRunner, ResultStore, SweepDriver
from .exceptions import FitConvergenceWarning, FitFailure, InvalidCovariance, LMEPowerError, SinkWriteFailure
from .model import LMEPower
from .progress import PrintReporter, ProgressReporter, SweepCancelled, SweepProgress, TqdmReporter

__version__ = _get_version("LMEPower")

__all__ = [
    "LMEPower",
    "DesignParameters",
    "ReplicationRunner",
    "SweepDriver",
    "ResultStore",
    "PowerAggregator",
    "LMEPowerError",
    "InvalidCovariance",
    "FitFailure",
    "SinkWriteFailure",
    "FitConvergenceWarning",
    "SweepCancelled",
    "ProgressReporter",
    "SweepProgress",
    "PrintReporter",
    "TqdmReporter",
]
