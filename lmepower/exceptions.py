"""
Exception and warning types for LMEPower.

Configuration problems (``InvalidCovariance``) and persistence problems
(``SinkWriteFailure``) abort a sweep. Per-replication problems
(``FitFailure``, ``FitConvergenceWarning``) are recorded on the
replication result and the sweep moves on.
"""


class LMEPowerError(Exception):
    """Base class for LMEPower errors."""

    pass


class InvalidCovariance(LMEPowerError, ValueError):
    """Raised when the random-effect covariance matrix is not positive semi-definite."""

    pass


class FitFailure(LMEPowerError, RuntimeError):
    """Raised by a fitter when a model cannot be fitted at all."""

    pass


class SinkWriteFailure(LMEPowerError, OSError):
    """Raised when a replication result cannot be appended to the result store."""

    pass


class FitConvergenceWarning(UserWarning):
    """Non-fatal convergence problem reported while fitting a model."""

    pass
