"""
Design parameters and parameter grids for LMEPower.

A ``DesignParameters`` record fully describes the generative model of
one replication. A sweep is an ordered list of such records, where
repeated rows are independent replications of the same design.
"""

import itertools
from dataclasses import asdict, dataclass, fields
from dataclasses import replace as _dc_replace
from typing import Any, Dict, Iterable, List, Mapping

import numpy as np

from ..utils.validators import _validate_design_values, _validate_numeric_parameter, _validate_unknown_fields


@dataclass(frozen=True)
class DesignParameters:
    """Generative parameters of a two-condition repeated-measures design.

    Attributes:
        n_subjects: Number of subjects (> 0).
        n_trials: Trials per subject and condition (> 0).
        intercept: Fixed intercept (mean response in the baseline condition).
        effect: Fixed treatment effect (treatment minus baseline).
        tau_intercept: SD of the per-subject random intercepts (>= 0).
        tau_slope: SD of the per-subject random treatment slopes (>= 0).
        rho: Correlation between random intercepts and slopes, in [-1, 1].
        sigma: Residual SD (>= 0).

    Raises:
        ValueError: If any field has the wrong type or is out of range.
        InvalidCovariance: If the implied random-effect covariance is not
            positive semi-definite (e.g. ``rho`` outside [-1, 1]).
    """

    n_subjects: int
    n_trials: int
    intercept: float
    effect: float
    tau_intercept: float
    tau_slope: float
    rho: float
    sigma: float

    def __post_init__(self):
        _validate_design_values(self.__dict__).raise_if_invalid()

        # Normalise numpy scalars to builtins so records hash, compare and serialise cleanly
        for f in fields(self):
            value = getattr(self, f.name)
            cast = int if f.name in _INT_FIELDS else float
            object.__setattr__(self, f.name, cast(value))

        from ..stats.data_generation import check_covariance

        check_covariance(self.covariance_matrix())

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "DesignParameters":
        """Build a record from a mapping, rejecting unrecognised keys."""
        _validate_unknown_fields(list(values), DESIGN_FIELDS).raise_if_invalid()
        missing = [name for name in DESIGN_FIELDS if name not in values]
        if missing:
            raise ValueError(f"Missing design parameter(s): {', '.join(missing)}")
        return cls(**dict(values))

    def as_dict(self) -> Dict[str, Any]:
        """Fields in declaration order."""
        return asdict(self)

    def replace(self, **changes) -> "DesignParameters":
        """Return a validated copy with *changes* applied."""
        _validate_unknown_fields(list(changes), DESIGN_FIELDS).raise_if_invalid()
        return _dc_replace(self, **changes)

    def covariance_matrix(self) -> np.ndarray:
        """2x2 covariance of the (intercept, slope) random effects."""
        from ..stats.data_generation import build_covariance_matrix

        return build_covariance_matrix(self.tau_intercept, self.tau_slope, self.rho)


DESIGN_FIELDS = tuple(f.name for f in fields(DesignParameters))
_INT_FIELDS = {"n_subjects", "n_trials"}


def expand_grid(base: DesignParameters, n_replications: int = 1, **vary: Iterable[Any]) -> List[DesignParameters]:
    """Build a sweep grid from a base design.

    Every combination of the varied fields (cartesian product, fields in
    the order given, values in the order given) is repeated
    ``n_replications`` times consecutively.

    Example:
        >>> base = DesignParameters(20, 100, 1000, 50, 80, 30, 0.2, 200)
        >>> grid = expand_grid(base, n_replications=100, n_subjects=range(10, 31, 10))
        >>> len(grid)
        300

    Args:
        base: Design used for every field that is not varied.
        n_replications: Independent replications per combination.
        **vary: Field name to sequence of values.

    Returns:
        Ordered list of ``DesignParameters`` (empty if any value list is empty).

    Raises:
        ValueError: On unknown field names or ``n_replications < 1``.
    """
    _validate_unknown_fields(list(vary), DESIGN_FIELDS).raise_if_invalid()
    _validate_numeric_parameter(n_replications, "n_replications", (int,), min_val=1).raise_if_invalid()

    names = list(vary)
    value_lists = [list(values) for values in vary.values()]

    grid = []
    for combination in itertools.product(*value_lists):
        params = base.replace(**dict(zip(names, combination))) if names else base
        grid.extend([params] * n_replications)
    return grid
