"""
Validation utilities for LMEPower.

This module provides validation functions for design parameters,
analysis settings, and sweep ranges.
"""

import math
import numbers
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

__all__ = []


@dataclass
class _ValidationResult:
    """Outcome of a validation check, carrying errors and warnings.

    Attributes:
        is_valid: ``True`` if no errors were found.
        errors: List of error messages (empty when valid).
        warnings: List of non-fatal warning messages.
    """

    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def raise_if_invalid(self):
        """Raise ``ValueError`` if the validation failed."""
        if not self.is_valid:
            error_msg = "Validation failed:\n" + "\n".join(f"• {err}" for err in self.errors)
            raise ValueError(error_msg)


class _Validator:
    """Static helpers for type and range checks used by all validators."""

    @staticmethod
    def _check_type(value: Any, expected_types: tuple, name: str) -> Optional[str]:
        """Check if value has expected type."""
        # bool is an int subclass but never a valid numeric setting here
        if isinstance(value, bool) or not isinstance(value, expected_types):
            actual_type = type(value).__name__
            expected = expected_types[0].__name__ if len(expected_types) == 1 else f"one of {[t.__name__ for t in expected_types]}"
            return f"{name} must be {expected}, got {actual_type}"
        return None

    @staticmethod
    def _check_range(
        value: Union[int, float],
        min_val: Optional[float],
        max_val: Optional[float],
        name: str,
    ) -> Optional[str]:
        """Check if value is within range."""
        if min_val is not None and value < min_val:
            return f"{name} must be >= {min_val}, got {value}"
        if max_val is not None and value > max_val:
            return f"{name} must be <= {max_val}, got {value}"
        return None


_validator = _Validator()

_INT_TYPES = (numbers.Integral,)
_REAL_TYPES = (numbers.Real,)


def _validate_numeric_parameter(
    value: Any,
    name: str,
    expected_types: tuple = _REAL_TYPES,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
    allow_rounding: bool = False,
) -> _ValidationResult:
    """Generic validation for numeric parameters."""
    errors: List[str] = []
    warnings: List[str] = []

    type_error = _validator._check_type(value, expected_types, name)
    if type_error:
        errors.append(type_error)
        return _ValidationResult(False, errors, warnings)

    if isinstance(value, float) and not math.isfinite(value):
        errors.append(f"{name} must be finite, got {value}")
        return _ValidationResult(False, errors, warnings)

    range_error = _validator._check_range(value, min_val, max_val, name)
    if range_error:
        errors.append(range_error)

    if allow_rounding and isinstance(value, float):
        rounded = int(round(value))
        if value != rounded:
            warnings.append(f"{name} rounded from {value} to {rounded}")

    return _ValidationResult(len(errors) == 0, errors, warnings)


def _merge(results: Sequence[_ValidationResult]) -> _ValidationResult:
    errors = [e for r in results for e in r.errors]
    warnings = [w for r in results for w in r.warnings]
    return _ValidationResult(len(errors) == 0, errors, warnings)


def _validate_design_values(values: Dict[str, Any]) -> _ValidationResult:
    """Validate the type and range of every design parameter.

    ``rho`` is only type-checked here; its range is part of the
    covariance check so that it surfaces as ``InvalidCovariance``.
    """
    return _merge(
        [
            _validate_numeric_parameter(values["n_subjects"], "n_subjects", _INT_TYPES, min_val=1),
            _validate_numeric_parameter(values["n_trials"], "n_trials", _INT_TYPES, min_val=1),
            _validate_numeric_parameter(values["intercept"], "intercept"),
            _validate_numeric_parameter(values["effect"], "effect"),
            _validate_numeric_parameter(values["tau_intercept"], "tau_intercept", min_val=0),
            _validate_numeric_parameter(values["tau_slope"], "tau_slope", min_val=0),
            _validate_numeric_parameter(values["rho"], "rho"),
            _validate_numeric_parameter(values["sigma"], "sigma", min_val=0),
        ]
    )


def _validate_unknown_fields(given: Sequence[str], known: Sequence[str], what: str = "design parameter") -> _ValidationResult:
    """Reject names that are not recognised fields."""
    unknown = [name for name in given if name not in known]
    errors = []
    if unknown:
        errors.append(f"Unknown {what}(s): {', '.join(unknown)}. Valid names: {', '.join(known)}")
    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_power(power: Any) -> _ValidationResult:
    """Validate target power parameter (0-100%)."""
    return _validate_numeric_parameter(power, "Power", min_val=0, max_val=100)


def _validate_alpha(alpha: Any) -> _ValidationResult:
    """Validate alpha level parameter (0-0.25)."""
    result = _validate_numeric_parameter(alpha, "Alpha", min_val=0, max_val=0.25)
    if result.is_valid and alpha == 0:
        result.errors.append("Alpha must be greater than 0")
        result.is_valid = False
    return result


def _validate_replications(n_replications: Any) -> Tuple[int, _ValidationResult]:
    """Validate and process number of replications."""
    result = _validate_numeric_parameter(n_replications, "Number of replications", min_val=1, allow_rounding=True)

    if result.is_valid:
        rounded = int(round(n_replications))
        if rounded < 100:
            result.warnings.append(f"Low replication count ({rounded}). Consider using at least 100 for reliable results.")
        return rounded, result

    return 0, result


def _validate_max_failed(value: Any) -> _ValidationResult:
    """Validate the tolerated failed-replication proportion (0-1)."""
    return _validate_numeric_parameter(value, "max_failed_replications", min_val=0, max_val=1)


def _validate_subject_range(from_subjects: Any, to_subjects: Any, by: Any) -> _ValidationResult:
    """Validate the ``n_subjects`` range of a sample-size sweep."""
    errors: List[str] = []
    warnings: List[str] = []

    for param, name in [(from_subjects, "from_subjects"), (to_subjects, "to_subjects"), (by, "by")]:
        if isinstance(param, bool) or not isinstance(param, int) or param <= 0:
            errors.append(f"{name} must be a positive integer, got {param}")

    if errors:
        return _ValidationResult(False, errors, warnings)

    if from_subjects >= to_subjects:
        errors.append(f"from_subjects ({from_subjects}) must be less than to_subjects ({to_subjects})")

    if by > (to_subjects - from_subjects):
        errors.append(f"Step size 'by' ({by}) is larger than range ({to_subjects - from_subjects}). This will only test one design.")

    n_tests = len(range(from_subjects, to_subjects + 1, by))
    if n_tests > 50:
        warnings.append(f"Large number of designs to test ({n_tests}). This may take significant time.")

    return _ValidationResult(len(errors) == 0, errors, warnings)


def _validate_parallel_settings(enable: Any, n_cores: Optional[int]) -> Tuple[Tuple[bool, int], _ValidationResult]:
    """Validate parallel processing settings.

    Args:
        enable: True or False
        n_cores: Number of CPU cores (positive int or None for auto)

    Returns:
        ((enable, n_cores), ValidationResult)
    """
    import multiprocessing as mp

    errors = []

    if enable not in (True, False):
        errors.append(f"enable must be True or False, got {enable!r}")
        return (False, 1), _ValidationResult(False, errors, [])

    max_cores = mp.cpu_count()
    validated_n_cores = max(1, max_cores // 2)

    if n_cores is not None:
        if isinstance(n_cores, bool) or not isinstance(n_cores, int) or n_cores <= 0:
            errors.append(f"n_cores must be a positive integer, got {n_cores}")
        else:
            validated_n_cores = min(n_cores, max_cores)

    return (bool(enable), validated_n_cores), _ValidationResult(len(errors) == 0, errors, [])
