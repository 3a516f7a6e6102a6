"""Linear Mixed-Effects (LME) fitting for LMEPower.

Defines the ``Fitter`` protocol consumed by the replication runner and
its default implementation on top of statsmodels ``MixedLM``.

A fitter takes a trial dataset and an lme4-style formula and returns
fixed-effect estimates with standard errors and Wald z-test p-values,
plus random-effect standard deviations and correlations. Non-fatal
problems are emitted as ``FitConvergenceWarning``; a fit that cannot be
completed raises ``FitFailure``.
"""

import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from scipy import stats

from ..exceptions import FitConvergenceWarning, FitFailure
from ..utils.parsers import _parse_equation

INTERCEPT_TERM = "Intercept"
"""Fixed intercept term name (patsy naming)."""

TREATMENT_TERM = "condition[T.treatment]"
"""Fixed treatment-effect term name (patsy naming)."""

RESIDUAL_TERM = "sd__Observation"


@dataclass
class TermEstimate:
    """One estimated model term.

    Attributes:
        term_name: Term label (e.g. ``"condition[T.treatment]"`` or ``"sd__(Intercept)"``).
        effect_type: ``"fixed"`` or ``"random"``.
        estimate: Point estimate (an SD or correlation for random terms).
        std_error: Standard error (NaN for random terms).
        p_value: Two-sided Wald p-value (NaN for random terms).
    """

    term_name: str
    effect_type: str
    estimate: float
    std_error: float = np.nan
    p_value: float = np.nan


@dataclass
class FitResult:
    """Output of a fitter: ordered term estimates and an optional warning text."""

    terms: List[TermEstimate] = field(default_factory=list)
    warning: str = ""

    @property
    def fixed(self) -> List[TermEstimate]:
        return [t for t in self.terms if t.effect_type == "fixed"]

    def get(self, term_name: str) -> Optional[TermEstimate]:
        """Return the term called *term_name*, or ``None``."""
        for term in self.terms:
            if term.term_name == term_name:
                return term
        return None


@runtime_checkable
class Fitter(Protocol):
    """Protocol defining the model-fitting interface.

    Implementations may emit warnings for non-fatal convergence problems
    and must raise ``FitFailure`` when no usable fit is produced.
    """

    def fit(self, data: pd.DataFrame, formula: str) -> FitResult:
        """Fit *formula* to *data* and return the term estimates."""
        ...


def _wald_pvalues(estimates: np.ndarray, std_errors: np.ndarray) -> np.ndarray:
    """Two-sided normal p-values for ``estimate / std_error``."""
    with np.errstate(divide="ignore", invalid="ignore"):
        z = estimates / std_errors
    return 2 * stats.norm.sf(np.abs(z))


def _random_terms(cov_re: np.ndarray, slope_vars: List[str], scale: float) -> List[TermEstimate]:
    """Convert an estimated random-effect covariance into SD/correlation terms."""
    names = ["(Intercept)"] + list(slope_vars)
    variances = np.clip(np.diag(cov_re), 0.0, None)
    sds = np.sqrt(variances)

    terms = [TermEstimate(f"sd__{name}", "random", float(sd)) for name, sd in zip(names, sds)]
    for i in range(len(names)):
        for j in range(i + 1, len(names)):
            if sds[i] > 0 and sds[j] > 0:
                corr = float(np.clip(cov_re[i, j] / (sds[i] * sds[j]), -1.0, 1.0))
            else:
                corr = np.nan
            terms.append(TermEstimate(f"cor__{names[i]}.{names[j]}", "random", corr))

    terms.append(TermEstimate(RESIDUAL_TERM, "random", float(np.sqrt(max(scale, 0.0)))))
    return terms


class StatsmodelsFitter:
    """statsmodels ``MixedLM`` implementation of :class:`Fitter`.

    Supports formulas with exactly one random-effect term, either a random
    intercept ``(1|g)`` or correlated random intercept and slopes
    ``(1 + x|g)``. The fit is attempted once; there is no retry.

    Args:
        reml: Fit by REML (default) instead of ML.
        method: Optimiser passed to ``MixedLM.fit``.
        maxiter: Optional iteration limit for the optimiser.
    """

    def __init__(self, reml: bool = True, method: str = "lbfgs", maxiter: Optional[int] = None):
        self.reml = reml
        self.method = method
        self.maxiter = maxiter

    def fit(self, data: pd.DataFrame, formula: str) -> FitResult:
        try:
            import statsmodels.formula.api as smf
            from statsmodels.tools.sm_exceptions import ConvergenceWarning
        except ImportError as e:
            raise ImportError("statsmodels required for mixed models: pip install statsmodels") from e

        dep_var, fixed_formula, random_effects = _parse_equation(formula)
        if len(random_effects) != 1:
            raise ValueError(f"Formula must contain exactly one random-effect term, got {len(random_effects)}: {formula!r}")
        re_spec = random_effects[0]
        grouping_var = re_spec["grouping_var"]
        slope_vars = re_spec.get("slope_vars", [])
        if grouping_var not in data.columns:
            raise ValueError(f"Grouping variable '{grouping_var}' not found in data columns {list(data.columns)}")

        re_formula = "~" + " + ".join(slope_vars) if slope_vars else None
        fit_kwargs = {"reml": self.reml, "method": self.method}
        if self.maxiter is not None:
            fit_kwargs["maxiter"] = self.maxiter

        error = None
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                model = smf.mixedlm(f"{dep_var} ~ {fixed_formula}", data, groups=data[grouping_var], re_formula=re_formula)
                result = model.fit(**fit_kwargs)
                # Standard errors and covariances are computed lazily and can fail on singular fits
                fe_names = [str(name) for name in result.fe_params.index]
                fe_params = np.asarray(result.fe_params, dtype=float)
                bse_fe = np.asarray(result.bse_fe, dtype=float)
                cov_re = np.asarray(result.cov_re, dtype=float)
                scale = float(result.scale)
            except Exception as e:
                error = e

        # Re-emit fitting diagnostics under a single category for the caller to capture
        for w in caught:
            category = FitConvergenceWarning if issubclass(w.category, (ConvergenceWarning, UserWarning)) else w.category
            warnings.warn(str(w.message), category, stacklevel=2)

        if error is not None:
            raise FitFailure(f"{type(error).__name__}: {error}") from error

        if not np.all(np.isfinite(fe_params)):
            raise FitFailure("Non-finite fixed-effect estimates")

        p_values = _wald_pvalues(fe_params, bse_fe)
        terms = [
            TermEstimate(name, "fixed", float(est), float(se), float(p))
            for name, est, se, p in zip(fe_names, fe_params, bse_fe, p_values)
        ]
        terms.extend(_random_terms(cov_re, slope_vars, scale))

        warning = "" if getattr(result, "converged", True) else "Model did not converge"
        return FitResult(terms=terms, warning=warning)

    def __repr__(self):
        return f"StatsmodelsFitter(reml={self.reml}, method='{self.method}', maxiter={self.maxiter})"
