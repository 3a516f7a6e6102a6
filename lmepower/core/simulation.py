"""
Replication execution for LMEPower.

This module contains the single-replication logic: sample random
effects, generate the trial dataset, fit the mixed model and tag the
estimates with the design that produced them.
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from ..exceptions import FitConvergenceWarning, FitFailure
from ..stats.data_generation import generate_trials, sample_random_effects
from ..stats.mixed_models import Fitter, StatsmodelsFitter, TermEstimate
from .parameters import DESIGN_FIELDS, DesignParameters

DEFAULT_FORMULA = "response ~ condition + (1+condition | subject)"

TERM_COLUMNS = ("term_name", "effect_type", "estimate", "std_error", "p_value")

RESULT_COLUMNS = ("replication_id",) + DESIGN_FIELDS + TERM_COLUMNS + ("warnings", "failed")
"""Columns of the flattened result table (one row per term per replication)."""

WARNING_SEPARATOR = "; "


@dataclass
class ReplicationResult:
    """Estimates of one replication, tagged with its design.

    Attributes:
        replication_id: Position of the replication in the sweep grid.
        params: Design that generated the data.
        terms: Estimated terms (empty when the fit failed).
        warnings: Captured fitting warnings joined by ``"; "``; for a
            failed replication, the failure message.
        failed: Whether the fit failed.
    """

    replication_id: int
    params: DesignParameters
    terms: List[TermEstimate] = field(default_factory=list)
    warnings: str = ""
    failed: bool = False

    def to_rows(self) -> List[Dict[str, Any]]:
        """Flatten to one dict per term, design columns repeated.

        A failed replication yields a single row with empty term fields
        so that the failure is still visible in the result table.
        """
        base = {"replication_id": self.replication_id, **self.params.as_dict()}
        tail = {"warnings": self.warnings, "failed": self.failed}

        if not self.terms:
            return [{**base, "term_name": "", "effect_type": "", "estimate": np.nan, "std_error": np.nan, "p_value": np.nan, **tail}]

        return [
            {
                **base,
                "term_name": term.term_name,
                "effect_type": term.effect_type,
                "estimate": term.estimate,
                "std_error": term.std_error,
                "p_value": term.p_value,
                **tail,
            }
            for term in self.terms
        ]


def _join_warnings(messages: List[str]) -> str:
    """Join distinct non-empty messages in first-seen order."""
    seen: List[str] = []
    for msg in messages:
        msg = msg.strip()
        if msg and msg not in seen:
            seen.append(msg)
    return WARNING_SEPARATOR.join(seen)


class ReplicationRunner:
    """Runs one simulate-then-fit replication.

    Each call samples per-subject random effects, generates the trial
    data, fits ``formula`` with the configured fitter and returns a
    :class:`ReplicationResult`. Fitting failures are recorded on the
    result rather than raised, so a sweep can continue.

    Args:
        fitter: Object implementing :class:`~lmepower.stats.mixed_models.Fitter`.
            Defaults to :class:`StatsmodelsFitter`.
        formula: Model formula passed to the fitter.
    """

    def __init__(self, fitter: Optional[Fitter] = None, formula: str = DEFAULT_FORMULA):
        if fitter is None:
            fitter = StatsmodelsFitter()
        if not isinstance(fitter, Fitter):
            raise TypeError(f"fitter must implement fit(data, formula), got {type(fitter).__name__}")
        self.fitter = fitter
        self.formula = formula

    def run(self, params: DesignParameters, rng: np.random.Generator, replication_id: int = 0) -> ReplicationResult:
        """Execute a single replication.

        Args:
            params: Design of this replication.
            rng: Random source (consumed by sampling and noise).
            replication_id: Identifier recorded on the result.

        Returns:
            ReplicationResult; ``failed`` is set when the fitter raised
            ``FitFailure``.

        Raises:
            InvalidCovariance: If the random-effect covariance is invalid.
        """
        random_effects = sample_random_effects(params.n_subjects, params.tau_intercept, params.tau_slope, params.rho, rng)
        data = generate_trials(params, random_effects, rng)

        failure = None
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                fit_result = self.fitter.fit(data, self.formula)
            except FitFailure as e:
                failure = str(e) or type(e).__name__

        messages = [failure] if failure is not None else []
        for w in caught:
            if issubclass(w.category, FitConvergenceWarning):
                messages.append(str(w.message))
            else:
                warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)

        if failure is not None:
            return ReplicationResult(replication_id=replication_id, params=params, warnings=_join_warnings(messages), failed=True)
        messages.append(fit_result.warning)

        return ReplicationResult(
            replication_id=replication_id,
            params=params,
            terms=list(fit_result.terms),
            warnings=_join_warnings(messages),
        )
