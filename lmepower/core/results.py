"""
Results processing for LMEPower.

This module reduces the flattened per-replication result table to power
and parameter-recovery statistics.
"""

from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd
from scipy import stats

from ..stats.mixed_models import INTERCEPT_TERM, TREATMENT_TERM
from .parameters import DESIGN_FIELDS
from .simulation import ReplicationResult
from .store import results_to_frame

TRUE_VALUE_FIELDS = {INTERCEPT_TERM: "intercept", TREATMENT_TERM: "effect"}
"""Fixed terms whose generating value is a design field."""

SUMMARY_COLUMNS = (
    "term_name",
    "n_replications",
    "mean_estimate",
    "mean_std_error",
    "true_value",
    "bias",
    "power",
    "power_ci_lower",
    "power_ci_upper",
)


def _as_frame(results: Union[pd.DataFrame, Iterable[ReplicationResult]]) -> pd.DataFrame:
    if isinstance(results, pd.DataFrame):
        return results
    return results_to_frame(results)


def _check_group_key(by: Optional[str]) -> None:
    if by is not None and by not in DESIGN_FIELDS:
        raise ValueError(f"Grouping key must be one of {', '.join(DESIGN_FIELDS)}, got {by!r}")


class PowerAggregator:
    """Converts raw replication results into power estimates and statistics.

    For every fixed-effect term (optionally within each value of a design
    field) reports the mean estimate, mean standard error, bias against
    the generating value, and power: the fraction of replications with
    ``p_value < alpha``, with an exact (Clopper-Pearson) confidence
    interval.

    Args:
        alpha: Significance threshold (0-1, exclusive).
        confidence: Confidence level of the power interval.
    """

    def __init__(self, alpha: float = 0.05, confidence: float = 0.95):
        if not 0 < alpha < 1:
            raise ValueError(f"alpha must be between 0 and 1, got {alpha}")
        if not 0 < confidence < 1:
            raise ValueError(f"confidence must be between 0 and 1, got {confidence}")
        self.alpha = alpha
        self.confidence = confidence

    def summarize(self, results: Union[pd.DataFrame, Iterable[ReplicationResult]], by: Optional[str] = None) -> pd.DataFrame:
        """
        Summarise fixed-effect terms.

        Args:
            results: Result table (``RESULT_COLUMNS`` schema) or replication results.
            by: Optional design field to group by (e.g. ``"n_subjects"``).

        Returns:
            One row per ``(by, term_name)`` group, sorted by the grouping
            key. Empty groups never appear; empty input gives an empty frame.
        """
        _check_group_key(by)
        columns = ([by] if by else []) + list(SUMMARY_COLUMNS)

        df = _as_frame(results)
        if len(df) == 0:
            return pd.DataFrame(columns=columns)

        fixed = df.loc[df["effect_type"] == "fixed"].copy()
        if len(fixed) == 0:
            return pd.DataFrame(columns=columns)

        fixed["estimate"] = fixed["estimate"].astype(float)
        fixed["std_error"] = fixed["std_error"].astype(float)
        fixed["significant"] = fixed["p_value"].astype(float) < self.alpha
        fixed["true_value"] = np.nan
        for term, field_name in TRUE_VALUE_FIELDS.items():
            mask = fixed["term_name"] == term
            fixed.loc[mask, "true_value"] = fixed.loc[mask, field_name].astype(float)

        keys = ([by] if by else []) + ["term_name"]
        rows = []
        for group_key, group in fixed.groupby(keys, sort=True, observed=True):
            n = len(group)
            if n == 0:
                continue
            n_sig = int(group["significant"].sum())
            ci = stats.binomtest(n_sig, n).proportion_ci(confidence_level=self.confidence, method="exact")
            mean_estimate = float(group["estimate"].mean())
            true_value = float(group["true_value"].mean()) if group["true_value"].notna().any() else np.nan

            key_values = group_key if isinstance(group_key, tuple) else (group_key,)
            row = dict(zip(keys, key_values))
            row.update(
                {
                    "n_replications": n,
                    "mean_estimate": mean_estimate,
                    "mean_std_error": float(group["std_error"].mean()),
                    "true_value": true_value,
                    "bias": mean_estimate - true_value,
                    "power": n_sig / n,
                    "power_ci_lower": float(ci.low),
                    "power_ci_upper": float(ci.high),
                }
            )
            rows.append(row)

        return pd.DataFrame(rows, columns=columns)


def first_achieved(summary: pd.DataFrame, by: str, term: str, target_power: float) -> Optional[Union[int, float]]:
    """Smallest value of *by* whose power for *term* reaches *target_power*.

    Args:
        summary: Output of :meth:`PowerAggregator.summarize` grouped by *by*.
        by: Grouping column.
        term: Term name (e.g. ``"condition[T.treatment]"``).
        target_power: Target as a fraction (0-1).

    Returns:
        The first qualifying value, or ``None`` if no design reaches the target.
    """
    if len(summary) == 0:
        return None
    rows = summary.loc[summary["term_name"] == term].sort_values(by)
    achieved = rows.loc[rows["power"] >= target_power, by]
    if len(achieved) == 0:
        return None
    value = achieved.iloc[0]
    return value.item() if hasattr(value, "item") else value


def failure_summary(results: Union[pd.DataFrame, Iterable[ReplicationResult]], by: Optional[str] = None) -> pd.DataFrame:
    """Count replications, failed fits and fits with warnings.

    Returns:
        Columns ``[by], n_replications, n_failed, n_with_warnings``.
    """
    _check_group_key(by)
    columns = ([by] if by else []) + ["n_replications", "n_failed", "n_with_warnings"]

    df = _as_frame(results)
    if len(df) == 0:
        return pd.DataFrame(columns=columns)

    per_rep = df.groupby("replication_id", sort=True).agg(
        {**({by: "first"} if by else {}), "failed": "any", "warnings": lambda w: bool((w.astype(str) != "").any())}
    )
    per_rep["failed"] = per_rep["failed"].astype(bool)
    per_rep["warnings"] = per_rep["warnings"].astype(bool)
    per_rep["n_with_warnings"] = per_rep["warnings"] & ~per_rep["failed"]

    if by:
        grouped = per_rep.groupby(by, sort=True)
        out = pd.DataFrame(
            {
                "n_replications": grouped.size(),
                "n_failed": grouped["failed"].sum(),
                "n_with_warnings": grouped["n_with_warnings"].sum(),
            }
        ).reset_index()
    else:
        out = pd.DataFrame(
            {
                "n_replications": [len(per_rep)],
                "n_failed": [int(per_rep["failed"].sum())],
                "n_with_warnings": [int(per_rep["n_with_warnings"].sum())],
            }
        )
    return out.loc[:, columns].astype({c: int for c in columns if c.startswith("n_")})


def build_power_result(
    analysis_type: str,
    design: dict,
    alpha: float,
    n_replications: int,
    seed,
    parallel: bool,
    sink: Optional[str],
    by: Optional[str],
    summary: pd.DataFrame,
    failures: pd.DataFrame,
    raw: pd.DataFrame,
    extra: Optional[dict] = None,
) -> dict:
    """
    Build the complete result dictionary of an analysis.

    Args:
        analysis_type: ``"power"``, ``"sample_size"`` or ``"sweep"``
        design: Base design parameters as a dict
        alpha: Significance level
        n_replications: Replications per design
        seed: Root seed
        parallel: Whether parallel processing was used
        sink: Result store path, if any
        by: Grouping key of the summary
        summary: Output of ``PowerAggregator.summarize``
        failures: Output of ``failure_summary``
        raw: Flattened per-replication table
        extra: Additional analysis-specific entries for ``"results"``

    Returns:
        Dict with ``"model"`` (settings) and ``"results"`` (tables) entries
    """
    results = {"summary": summary, "failures": failures, "raw": raw}
    if extra:
        results.update(extra)
    return {
        "model": {
            "analysis_type": analysis_type,
            "design": design,
            "alpha": alpha,
            "n_replications": n_replications,
            "seed": seed,
            "parallel": parallel,
            "sink": sink,
            "by": by,
        },
        "results": results,
    }
