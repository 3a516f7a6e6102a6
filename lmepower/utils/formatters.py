"""
Text formatting of LMEPower analysis results.
"""

from typing import Dict

import pandas as pd

__all__ = []

_RULE = "=" * 80


def _format_design(design: Dict) -> str:
    return ", ".join(f"{name}={value:g}" if isinstance(value, float) else f"{name}={value}" for name, value in design.items())


def _format_summary_table(summary: pd.DataFrame, by=None) -> str:
    if len(summary) == 0:
        return "No fixed-effect estimates (all replications failed or nothing was run)."

    table = summary.copy()
    for col in ("power", "power_ci_lower", "power_ci_upper"):
        table[col] = (table[col] * 100).map(lambda v: f"{v:.1f}%")
    for col in ("mean_estimate", "mean_std_error", "true_value", "bias"):
        table[col] = table[col].map(lambda v: "" if pd.isna(v) else f"{v:.3f}")

    columns = ([by] if by else []) + ["term_name", "n_replications", "mean_estimate", "mean_std_error", "bias", "power", "power_ci_lower", "power_ci_upper"]
    headers = {
        "term_name": "Term",
        "n_replications": "N",
        "mean_estimate": "Estimate",
        "mean_std_error": "SE",
        "bias": "Bias",
        "power": "Power",
        "power_ci_lower": "CI low",
        "power_ci_upper": "CI high",
    }
    return table.loc[:, columns].rename(columns=headers).to_string(index=False)


def _format_results(analysis_type: str, result: Dict) -> str:
    """Format a result dict from ``build_power_result`` as a text report."""
    model = result["model"]
    results = result["results"]
    by = model.get("by")

    titles = {
        "power": "POWER ANALYSIS",
        "sample_size": "SAMPLE SIZE ANALYSIS",
        "sweep": "PARAMETER SWEEP",
    }

    lines = [
        "",
        _RULE,
        titles.get(analysis_type, analysis_type.upper()),
        _RULE,
        f"Design: {_format_design(model['design'])}",
        f"Replications per design: {model['n_replications']}, alpha: {model['alpha']}",
    ]
    if model.get("sink"):
        lines.append(f"Result store: {model['sink']}")
    lines.append("")
    lines.append(_format_summary_table(results["summary"], by))

    failures = results.get("failures")
    if failures is not None and len(failures):
        n_failed = int(failures["n_failed"].sum())
        n_warned = int(failures["n_with_warnings"].sum())
        n_total = int(failures["n_replications"].sum())
        lines.append("")
        lines.append(f"Replications: {n_total} total, {n_failed} failed, {n_warned} with convergence warnings")

    if analysis_type == "sample_size":
        achieved = results.get("first_achieved")
        target = results.get("target_power")
        term = results.get("target_test")
        lines.append("")
        if achieved is None:
            lines.append(f"Target power {target:.0%} for {term} not reached in the tested range.")
        else:
            lines.append(f"Target power {target:.0%} for {term} first reached at n_subjects={achieved}.")

    lines.append(_RULE)
    return "\n".join(lines)
