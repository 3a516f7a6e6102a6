"""
Visualization utilities for LMEPower.

This module provides plotting functions for power analysis results.
"""

from typing import Optional

import pandas as pd

__all__ = []


def _create_power_plot(
    summary: pd.DataFrame,
    by: str,
    term: str,
    target_power: float,
    title: str,
    first_achieved: Optional[float] = None,
    show: bool = True,
):
    """Create a power curve for one term across the values of *by*.

    Draws the power estimates with their confidence band, a horizontal
    dashed line at the target power, and annotates the first design
    that reaches the target.

    Args:
        summary: Output of ``PowerAggregator.summarize`` grouped by *by*.
        by: Swept design field on the x-axis.
        term: Fixed-effect term to plot.
        target_power: Target power percentage (drawn as reference line).
        title: Plot title.
        first_achieved: Value of *by* where the target was first reached.
        show: Call ``plt.show()``; otherwise the figure is returned.

    Raises:
        ImportError: If ``matplotlib`` is not installed.
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError("matplotlib required for plotting: pip install matplotlib") from None

    rows = summary.loc[summary["term_name"] == term].sort_values(by)
    x = rows[by].to_numpy()
    power = rows["power"].to_numpy() * 100

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(x, power, "o-", color="C0", label=term, linewidth=2, markersize=4)
    ax.fill_between(
        x,
        rows["power_ci_lower"].to_numpy() * 100,
        rows["power_ci_upper"].to_numpy() * 100,
        color="C0",
        alpha=0.2,
    )

    if first_achieved is not None:
        achieved_power = power[list(x).index(first_achieved)]
        ax.plot(
            first_achieved,
            achieved_power,
            "s",
            color="C0",
            markersize=10,
            markerfacecolor="white",
            markeredgewidth=2,
        )
        ax.annotate(
            f"{by}={first_achieved}",
            xy=(first_achieved, achieved_power),
            xytext=(10, -20),
            textcoords="offset points",
            bbox={"boxstyle": "round,pad=0.3", "facecolor": "C0", "alpha": 0.3},
            arrowprops={"arrowstyle": "->", "color": "C0"},
        )

    ax.axhline(
        y=target_power,
        color="red",
        linestyle="--",
        linewidth=2,
        label=f"Target Power ({target_power}%)",
    )

    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.set_xlabel(by, fontsize=12)
    ax.set_ylabel("Power (%)", fontsize=12)
    ax.grid(True, alpha=0.3)
    ax.legend(loc="lower right")
    ax.set_ylim(0, 105)

    plt.tight_layout()
    if show:
        plt.show()
    return fig
