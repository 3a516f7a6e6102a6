"""
Null Calibration Example
========================

With no true treatment effect, the proportion of significant results
is the Type I error rate and should be close to alpha. A quick check
that the model and simulation are calibrated before trusting power
estimates for real designs.
"""

import sys

from lmepower import LMEPower, LMEPowerError


def main():
    print("=" * 60)
    print("NULL CALIBRATION EXAMPLE")
    print("=" * 60)

    model = LMEPower(
        "n_subjects=40, n_trials=10, intercept=1000, effect=0, "
        "tau_intercept=80, tau_slope=30, rho=0.2, sigma=200"
    )
    model.set_alpha(0.05).set_replications(500)

    try:
        result = model.find_power(return_results=True)
    except LMEPowerError as e:
        print(f"Calibration run failed: {e}")
        return 1

    summary = result["results"]["summary"]
    row = summary.loc[summary["term_name"] == "condition[T.treatment]"].iloc[0]
    print(f"\nType I error: {row['power']:.1%} " f"(95% CI {row['power_ci_lower']:.1%} - {row['power_ci_upper']:.1%}), alpha = 5.0%")

    if not row["power_ci_lower"] <= 0.05 <= row["power_ci_upper"]:
        print("Warning: the false positive rate differs from alpha.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
