"""
Basic Power Analysis Example
============================

Power of a reaction-time experiment: 20 participants, 100 trials per
condition, baseline versus treatment. Each participant has their own
baseline speed and their own treatment effect, drawn from a correlated
bivariate normal distribution.

Results are appended to a CSV file as they are produced. Running the
script again reuses the stored replications instead of simulating anew.
"""

import sys

from lmepower import LMEPower, LMEPowerError

SINK = "power_results.csv"


def main():
    print("=" * 60)
    print("BASIC POWER ANALYSIS EXAMPLE")
    print("=" * 60)

    # Reaction times in milliseconds
    model = LMEPower(
        "n_subjects=20, n_trials=100, intercept=1000, effect=50, "
        "tau_intercept=80, tau_slope=30, rho=0.2, sigma=200"
    )
    model.set_seed(2137).set_replications(200)

    try:
        result = model.find_power(sink=SINK, return_results=True)
    except LMEPowerError as e:
        print(f"Power analysis failed: {e}")
        return 1

    summary = result["results"]["summary"]
    treatment = summary.loc[summary["term_name"] == "condition[T.treatment]"]
    if len(treatment) == 0:
        print("No successful fits - nothing to report.")
        return 1

    print(f"\nEstimated power for the treatment effect: {treatment['power'].iloc[0]:.1%}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
