"""
Sample Size Calculation Example
===============================

How many participants are needed to detect a 50 ms treatment effect
with 80% power? Sweeps the number of subjects and reports the first
value that reaches the target.
"""

import sys

from lmepower import LMEPower, LMEPowerError


def main():
    print("=" * 60)
    print("SAMPLE SIZE CALCULATION EXAMPLE")
    print("=" * 60)

    model = LMEPower(
        n_subjects=20,
        n_trials=50,
        intercept=1000,
        effect=50,
        tau_intercept=80,
        tau_slope=30,
        rho=0.2,
        sigma=200,
    )
    model.set_power(80).set_replications(100).set_parallel(True)

    try:
        result = model.find_sample_size(
            from_subjects=4,
            to_subjects=40,
            by=4,
            plot=False,
            return_results=True,
        )
    except LMEPowerError as e:
        print(f"Sample size analysis failed: {e}")
        return 1

    if result["results"]["first_achieved"] is None:
        print("\nTarget power not reached - extend the range or add trials.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
