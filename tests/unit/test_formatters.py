"""
Tests for result formatting utilities.
"""

import pandas as pd

from lmepower import PowerAggregator
from lmepower.core.results import build_power_result, failure_summary
from lmepower.core.simulation import ReplicationResult
from lmepower.core.store import results_to_frame
from lmepower.stats.mixed_models import INTERCEPT_TERM, TREATMENT_TERM, TermEstimate
from lmepower.utils.formatters import _format_design, _format_results, _format_summary_table


def _raw(params, n=4, by_values=(20,)):
    results = []
    rid = 0
    for value in by_values:
        p = params.replace(n_subjects=value)
        for i in range(n):
            terms = [
                TermEstimate(INTERCEPT_TERM, "fixed", 1000.0, 20.0, 1e-8),
                TermEstimate(TREATMENT_TERM, "fixed", 48.0, 15.0, 0.01 if i % 2 == 0 else 0.2),
            ]
            results.append(ReplicationResult(rid, p, terms, warnings="Boundary estimate" if i == 0 else ""))
            rid += 1
    results.append(ReplicationResult(rid, params, failed=True, warnings="Singular matrix"))
    return results_to_frame(results)


def _result(analysis_type, params, by=None, extra=None, by_values=(20,)):
    raw = _raw(params, by_values=by_values)
    return build_power_result(
        analysis_type=analysis_type,
        design=params.as_dict(),
        alpha=0.05,
        n_replications=4,
        seed=2137,
        parallel=False,
        sink="runs/sweep.csv",
        by=by,
        summary=PowerAggregator().summarize(raw, by=by),
        failures=failure_summary(raw, by=by),
        raw=raw,
        extra=extra,
    )


class TestFormatDesign:
    def test_ints_and_floats(self):
        text = _format_design({"n_subjects": 20, "rho": 0.2, "sigma": 200.0})
        assert text == "n_subjects=20, rho=0.2, sigma=200"


class TestFormatSummaryTable:
    def test_empty(self):
        assert "No fixed-effect estimates" in _format_summary_table(pd.DataFrame())

    def test_percentages(self, base_params):
        raw = _raw(base_params)
        table = _format_summary_table(PowerAggregator().summarize(raw))
        assert "Term" in table
        assert TREATMENT_TERM in table
        assert "50.0%" in table
        assert "-2.000" in table


class TestFormatResults:
    def test_power_report(self, base_params):
        text = _format_results("power", _result("power", base_params))
        assert "POWER ANALYSIS" in text
        assert "n_subjects=20" in text
        assert "Result store: runs/sweep.csv" in text
        assert "Replications: 5 total, 1 failed, 1 with convergence warnings" in text

    def test_sample_size_reached(self, base_params):
        extra = {"first_achieved": 10, "target_power": 0.8, "target_test": TREATMENT_TERM}
        result = _result("sample_size", base_params, by="n_subjects", extra=extra, by_values=(5, 10))
        text = _format_results("sample_size", result)
        assert "SAMPLE SIZE ANALYSIS" in text
        assert f"Target power 80% for {TREATMENT_TERM} first reached at n_subjects=10." in text

    def test_sample_size_not_reached(self, base_params):
        extra = {"first_achieved": None, "target_power": 0.9, "target_test": TREATMENT_TERM}
        result = _result("sample_size", base_params, by="n_subjects", extra=extra, by_values=(5, 10))
        assert "not reached in the tested range" in _format_results("sample_size", result)

    def test_sweep_title(self, base_params):
        assert "PARAMETER SWEEP" in _format_results("sweep", _result("sweep", base_params))
