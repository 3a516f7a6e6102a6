"""Unit tests for the LMEPower facade (fake fitter, no statsmodels fits)."""

import contextlib
import io
from unittest.mock import MagicMock, patch

import pytest

from lmepower import DesignParameters, InvalidCovariance, LMEPower, SweepProgress
from lmepower.stats.mixed_models import TREATMENT_TERM
from tests.config import BASE_DESIGN, N_REPS_CHECK, SEED
from tests.helpers.fakes import FakeFitter, NotAFitter

DESIGN_STRING = "n_subjects=20, n_trials=100, intercept=1000, effect=50, tau_intercept=80, tau_slope=30, rho=0.2, sigma=200"


@pytest.fixture
def model():
    m = LMEPower(BASE_DESIGN)
    m.set_fitter(FakeFitter())
    with contextlib.redirect_stdout(io.StringIO()):
        m.set_replications(N_REPS_CHECK)
    return m


class TestConstruction:
    def test_from_string(self):
        assert LMEPower(DESIGN_STRING).design == DesignParameters(**BASE_DESIGN)

    def test_from_mapping(self):
        assert LMEPower(BASE_DESIGN).design == DesignParameters(**BASE_DESIGN)

    def test_from_keywords(self):
        assert LMEPower(**BASE_DESIGN).design == DesignParameters(**BASE_DESIGN)

    def test_keywords_override(self):
        assert LMEPower(DESIGN_STRING, effect=0).design.effect == 0.0

    def test_from_parameters(self, base_params):
        assert LMEPower(base_params).design is base_params

    def test_defaults(self):
        m = LMEPower(BASE_DESIGN)
        assert m.seed == 2137
        assert m.alpha == 0.05
        assert m.power == 80.0
        assert m.n_replications == 200
        assert m.parallel is False
        assert m.n_cores >= 1
        assert m.max_failed_replications == 0.03
        assert m.fitter is None

    def test_missing_field(self):
        with pytest.raises(ValueError, match="Missing"):
            LMEPower("n_subjects=20, effect=50")

    def test_invalid_covariance(self):
        with pytest.raises(InvalidCovariance):
            LMEPower({**BASE_DESIGN, "rho": -2})

    def test_repr(self):
        assert repr(LMEPower(BASE_DESIGN)).startswith("LMEPower(n_subjects=20, n_trials=100")


class TestSetters:
    def test_chaining(self):
        m = LMEPower(BASE_DESIGN)
        out = m.set_seed(1).set_alpha(0.01).set_power(90).set_replications(150).set_max_failed_replications(0.1)
        assert out is m
        assert (m.seed, m.alpha, m.power, m.n_replications, m.max_failed_replications) == (1, 0.01, 90.0, 150, 0.1)

    def test_set_design(self):
        m = LMEPower(BASE_DESIGN).set_design("effect=40, sigma=180", n_trials=60)
        assert (m.design.effect, m.design.sigma, m.design.n_trials) == (40.0, 180.0, 60)

    def test_set_design_unknown(self):
        with pytest.raises(ValueError, match="Unknown"):
            LMEPower(BASE_DESIGN).set_design(n_items=4)

    @pytest.mark.parametrize("seed,exc", [(-1, ValueError), (1.5, TypeError), (True, TypeError)])
    def test_invalid_seed(self, seed, exc):
        with pytest.raises(exc):
            LMEPower(BASE_DESIGN).set_seed(seed)

    def test_seed_none(self):
        assert LMEPower(BASE_DESIGN).set_seed(None).seed is None

    @pytest.mark.parametrize("setter,value", [("set_alpha", 0.5), ("set_power", 120), ("set_replications", 0), ("set_max_failed_replications", 2)])
    def test_invalid_settings(self, setter, value):
        with pytest.raises(ValueError):
            getattr(LMEPower(BASE_DESIGN), setter)(value)

    def test_low_replications_warns(self, capsys):
        LMEPower(BASE_DESIGN).set_replications(10)
        assert "Low replication count" in capsys.readouterr().out

    def test_set_parallel(self):
        m = LMEPower(BASE_DESIGN).set_parallel(True, n_cores=2)
        assert m.parallel is True
        assert m.n_cores >= 1
        m.set_parallel(False)
        assert (m.parallel, m.n_cores) == (False, 1)

    def test_set_fitter(self):
        m = LMEPower(BASE_DESIGN)
        fitter = FakeFitter()
        assert m.set_fitter(fitter).fitter is fitter
        assert m.set_fitter(None).fitter is None
        with pytest.raises(TypeError):
            m.set_fitter(NotAFitter())


class TestFindPower:
    def test_returns_result(self, model, quiet):
        result = model.find_power(return_results=True, progress_callback=False)
        assert result["model"]["analysis_type"] == "power"
        assert result["model"]["seed"] == SEED
        summary = result["results"]["summary"]
        assert set(summary["term_name"]) == {"Intercept", TREATMENT_TERM}
        assert summary["n_replications"].tolist() == [N_REPS_CHECK, N_REPS_CHECK]
        assert result["results"]["raw"]["replication_id"].nunique() == N_REPS_CHECK

    def test_returns_none_by_default(self, model, quiet):
        assert model.find_power(progress_callback=False) is None

    def test_prints_report(self, model, capsys):
        model.find_power(progress_callback=False)
        assert "POWER ANALYSIS" in capsys.readouterr().out

    def test_silent(self, model, capsys):
        model.find_power(print_results=False)
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""

    def test_reproducible(self, model, quiet):
        a = model.find_power(return_results=True, progress_callback=False)
        b = model.find_power(return_results=True, progress_callback=False)
        assert a["results"]["summary"].equals(b["results"]["summary"])

    def test_progress_callback(self, model, quiet):
        cb = MagicMock()
        model.find_power(progress_callback=cb)
        cb.assert_any_call(SweepProgress(0, N_REPS_CHECK))
        final = cb.call_args.args[0]
        assert final.completed == N_REPS_CHECK
        assert final.done

    def test_progress_silent_on_resume(self, model, sink_path, quiet):
        model.find_power(sink=sink_path, progress_callback=False)
        cb = MagicMock()
        model.find_power(sink=sink_path, progress_callback=cb)
        cb.assert_not_called()

    def test_sink_and_resume(self, model, sink_path, capsys):
        first = model.find_power(sink=sink_path, return_results=True, progress_callback=False)
        assert sink_path.exists()
        model.set_fitter(RefusingFitter())
        second = model.find_power(sink=sink_path, return_results=True, progress_callback=False)
        assert "Found existing results" in capsys.readouterr().out
        assert first["results"]["summary"].equals(second["results"]["summary"])
        assert second["model"]["sink"] == str(sink_path)


class RefusingFitter(FakeFitter):
    """Fails the test if a resumed sweep tries to fit anything."""

    def fit(self, data, formula):
        raise AssertionError("resumed sweep must not fit")


class TestFindSampleSize:
    def test_first_achieved(self, model, quiet):
        result = model.find_sample_size(from_subjects=2, to_subjects=30, by=4, plot=False, return_results=True, progress_callback=False)
        results = result["results"]
        treatment = results["summary"].loc[results["summary"]["term_name"] == TREATMENT_TERM]
        assert treatment["n_subjects"].tolist() == [2, 6, 10, 14, 18, 22, 26, 30]
        assert results["target_power"] == 0.8
        assert results["target_test"] == TREATMENT_TERM
        if results["first_achieved"] is not None:
            reached = treatment.loc[treatment["power"] >= 0.8, "n_subjects"]
            assert results["first_achieved"] == reached.iloc[0]

    def test_invalid_range(self, model):
        with pytest.raises(ValueError):
            model.find_sample_size(from_subjects=10, to_subjects=5, plot=False)

    def test_plot_called(self, model, quiet):
        with patch("lmepower.model._create_power_plot") as plot:
            model.find_sample_size(from_subjects=4, to_subjects=8, by=4, progress_callback=False)
        plot.assert_called_once()
        assert plot.call_args[1]["by"] == "n_subjects"
        assert plot.call_args[1]["target_power"] == 80.0


class TestRunSweep:
    def test_single_field_grouping(self, model, quiet):
        result = model.run_sweep({"effect": [0, 50]}, return_results=True, progress_callback=False)
        assert result["model"]["by"] == "effect"
        assert sorted(result["results"]["summary"]["effect"].unique()) == [0.0, 50.0]

    def test_multi_field_ungrouped(self, model, quiet):
        result = model.run_sweep({"effect": [0, 50], "sigma": [100, 200]}, return_results=True, progress_callback=False)
        assert result["model"]["by"] is None
        assert result["results"]["raw"]["replication_id"].nunique() == 4 * N_REPS_CHECK

    def test_unknown_field(self, model):
        with pytest.raises(ValueError, match="Unknown"):
            model.run_sweep({"n_items": [1, 2]})
