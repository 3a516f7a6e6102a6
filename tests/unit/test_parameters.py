"""Unit tests for lmepower.core.parameters."""

import numpy as np
import pytest

from lmepower import DesignParameters, InvalidCovariance
from lmepower.core.parameters import DESIGN_FIELDS, expand_grid
from tests.config import BASE_DESIGN


class TestDesignParameters:
    def test_fields_in_order(self):
        assert DESIGN_FIELDS == (
            "n_subjects",
            "n_trials",
            "intercept",
            "effect",
            "tau_intercept",
            "tau_slope",
            "rho",
            "sigma",
        )

    def test_values_cast_to_builtins(self):
        p = DesignParameters(**{**BASE_DESIGN, "n_subjects": np.int64(12), "effect": np.float32(2.5)})
        assert type(p.n_subjects) is int
        assert type(p.effect) is float
        assert p.n_subjects == 12
        assert p.effect == pytest.approx(2.5)

    def test_frozen(self, base_params):
        with pytest.raises(Exception):
            base_params.effect = 10.0

    def test_hashable_and_equal(self):
        a = DesignParameters(**BASE_DESIGN)
        b = DesignParameters(**BASE_DESIGN)
        assert a == b
        assert hash(a) == hash(b)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("n_subjects", 0),
            ("n_trials", -3),
            ("n_subjects", 2.5),
            ("tau_intercept", -1.0),
            ("tau_slope", -0.1),
            ("sigma", -5.0),
            ("effect", float("nan")),
            ("intercept", "1000"),
            ("n_trials", True),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            DesignParameters(**{**BASE_DESIGN, field: value})

    @pytest.mark.parametrize("rho", [1.5, -1.01])
    def test_rho_out_of_range_is_invalid_covariance(self, rho):
        with pytest.raises(InvalidCovariance):
            DesignParameters(**{**BASE_DESIGN, "rho": rho})

    def test_invalid_covariance_is_value_error(self):
        with pytest.raises(ValueError):
            DesignParameters(**{**BASE_DESIGN, "rho": 2.0})

    @pytest.mark.parametrize("rho", [1.0, -1.0])
    def test_boundary_correlation_accepted(self, rho):
        p = DesignParameters(**{**BASE_DESIGN, "rho": rho})
        assert p.rho == rho

    def test_zero_variance_components_accepted(self):
        p = DesignParameters(**{**BASE_DESIGN, "tau_intercept": 0.0, "tau_slope": 0.0, "sigma": 0.0})
        assert np.all(p.covariance_matrix() == 0)

    def test_covariance_matrix(self, base_params):
        G = base_params.covariance_matrix()
        assert G.shape == (2, 2)
        assert G[0, 0] == pytest.approx(80.0**2)
        assert G[1, 1] == pytest.approx(30.0**2)
        assert G[0, 1] == pytest.approx(0.2 * 80 * 30)
        assert G[0, 1] == G[1, 0]


class TestFromDictAndReplace:
    def test_from_dict(self):
        assert DesignParameters.from_dict(BASE_DESIGN).as_dict() == BASE_DESIGN

    def test_from_dict_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown design parameter"):
            DesignParameters.from_dict({**BASE_DESIGN, "n_items": 4})

    def test_from_dict_missing_field(self):
        values = dict(BASE_DESIGN)
        del values["sigma"]
        with pytest.raises(ValueError, match="sigma"):
            DesignParameters.from_dict(values)

    def test_replace_validates(self, base_params):
        assert base_params.replace(effect=0).effect == 0.0
        with pytest.raises(ValueError):
            base_params.replace(n_subjects=0)
        with pytest.raises(ValueError, match="Unknown"):
            base_params.replace(n_items=3)

    def test_replace_leaves_original(self, base_params):
        base_params.replace(effect=0)
        assert base_params.effect == 50.0


class TestExpandGrid:
    def test_replications_only(self, base_params):
        grid = expand_grid(base_params, n_replications=3)
        assert grid == [base_params] * 3

    def test_cartesian_product_order(self, base_params):
        grid = expand_grid(base_params, n_replications=2, n_subjects=[5, 10], effect=[0, 50])
        combos = [(p.n_subjects, p.effect) for p in grid]
        assert combos == [
            (5, 0.0), (5, 0.0),
            (5, 50.0), (5, 50.0),
            (10, 0.0), (10, 0.0),
            (10, 50.0), (10, 50.0),
        ]

    def test_unvaried_fields_from_base(self, base_params):
        grid = expand_grid(base_params, n_subjects=range(2, 5))
        assert all(p.sigma == base_params.sigma for p in grid)
        assert [p.n_subjects for p in grid] == [2, 3, 4]

    def test_empty_values_give_empty_grid(self, base_params):
        assert expand_grid(base_params, n_subjects=[]) == []

    def test_unknown_field(self, base_params):
        with pytest.raises(ValueError, match="Unknown"):
            expand_grid(base_params, n_items=[1, 2])

    def test_invalid_replications(self, base_params):
        with pytest.raises(ValueError):
            expand_grid(base_params, n_replications=0)

    def test_invalid_value_in_sweep(self, base_params):
        with pytest.raises(InvalidCovariance):
            expand_grid(base_params, rho=[0.0, 1.5])
