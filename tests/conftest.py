"""
Shared pytest fixtures for LMEPower tests.
"""

import contextlib
import io

import numpy as np
import pytest

from tests.config import BASE_DESIGN, SEED, SMALL_DESIGN


@pytest.fixture
def base_params():
    """Reference design as DesignParameters."""
    from lmepower import DesignParameters

    return DesignParameters(**BASE_DESIGN)


@pytest.fixture
def small_params():
    """Small design that the real fitter handles quickly."""
    from lmepower import DesignParameters

    return DesignParameters(**SMALL_DESIGN)


@pytest.fixture
def rng():
    return np.random.default_rng(SEED)


@pytest.fixture
def fake_fitter():
    from tests.helpers.fakes import FakeFitter

    return FakeFitter()


@pytest.fixture
def fake_runner(fake_fitter):
    from lmepower import ReplicationRunner

    return ReplicationRunner(fitter=fake_fitter)


@pytest.fixture
def sink_path(tmp_path):
    """Path of a not-yet-existing CSV result store."""
    return tmp_path / "results" / "sweep.csv"


@pytest.fixture
def quiet():
    """Suppress stdout."""
    with contextlib.redirect_stdout(io.StringIO()):
        yield
