"""
Data Generator for LMEPower.

Generates synthetic repeated-measures datasets with:
- Correlated per-subject random intercepts and treatment slopes
- A fixed baseline/treatment contrast
- Independent normal residual noise

All randomness comes from an explicit ``numpy.random.Generator`` so that
a replication is reproducible from its seed alone.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np
import pandas as pd

from ..exceptions import InvalidCovariance

CONDITIONS = ("baseline", "treatment")
"""Condition levels; the first is the reference level."""

DATA_COLUMNS = ("subject", "trial", "condition", "response")

PSD_TOLERANCE = 1e-10


def build_covariance_matrix(tau_intercept: float, tau_slope: float, rho: float) -> np.ndarray:
    """Return ``[[tau0^2, rho*tau0*tau1], [rho*tau0*tau1, tau1^2]]``."""
    cov = rho * tau_intercept * tau_slope
    return np.array(
        [
            [tau_intercept**2, cov],
            [cov, tau_slope**2],
        ],
        dtype=float,
    )


def check_covariance(G_matrix: np.ndarray) -> None:
    """Raise ``InvalidCovariance`` unless *G_matrix* is a valid covariance.

    Checks shape, finiteness, symmetry, that the implied correlation lies
    in [-1, 1], and that the smallest eigenvalue is not negative (up to
    ``PSD_TOLERANCE``). Singular matrices are accepted.
    """
    G_matrix = np.asarray(G_matrix, dtype=float)
    if G_matrix.shape != (2, 2):
        raise InvalidCovariance(f"Random-effect covariance must be 2x2, got shape {G_matrix.shape}")
    if not np.all(np.isfinite(G_matrix)):
        raise InvalidCovariance("Random-effect covariance contains non-finite values")
    if not np.allclose(G_matrix, G_matrix.T):
        raise InvalidCovariance("Random-effect covariance is not symmetric")

    var0, var1 = G_matrix[0, 0], G_matrix[1, 1]
    if var0 < 0 or var1 < 0:
        raise InvalidCovariance(f"Random-effect variances must be non-negative, got {var0} and {var1}")
    if var0 > 0 and var1 > 0:
        rho = G_matrix[0, 1] / np.sqrt(var0 * var1)
        if abs(rho) > 1 + PSD_TOLERANCE:
            raise InvalidCovariance(f"Random-effect correlation must lie in [-1, 1], got {rho:.6g}")

    min_eig = np.linalg.eigvalsh(G_matrix).min()
    # Scale-aware tolerance so large variances are not rejected on round-off
    scale = max(1.0, float(np.abs(G_matrix).max()))
    if min_eig < -PSD_TOLERANCE * scale:
        raise InvalidCovariance(f"Random-effect covariance is not positive semi-definite (smallest eigenvalue {min_eig:.6g})")


@dataclass
class SubjectRandomEffects:
    """Per-subject random effects of one replication.

    Behaves as a read-only mapping ``subject_id -> (t0, t1)`` where
    subject ids run from 1 to ``n_subjects``.
    """

    subject_ids: np.ndarray
    """(n_subjects,) subject ids ``1..n_subjects``."""

    intercepts: np.ndarray
    """(n_subjects,) random intercept deviations (t0)."""

    slopes: np.ndarray
    """(n_subjects,) random treatment-slope deviations (t1)."""

    def __len__(self) -> int:
        return len(self.subject_ids)

    def __getitem__(self, subject_id: int) -> Tuple[float, float]:
        idx = int(subject_id) - 1
        if idx < 0 or idx >= len(self.subject_ids):
            raise KeyError(subject_id)
        return float(self.intercepts[idx]), float(self.slopes[idx])

    def __iter__(self) -> Iterator[int]:
        return (int(s) for s in self.subject_ids)

    def items(self) -> Iterator[Tuple[int, Tuple[float, float]]]:
        for subject_id in self:
            yield subject_id, self[subject_id]

    def as_array(self) -> np.ndarray:
        """(n_subjects, 2) array with columns ``[t0, t1]``."""
        return np.column_stack([self.intercepts, self.slopes])


def sample_random_effects(
    n_subjects: int,
    tau_intercept: float,
    tau_slope: float,
    rho: float,
    rng: np.random.Generator,
) -> SubjectRandomEffects:
    """Draw correlated random intercepts and slopes for every subject.

    Each subject's ``(t0, t1)`` is an independent draw from
    ``MVN(0, G)`` with ``G`` built by :func:`build_covariance_matrix`.

    Args:
        n_subjects: Number of subjects.
        tau_intercept: SD of the random intercepts.
        tau_slope: SD of the random slopes.
        rho: Intercept/slope correlation.
        rng: Random source; consumed, nothing else is touched.

    Returns:
        A :class:`SubjectRandomEffects` for subjects ``1..n_subjects``.

    Raises:
        InvalidCovariance: If the covariance is not positive semi-definite.
    """
    G_matrix = build_covariance_matrix(tau_intercept, tau_slope, rho)
    check_covariance(G_matrix)

    # SVD-based sampling copes with singular G (zero SD or |rho| = 1)
    b = rng.multivariate_normal(np.zeros(2), G_matrix, size=n_subjects, method="svd")

    return SubjectRandomEffects(
        subject_ids=np.arange(1, n_subjects + 1, dtype=np.int64),
        intercepts=b[:, 0].copy(),
        slopes=b[:, 1].copy(),
    )


def generate_trials(params, random_effects: SubjectRandomEffects, rng: np.random.Generator) -> pd.DataFrame:
    """Generate the trial-level dataset of one replication.

    Rows are ordered by subject, then trial, then condition, so the
    result always has ``n_subjects * n_trials * 2`` rows. The response is::

        intercept + t0[s] + (effect + t1[s]) * is_treatment + noise

    with ``noise ~ N(0, sigma)`` drawn independently for every row.

    Args:
        params: ``DesignParameters`` of the replication.
        random_effects: Random effects covering exactly ``params.n_subjects``.
        rng: Random source for the residual noise.

    Returns:
        DataFrame with columns ``subject``, ``trial``, ``condition``
        (categorical, baseline first) and ``response``.
    """
    n_subjects = params.n_subjects
    n_trials = params.n_trials
    n_conditions = len(CONDITIONS)

    if len(random_effects) != n_subjects:
        raise ValueError(f"random_effects covers {len(random_effects)} subjects, expected {n_subjects}")

    per_subject = n_trials * n_conditions
    n_rows = n_subjects * per_subject

    subject_idx = np.repeat(np.arange(n_subjects), per_subject)
    trial = np.tile(np.repeat(np.arange(1, n_trials + 1), n_conditions), n_subjects)
    is_treatment = np.tile(np.arange(n_conditions), n_subjects * n_trials)

    noise = rng.normal(0.0, params.sigma, size=n_rows)
    response = (
        params.intercept
        + random_effects.intercepts[subject_idx]
        + (params.effect + random_effects.slopes[subject_idx]) * is_treatment
        + noise
    )

    return pd.DataFrame(
        {
            "subject": random_effects.subject_ids[subject_idx],
            "trial": trial,
            "condition": pd.Categorical.from_codes(is_treatment, categories=list(CONDITIONS)),
            "response": response,
        },
        columns=list(DATA_COLUMNS),
    )
