"""
LMEPower - Monte Carlo power analysis for repeated-measures designs.

This module provides the main LMEPower class for conducting power
analysis of a two-condition, multi-subject, multi-trial experiment
analysed with ``response ~ condition + (1+condition | subject)``.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

import pandas as pd

from .core import (
    DesignParameters,
    PowerAggregator,
    ReplicationRunner,
    SweepDriver,
    build_power_result,
    expand_grid,
    failure_summary,
    first_achieved,
)
from .core.parameters import DESIGN_FIELDS
from .stats.mixed_models import TREATMENT_TERM, Fitter
from .utils.formatters import _format_results
from .utils.parsers import _parse_design_assignments
from .utils.validators import (
    _validate_alpha,
    _validate_max_failed,
    _validate_parallel_settings,
    _validate_power,
    _validate_replications,
    _validate_subject_range,
    _validate_unknown_fields,
)
from .utils.visualization import _create_power_plot

DesignLike = Union[DesignParameters, Mapping[str, Any], str]


def _coerce_design(design: Optional[DesignLike], values: Dict[str, Any]) -> DesignParameters:
    if design is None:
        return DesignParameters.from_dict(values)
    if isinstance(design, DesignParameters):
        return design.replace(**values) if values else design
    if isinstance(design, str):
        merged = _parse_design_assignments(design)
    else:
        merged = dict(design)
    merged.update(values)
    return DesignParameters.from_dict(merged)


class LMEPower:
    """Monte Carlo power analysis for a subjects-by-trials design.

    Each replication draws correlated random intercepts and treatment
    slopes per subject, simulates baseline and treatment trials, fits a
    linear mixed model and records whether the treatment effect is
    significant. Power is the fraction of replications with ``p < alpha``.

    Configuration methods (``set_*``) validate immediately and return
    ``self`` for method chaining.

    Attributes:
        design: Base ``DesignParameters``.
        seed: Random seed for reproducibility (default: 2137).
        power: Target power level in percent (default: 80.0).
        alpha: Significance level (default: 0.05).
        n_replications: Replications per design (default: 200).
        parallel: Run replications in worker processes (default: False).
        n_cores: Number of CPU cores for parallel execution.
        max_failed_replications: Failure rate above which a warning is issued (default: 0.03).
        fitter: Model fitter (default: statsmodels ``MixedLM``).

    Example:
        >>> model = LMEPower("n_subjects=20, n_trials=100, intercept=1000, effect=50, "
        ...                  "tau_intercept=80, tau_slope=30, rho=0.2, sigma=200")
        >>> model.set_replications(500).find_power()
        >>> model.find_sample_size(from_subjects=5, to_subjects=40, by=5)
    """

    def __init__(self, design: Optional[DesignLike] = None, **values):
        """Initialize the power analysis.

        Args:
            design: ``DesignParameters``, a mapping with all eight design
                fields, or an assignment string such as
                ``"n_subjects=20, n_trials=100, ..."``.
            **values: Design fields given as keywords (override *design*).

        Raises:
            ValueError: On unknown, missing or invalid design fields.
            InvalidCovariance: If the random-effect covariance is not valid.
        """
        import multiprocessing as mp

        self.design = _coerce_design(design, values)

        self.seed: Optional[int] = 2137
        self.power = 80.0
        self.alpha = 0.05
        self.n_replications = 200

        self.parallel = False
        self.n_cores = max(1, (mp.cpu_count() or 1) // 2)

        self.max_failed_replications = 0.03
        self.fitter: Optional[Fitter] = None

    # =========================================================================
    # Configuration methods
    # =========================================================================

    def set_design(self, assignments: Optional[str] = None, **values):
        """Update base design fields.

        Args:
            assignments: Optional string such as ``"effect=40, sigma=180"``.
            **values: Field values (take precedence over *assignments*).

        Returns:
            self: For method chaining.

        Raises:
            ValueError: On unknown fields or invalid values.
        """
        changes: Dict[str, Any] = _parse_design_assignments(assignments) if assignments else {}
        changes.update(values)
        self.design = self.design.replace(**changes)
        return self

    def set_seed(self, seed: Optional[int] = None):
        """Set random seed for reproducibility.

        Args:
            seed: Non-negative integer, or ``None`` for fresh entropy on every run.

        Returns:
            self: For method chaining.

        Raises:
            TypeError: If *seed* is not an integer or ``None``.
            ValueError: If *seed* is negative.
        """
        if seed is not None:
            if isinstance(seed, bool) or not isinstance(seed, int):
                raise TypeError("seed must be an integer or None")
            if seed < 0:
                raise ValueError("seed must be non-negative")
        self.seed = seed
        return self

    def set_power(self, power: float):
        """Set target power level (percent, 0-100)."""
        _validate_power(power).raise_if_invalid()
        self.power = float(power)
        return self

    def set_alpha(self, alpha: float):
        """Set significance level (0-0.25)."""
        _validate_alpha(alpha).raise_if_invalid()
        self.alpha = float(alpha)
        return self

    def set_replications(self, n_replications: int):
        """Set the number of replications per design.

        Non-integer values are rounded; fewer than 100 triggers a printed warning.
        """
        rounded, result = _validate_replications(n_replications)
        result.raise_if_invalid()
        for warning in result.warnings:
            print(f"Warning: {warning}")
        self.n_replications = rounded
        return self

    def set_parallel(self, enable: bool = True, n_cores: Optional[int] = None):
        """Enable or disable parallel processing (joblib worker processes).

        Args:
            enable: ``True`` for parallel, ``False`` for sequential.
            n_cores: Number of CPU cores to use. Defaults to ``cpu_count // 2``.

        Returns:
            self: For method chaining.
        """
        if enable is False:
            self.parallel, self.n_cores = False, 1
            return self

        settings, result = _validate_parallel_settings(enable, n_cores)
        result.raise_if_invalid()
        self.parallel, self.n_cores = settings
        return self

    def set_max_failed_replications(self, max_failed: float):
        """Set the failed-replication proportion (0-1) that triggers a warning."""
        _validate_max_failed(max_failed).raise_if_invalid()
        self.max_failed_replications = float(max_failed)
        return self

    def set_fitter(self, fitter: Optional[Fitter]):
        """Use a custom model fitter (``None`` restores the statsmodels default)."""
        if fitter is not None and not isinstance(fitter, Fitter):
            raise TypeError(f"fitter must implement fit(data, formula), got {type(fitter).__name__}")
        self.fitter = fitter
        return self

    # =========================================================================
    # Analyses
    # =========================================================================

    def find_power(
        self,
        sink: Optional[str] = None,
        print_results: bool = True,
        return_results: bool = False,
        progress_callback=None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ):
        """Estimate power of the base design.

        Args:
            sink: Optional CSV path. Existing data there is reused instead
                of re-running; otherwise results are appended as they complete.
            print_results: Whether to print results
            return_results: Return results dict
            progress_callback: Progress reporting control:
                ``None`` prints progress to stderr when *print_results* is
                ``True``; ``False`` disables it; a callable receives
                ``SweepProgress`` snapshots (completed, total, failed and
                warned counts).
            cancel_check: Optional callable returning ``True`` to abort.

        Returns:
            dict or None: If *return_results* is ``True``, the result dict
            from ``build_power_result``.
        """
        result = self._run_sweep_analysis("power", {}, None, sink, progress_callback, cancel_check, print_results)

        if print_results:
            print(_format_results("power", result))
        return result if return_results else None

    def find_sample_size(
        self,
        from_subjects: int = 5,
        to_subjects: int = 50,
        by: int = 5,
        target_test: str = TREATMENT_TERM,
        sink: Optional[str] = None,
        print_results: bool = True,
        return_results: bool = False,
        plot: bool = True,
        progress_callback=None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ):
        """Sweep ``n_subjects`` and find the first value reaching target power.

        Args:
            from_subjects: Smallest number of subjects.
            to_subjects: Largest number of subjects (inclusive).
            by: Step between tested values.
            target_test: Fixed-effect term whose power is targeted.
            sink: Optional CSV result store (see :meth:`find_power`).
            print_results: Whether to print results
            return_results: Return results dict
            plot: Show the power curve (requires matplotlib).
            progress_callback: See :meth:`find_power`.
            cancel_check: Optional callable returning ``True`` to abort.

        Returns:
            dict or None: If *return_results* is ``True``, the result dict
            with ``first_achieved`` in ``"results"``.
        """
        range_result = _validate_subject_range(from_subjects, to_subjects, by)
        range_result.raise_if_invalid()
        for warning in range_result.warnings:
            print(f"Warning: {warning}")

        subjects = list(range(from_subjects, to_subjects + 1, by))
        result = self._run_sweep_analysis("sample_size", {"n_subjects": subjects}, "n_subjects", sink, progress_callback, cancel_check, print_results)

        target = self.power / 100
        achieved = first_achieved(result["results"]["summary"], "n_subjects", target_test, target)
        result["results"].update({"first_achieved": achieved, "target_power": target, "target_test": target_test})

        if print_results:
            print(_format_results("sample_size", result))
        if plot:
            _create_power_plot(
                summary=result["results"]["summary"],
                by="n_subjects",
                term=target_test,
                target_power=self.power,
                title="Power Analysis",
                first_achieved=achieved,
            )
        return result if return_results else None

    def run_sweep(
        self,
        vary: Mapping[str, Sequence[Any]],
        by: Optional[str] = None,
        sink: Optional[str] = None,
        print_results: bool = True,
        return_results: bool = False,
        progress_callback=None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ):
        """Sweep any combination of design fields.

        Args:
            vary: Field name to list of values (cartesian product).
            by: Field to group the summary by (defaults to the single varied
                field, if exactly one is varied).
            sink: Optional CSV result store (see :meth:`find_power`).
            print_results: Whether to print results
            return_results: Return results dict
            progress_callback: See :meth:`find_power`.
            cancel_check: Optional callable returning ``True`` to abort.
        """
        _validate_unknown_fields(list(vary), DESIGN_FIELDS).raise_if_invalid()
        if by is not None:
            _validate_unknown_fields([by], DESIGN_FIELDS, "grouping key").raise_if_invalid()
        elif len(vary) == 1:
            by = next(iter(vary))

        result = self._run_sweep_analysis("sweep", vary, by, sink, progress_callback, cancel_check, print_results)
        if print_results:
            print(_format_results("sweep", result))
        return result if return_results else None

    # =========================================================================
    # Internals
    # =========================================================================

    def _run_sweep_analysis(self, analysis_type, vary, by, sink, progress_callback, cancel_check, print_results) -> Dict[str, Any]:
        grid = expand_grid(self.design, n_replications=self.n_replications, **vary)
        raw = self._run_grid(grid, sink, print_results, progress_callback, cancel_check)

        return build_power_result(
            analysis_type=analysis_type,
            design=self.design.as_dict(),
            alpha=self.alpha,
            n_replications=self.n_replications,
            seed=self.seed,
            parallel=self.parallel,
            sink=str(sink) if sink is not None else None,
            by=by,
            summary=PowerAggregator(alpha=self.alpha).summarize(raw, by=by),
            failures=failure_summary(raw, by=by),
            raw=raw,
        )

    def _make_driver(self) -> SweepDriver:
        return SweepDriver(
            runner=ReplicationRunner(fitter=self.fitter),
            seed=self.seed,
            parallel=self.parallel,
            n_cores=self.n_cores,
            max_failed_replications=self.max_failed_replications,
        )

    def _run_grid(self, grid, sink, print_results, progress_callback, cancel_check) -> pd.DataFrame:
        """Run the sweep driver with progress reporting."""
        from .core.store import ResultStore
        from .progress import PrintReporter, ProgressReporter

        if sink is not None and ResultStore(sink).has_data():
            if print_results:
                print(f"Found existing results in {sink}; skipping simulation.")
            return self._make_driver().run(grid, sink=sink)

        if progress_callback is None:
            effective_cb = PrintReporter() if print_results else None
        elif progress_callback is False:
            effective_cb = None
        else:
            effective_cb = progress_callback

        reporter = ProgressReporter(len(grid), effective_cb) if effective_cb is not None else None
        return self._make_driver().run(grid, sink=sink, progress=reporter, cancel_check=cancel_check)

    def __repr__(self):
        return f"LMEPower({', '.join(f'{k}={v!r}' for k, v in self.design.as_dict().items())})"
