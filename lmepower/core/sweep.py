"""
Sweep execution for LMEPower.

Runs a replication for every row of a parameter grid, optionally
persisting each result to a :class:`ResultStore` as soon as it is
produced. A store that already holds data is treated as a completed
sweep and returned as-is.
"""

import warnings
from typing import Callable, Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..exceptions import LMEPowerError
from ..progress import SweepCancelled
from ..stats.data_generation import check_covariance
from .parameters import DesignParameters
from .simulation import ReplicationResult, ReplicationRunner
from .store import ResultStore, empty_results_frame, results_to_frame

SeedLike = Union[None, int, np.random.SeedSequence]


def _run_replication(
    runner: ReplicationRunner,
    params: DesignParameters,
    seed_seq: np.random.SeedSequence,
    replication_id: int,
) -> ReplicationResult:
    """Module-level job so it can be shipped to joblib workers."""
    return runner.run(params, np.random.default_rng(seed_seq), replication_id=replication_id)


def _validate_grid(grid: Sequence[DesignParameters]) -> None:
    """Check every row before any simulation work starts."""
    for i, params in enumerate(grid):
        if not isinstance(params, DesignParameters):
            raise TypeError(f"Grid row {i} must be DesignParameters, got {type(params).__name__}")
        # Rows can be altered after construction through object.__setattr__
        check_covariance(params.covariance_matrix())


class SweepDriver:
    """Runs replications over a parameter grid.

    Every grid row is one independent replication (repeat a row to
    replicate a design). Replication ``i`` draws from its own random
    substream spawned from ``seed``, so results do not depend on whether
    the sweep runs sequentially or in parallel.

    Args:
        runner: Replication runner; defaults to ``ReplicationRunner()``.
        seed: Root seed (int), a ``numpy.random.SeedSequence``, or ``None``
            for fresh OS entropy.
        parallel: Run replications in joblib worker processes.
        n_cores: Number of workers when *parallel* is set.
        max_failed_replications: Failed-replication proportion (0-1)
            above which a warning is issued after the sweep.
    """

    def __init__(
        self,
        runner: Optional[ReplicationRunner] = None,
        seed: SeedLike = None,
        parallel: bool = False,
        n_cores: int = 1,
        max_failed_replications: float = 0.03,
    ):
        self.runner = runner if runner is not None else ReplicationRunner()
        self.seed = seed
        self.parallel = parallel
        self.n_cores = n_cores
        self.max_failed_replications = max_failed_replications

    def run(
        self,
        grid: Sequence[DesignParameters],
        sink=None,
        progress=None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> pd.DataFrame:
        """Run the sweep.

        Args:
            grid: Ordered design rows, one per replication.
            sink: Optional path of the CSV result store. If it already
                holds data the sweep is skipped and the stored table is
                returned; otherwise each result is appended as it is
                produced.
            progress: Optional ``ProgressReporter``. Started once work
                begins, given every finished replication and finished at
                the end; untouched when the sweep is skipped.
            cancel_check: Optional callable returning ``True`` to abort.

        Returns:
            Flattened result table (one row per term per replication).

        Raises:
            InvalidCovariance: If any grid row has an invalid covariance.
            SinkWriteFailure: If a result cannot be persisted.
            SweepCancelled: If *cancel_check* requested cancellation.
        """
        grid = list(grid)
        _validate_grid(grid)

        store = ResultStore(sink) if sink is not None else None
        if store is not None and store.has_data():
            return store.read()

        if not grid:
            return empty_results_frame()

        seeds = self._spawn_seeds(len(grid))
        if progress is not None:
            progress.start()
        collected: List[ReplicationResult] = []
        n_failed = 0

        if self.parallel and self.n_cores > 1:
            results = self._iter_parallel(grid, seeds, cancel_check)
        else:
            results = self._iter_sequential(grid, seeds, cancel_check)

        for result in results:
            if store is not None:
                store.append(result)
            else:
                collected.append(result)
            n_failed += int(result.failed)
            if progress is not None:
                progress.record(result)

        if progress is not None:
            progress.finish()
        self._check_failure_rate(n_failed, len(grid))

        if store is not None:
            return store.read()
        return results_to_frame(collected)

    def _spawn_seeds(self, n: int) -> List[np.random.SeedSequence]:
        if isinstance(self.seed, np.random.SeedSequence):
            # Fresh copy so repeated runs spawn the same children
            root = np.random.SeedSequence(self.seed.entropy, spawn_key=self.seed.spawn_key)
        else:
            root = np.random.SeedSequence(self.seed)
        return root.spawn(n)

    def _iter_sequential(self, grid, seeds, cancel_check) -> Iterator[ReplicationResult]:
        for i, (params, seed_seq) in enumerate(zip(grid, seeds)):
            if cancel_check is not None and cancel_check():
                raise SweepCancelled("Sweep cancelled by user")
            yield _run_replication(self.runner, params, seed_seq, i)

    def _iter_parallel(self, grid, seeds, cancel_check) -> Iterator[ReplicationResult]:
        """Yield results in grid order from joblib workers.

        The caller consumes the generator in the parent process, which is
        therefore the only writer to the store.
        """
        from joblib import Parallel, delayed

        n_done = 0
        try:
            results = Parallel(
                n_jobs=self.n_cores,
                backend="loky",
                verbose=0,
                return_as="generator",
            )(delayed(_run_replication)(self.runner, params, seed_seq, i) for i, (params, seed_seq) in enumerate(zip(grid, seeds)))
            for result in results:
                if cancel_check is not None and cancel_check():
                    raise SweepCancelled("Sweep cancelled by user")
                n_done += 1
                yield result
        except (SweepCancelled, LMEPowerError, ValueError, TypeError):
            raise
        except Exception as e:
            if n_done:
                raise
            warnings.warn(f"Parallel execution failed ({e}). Falling back to sequential.", stacklevel=2)
            yield from self._iter_sequential(grid, seeds, cancel_check)

    def _check_failure_rate(self, n_failed: int, n_total: int) -> None:
        if n_failed == 0:
            return
        failed_pct = n_failed / n_total
        if n_failed == n_total:
            warnings.warn(f"All {n_total} replications failed - check the design and model specification", stacklevel=3)
        elif failed_pct > self.max_failed_replications:
            warnings.warn(
                f"Too many failed replications: {n_failed}/{n_total} ({failed_pct:.1%}), threshold: {self.max_failed_replications:.1%}",
                stacklevel=3,
            )
