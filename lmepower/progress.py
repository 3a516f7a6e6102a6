"""
Progress reporting for LMEPower sweeps.

The sweep driver hands every finished replication to a
:class:`ProgressReporter`, which keeps running counts of completed,
failed and warning-carrying replications and passes a
:class:`SweepProgress` snapshot to a listener. Listeners are plain
callables, so the same reporter drives a console line, a tqdm bar or a
notebook widget.
"""

import sys
from dataclasses import dataclass
from typing import Callable, Optional


class SweepCancelled(Exception):
    """Raised when a sweep is cancelled by the caller."""

    pass


@dataclass(frozen=True)
class SweepProgress:
    """Snapshot of a running sweep.

    Attributes:
        completed: Replications finished so far, failed ones included.
        total: Replications in the sweep.
        n_failed: Replications whose fit failed.
        n_warned: Successful replications that recorded fitting warnings.
    """

    completed: int
    total: int
    n_failed: int = 0
    n_warned: int = 0

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0

    @property
    def done(self) -> bool:
        return self.completed >= self.total


Listener = Callable[[SweepProgress], None]


class ProgressReporter:
    """Tallies replication outcomes and forwards snapshots to *listener*.

    Routine updates are throttled to one per *update_every* completed
    replications. A failed replication is always reported immediately so
    that a failing design shows up before the sweep ends.

    Args:
        total: Number of replications in the sweep.
        listener: Called as ``listener(SweepProgress)``.
        update_every: Replications between routine updates. Defaults to
            about 200 updates per sweep.
    """

    def __init__(self, total: int, listener: Listener, update_every: Optional[int] = None):
        self.total = total
        self.update_every = update_every if update_every is not None else max(1, total // 200)
        self._listener = listener
        self._completed = 0
        self._failed = 0
        self._warned = 0
        self._last_sent: Optional[SweepProgress] = None

    @property
    def snapshot(self) -> SweepProgress:
        return SweepProgress(self._completed, self.total, self._failed, self._warned)

    def start(self):
        """Reset the tallies and send the empty snapshot."""
        self._completed = self._failed = self._warned = 0
        self._send()

    def record(self, result):
        """Count one finished ``ReplicationResult``."""
        self._completed += 1
        if result.failed:
            self._failed += 1
        elif result.warnings:
            self._warned += 1

        if result.failed or self._completed >= self.total or self._completed % self.update_every == 0:
            self._send()

    def finish(self):
        """Send the final tallies if the listener has not seen them yet."""
        if self._last_sent != self.snapshot:
            self._send()

    def _send(self):
        self._last_sent = self.snapshot
        self._listener(self._last_sent)


class PrintReporter:
    """Listener that keeps a single status line on stderr.

    Example line: ``Replications: 723/1600 ( 45.2%), 3 failed, 5 with warnings``.
    The failure part is shown only once something failed or warned.
    """

    def __call__(self, progress: SweepProgress):
        if progress.total <= 0:
            return
        line = f"\rReplications: {progress.completed}/{progress.total} ({progress.fraction:6.1%})"
        if progress.n_failed or progress.n_warned:
            line += f", {progress.n_failed} failed, {progress.n_warned} with warnings"
        sys.stderr.write(line)
        if progress.done:
            sys.stderr.write("\n")
        sys.stderr.flush()


class TqdmReporter:
    """Listener backed by a tqdm bar (tqdm imported on first update).

    Failure and warning counts are shown as the bar's postfix.

    Usage::

        from lmepower.progress import TqdmReporter
        model.find_power(progress_callback=TqdmReporter(desc="power"))
    """

    def __init__(self, **tqdm_kwargs):
        self._tqdm_kwargs = tqdm_kwargs
        self._bar = None

    def __call__(self, progress: SweepProgress):
        from tqdm import tqdm

        if self._bar is None:
            self._bar = tqdm(total=progress.total, unit="rep", **self._tqdm_kwargs)

        if progress.n_failed or progress.n_warned:
            self._bar.set_postfix(failed=progress.n_failed, warned=progress.n_warned, refresh=False)
        self._bar.update(max(0, progress.completed - self._bar.n))

        if progress.done:
            self._bar.close()
            self._bar = None
