"""
Append-only result store for LMEPower sweeps.

Replication results are flattened (one row per term) and appended to a
CSV file as soon as they are produced. A file that already holds data
signals a completed sweep and is read back instead of re-running.
"""

import os
from pathlib import Path
from typing import Iterable, Union

import numpy as np
import pandas as pd

from ..exceptions import SinkWriteFailure
from .simulation import RESULT_COLUMNS, ReplicationResult

_TEXT_COLUMNS = ("term_name", "effect_type", "warnings")


def empty_results_frame() -> pd.DataFrame:
    """Empty result table with the standard columns."""
    return pd.DataFrame(columns=list(RESULT_COLUMNS))


def results_to_frame(results: Iterable[ReplicationResult]) -> pd.DataFrame:
    """Flatten replication results into the result-table schema."""
    rows = [row for result in results for row in result.to_rows()]
    if not rows:
        return empty_results_frame()
    return pd.DataFrame(rows, columns=list(RESULT_COLUMNS))


def _normalise_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Restore column order and dtypes after a CSV round trip."""
    missing = [c for c in RESULT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Result table is missing column(s): {', '.join(missing)}")
    df = df.loc[:, list(RESULT_COLUMNS)].copy()
    for col in _TEXT_COLUMNS:
        df[col] = df[col].fillna("").astype(str)
    if df["failed"].dtype != bool:
        df["failed"] = df["failed"].astype(str).str.lower().isin(("true", "1"))
    for col in ("estimate", "std_error", "p_value"):
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)
    return df


class ResultStore:
    """CSV-backed, append-only store of replication results.

    The file is created lazily on the first append (parent directories
    included). Only one writer may append at a time; the sweep driver
    routes all results through a single process.

    Args:
        path: Location of the CSV file.
    """

    def __init__(self, path: Union[str, "os.PathLike[str]"]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def has_data(self) -> bool:
        """True if the file exists and is non-empty (the resume signal)."""
        try:
            return self.path.is_file() and self.path.stat().st_size > 0
        except OSError:
            return False

    def append(self, result: ReplicationResult) -> None:
        """Append the flattened rows of *result*.

        Raises:
            SinkWriteFailure: If the rows cannot be written.
        """
        frame = results_to_frame([result])
        try:
            write_header = not self.has_data()
            if write_header:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            frame.to_csv(self.path, mode="a", header=write_header, index=False)
        except OSError as e:
            raise SinkWriteFailure(f"Could not append replication {result.replication_id} to {self.path}: {e}") from e

    def read(self) -> pd.DataFrame:
        """Load the full table (empty table if the file does not exist)."""
        if not self.has_data():
            return empty_results_frame()
        df = pd.read_csv(self.path)
        return _normalise_frame(df)

    def n_replications(self) -> int:
        """Number of distinct replications stored."""
        df = self.read()
        return int(np.unique(df["replication_id"]).size) if len(df) else 0

    def __repr__(self):
        return f"ResultStore('{self.path}')"
