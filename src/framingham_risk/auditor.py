from typing import Any, Dict

import pandas as pd

from .exceptions import DataError
from .utils.logger import get_logger


class MissingnessAuditor:
    """Counts missing values per row and per column for diagnostic reporting."""

    def __init__(self, verbose: bool = True):
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    @staticmethod
    def _check(df: pd.DataFrame) -> None:
        if not isinstance(df, pd.DataFrame):
            raise TypeError(f"Expected a pandas DataFrame, got {type(df).__name__}")
        duplicated = df.columns[df.columns.duplicated()].tolist()
        if duplicated:
            raise DataError(f"Duplicated column names: {duplicated}")

    def row_counts(self, df: pd.DataFrame) -> pd.Series:
        """Missing cells per row, most incomplete rows first (ties keep row order)."""
        self._check(df)
        counts = df.isna().sum(axis=1).rename("n_missing")
        return counts.sort_values(ascending=False, kind="mergesort")

    def column_counts(self, df: pd.DataFrame) -> pd.Series:
        self._check(df)
        counts = df.isna().sum(axis=0).rename("n_missing")
        return counts.sort_values(ascending=False, kind="mergesort")

    def summary(self, df: pd.DataFrame) -> Dict[str, Any]:
        rows = self.row_counts(df)
        cols = self.column_counts(df)
        report = {
            "n_rows": int(df.shape[0]),
            "n_cols": int(df.shape[1]),
            "rows_with_missing": int((rows > 0).sum()),
            "complete_rows": int((rows == 0).sum()),
            "cells_missing": int(cols.sum()),
            "columns": {str(k): int(v) for k, v in cols[cols > 0].items()},
        }
        if self.verbose:
            self.logger.info(
                f"Missingness: {report['rows_with_missing']:,}/{report['n_rows']:,} rows incomplete, "
                f"{report['cells_missing']:,} cells missing"
            )
            for col, n in report["columns"].items():
                self.logger.info(f"  {col}: {n:,} missing")
        return report
