from typing import Iterable

import pandas as pd

from .exceptions import DataError


class TypeNormalizer:
    """Recasts numeric- or string-coded columns as categorical factors."""

    def __init__(self, columns: Iterable[str]):
        self.columns = list(columns)

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        missing = [col for col in self.columns if col not in df.columns]
        if missing:
            raise KeyError(f"Columns not found in dataset: {missing}")

        out = df.copy()
        for col in self.columns:
            try:
                levels = sorted(out[col].dropna().unique().tolist())
            except TypeError as exc:
                raise DataError(f"Column '{col}' mixes values that cannot be ordered as levels: {exc}") from exc
            out[col] = pd.Categorical(out[col], categories=levels)
        return out
