import os
from typing import Optional

import pandas as pd

from .exceptions import DataError
from .utils.logger import get_logger


class DataLoader:
    """Loads a delimited dataset in full and optionally samples rows."""

    def __init__(
        self,
        path: str,
        sample_size: Optional[int] = None,
        sep: str = ",",
        random_state: int = 42,
    ):
        self.path = path
        self.sample_size = sample_size
        self.sep = sep
        self.random_state = random_state
        self.logger = get_logger(self.__class__.__name__)

    def load(self) -> pd.DataFrame:
        try:
            header = pd.read_csv(self.path, sep=self.sep, header=None, nrows=1).iloc[0]
            df = pd.read_csv(self.path, sep=self.sep)
        except pd.errors.EmptyDataError as exc:
            raise DataError(f"No data in {self.path}") from exc
        duplicated = header[header.duplicated()].tolist()
        if duplicated:
            raise DataError(f"Duplicated column names in {self.path}: {duplicated}")
        if df.empty:
            raise DataError(f"No rows in {self.path}")
        if self.sample_size:
            df = df.sample(self.sample_size, random_state=self.random_state)
        self.logger.info(f"Loaded {self.path}: {df.shape[0]:,} rows x {df.shape[1]} cols")
        return df

    def save(self, df: pd.DataFrame, path: str) -> str:
        """Write ``df`` as a delimited file without the index."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        df.to_csv(path, sep=self.sep, index=False)
        self.logger.info(f"Saved dataset: {path} ({len(df):,} rows)")
        return path
