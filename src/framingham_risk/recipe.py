"""
Declarative preprocessing recipes.

A recipe is an ordered list of steps. ``prep`` estimates each step's
parameters on a reference dataset, applying every step before the next one
is estimated; ``bake`` replays the fitted steps on any dataset without
re-estimating anything.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from pandas.api.types import (
    is_bool_dtype,
    is_numeric_dtype,
    is_object_dtype,
    is_string_dtype,
)
from sklearn.impute import SimpleImputer
from sklearn.neighbors import NearestNeighbors
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from .exceptions import ConfigurationError, DataError, NotPreppedError
from .utils.logger import get_logger

Selector = Union[str, Sequence[str]]

SELECTORS = ("all_predictors", "all_numeric_predictors", "all_nominal_predictors")


def is_numeric(series: pd.Series) -> bool:
    return is_numeric_dtype(series.dtype) and not is_bool_dtype(series.dtype)


def is_nominal(series: pd.Series) -> bool:
    dtype = series.dtype
    return (
        isinstance(dtype, pd.CategoricalDtype)
        or is_bool_dtype(dtype)
        or is_object_dtype(dtype)
        or is_string_dtype(dtype)
    )


def resolve_columns(selector: Selector, df: pd.DataFrame, outcome: Optional[str], kind: str) -> List[str]:
    """Turn a selector into concrete column names present in ``df``."""
    if isinstance(selector, str):
        predictors = [col for col in df.columns if col != outcome]
        if selector == "all_predictors":
            return predictors
        if selector == "all_numeric_predictors":
            return [col for col in predictors if is_numeric(df[col])]
        return [col for col in predictors if is_nominal(df[col])]

    missing = [col for col in selector if col not in df.columns]
    if missing:
        raise ConfigurationError(f"Step '{kind}': columns not found: {missing}")
    return list(selector)


@dataclass
class Step:
    """Base class: a column selector plus parameters learned by ``fit``."""

    kind: ClassVar[str] = ""

    columns: Selector = "all_predictors"
    columns_: Optional[List[str]] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.columns, str) and self.columns not in SELECTORS:
            self.columns = [self.columns]
        elif not isinstance(self.columns, str):
            self.columns = list(self.columns)

    @property
    def prepped(self) -> bool:
        return self.columns_ is not None

    def required_columns(self) -> List[str]:
        return list(self.columns_ or [])

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> "Step":
        self.columns_ = resolve_columns(self.columns, df, outcome, self.kind)
        self._fit(df, outcome)
        return self

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        if not self.prepped:
            raise NotPreppedError(f"Step '{self.kind}' has not been prepped")
        missing = [col for col in self.required_columns() if col not in df.columns]
        if missing:
            raise ConfigurationError(f"Step '{self.kind}': columns not found: {missing}")
        return self._apply(df)

    def _fit(self, df: pd.DataFrame, outcome: Optional[str]) -> None:
        raise NotImplementedError

    def _apply(self, df: pd.DataFrame) -> pd.DataFrame:
        raise NotImplementedError

    def _require_numeric(self, df: pd.DataFrame, col: str) -> None:
        if not is_numeric(df[col]):
            raise DataError(f"Step '{self.kind}': column '{col}' must be numeric, got {df[col].dtype}")

    def _require_observed(self, df: pd.DataFrame, col: str) -> None:
        if df[col].notna().sum() == 0:
            raise DataError(f"Step '{self.kind}': column '{col}' has no observed values")


@dataclass
class _SimpleImpute(Step):
    strategy: ClassVar[str] = "mean"

    imputer_: Optional[SimpleImputer] = field(default=None, init=False, repr=False)

    def _fit(self, df, outcome):
        for col in self.columns_:
            self._require_numeric(df, col)
            self._require_observed(df, col)
        if self.columns_:
            self.imputer_ = SimpleImputer(strategy=self.strategy).fit(df[self.columns_])

    def _apply(self, df):
        out = df.copy()
        if self.columns_:
            out[self.columns_] = self.imputer_.transform(out[self.columns_])
        return out

    @property
    def statistics(self) -> Dict[str, float]:
        if self.imputer_ is None:
            return {}
        return dict(zip(self.columns_, self.imputer_.statistics_.tolist()))


@dataclass
class ImputeMean(_SimpleImpute):
    kind: ClassVar[str] = "impute_mean"
    strategy: ClassVar[str] = "mean"


@dataclass
class ImputeMedian(_SimpleImpute):
    kind: ClassVar[str] = "impute_median"
    strategy: ClassVar[str] = "median"


@dataclass
class ImputeKnn(Step):
    """
    Nearest-neighbour imputation.

    Donors are reference rows where the target and every ``impute_with``
    feature are observed. Features are min-max scaled with reference ranges
    (constant features scale to 0) and searched with a brute-force Euclidean
    ``NearestNeighbors`` index. Every donor within the k-th neighbour's
    distance is a candidate; candidates are ordered by distance, ties going
    to the earlier donor row, and the first k are kept.
    Weights are inverse distances; when any chosen donor sits at distance 0
    only those donors count, equally. Numeric targets get the weighted mean,
    nominal targets the label with the largest total weight (ties go to the
    label of the nearest donor). Missing query features use the donor mean.
    """

    kind: ClassVar[str] = "impute_knn"

    impute_with: Selector = "all_numeric_predictors"
    neighbors: int = 5

    impute_with_: Optional[List[str]] = field(default=None, init=False, repr=False)
    lower_: Optional[pd.Series] = field(default=None, init=False, repr=False)
    span_: Optional[pd.Series] = field(default=None, init=False, repr=False)
    donors_: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        super().__post_init__()
        if isinstance(self.impute_with, str) and self.impute_with not in SELECTORS:
            self.impute_with = [self.impute_with]
        if int(self.neighbors) < 1:
            raise ConfigurationError(f"Step '{self.kind}': neighbors must be >= 1, got {self.neighbors}")
        self.neighbors = int(self.neighbors)

    def required_columns(self) -> List[str]:
        return super().required_columns() + list(self.impute_with_ or [])

    def _scale(self, frame: pd.DataFrame) -> np.ndarray:
        scaled = (frame.astype(float) - self.lower_) / self.span_
        return scaled.to_numpy(dtype=float)

    def _fit(self, df, outcome):
        features = resolve_columns(self.impute_with, df, outcome, self.kind)
        self.impute_with_ = [col for col in features if col not in self.columns_]
        if not self.impute_with_:
            raise ConfigurationError(f"Step '{self.kind}': no features left to measure distance with")
        for col in self.impute_with_:
            self._require_numeric(df, col)

        ref = df[self.impute_with_].astype(float)
        self.lower_ = ref.min()
        span = ref.max() - self.lower_
        self.span_ = span.where(span > 0, 1.0).fillna(1.0)
        self.lower_ = self.lower_.fillna(0.0)

        features_ok = ref.notna().all(axis=1).to_numpy()
        scaled = self._scale(ref)
        self.donors_ = {}
        for col in self.columns_:
            if not (is_numeric(df[col]) or is_nominal(df[col])):
                raise DataError(f"Step '{self.kind}': unsupported type {df[col].dtype} for '{col}'")
            mask = features_ok & df[col].notna().to_numpy()
            if not mask.any():
                raise DataError(f"Step '{self.kind}': no complete donor rows to impute '{col}'")
            donor_x = scaled[mask]
            self.donors_[col] = {
                "index": NearestNeighbors(algorithm="brute", metric="euclidean").fit(donor_x),
                "y": df[col].to_numpy()[mask],
                "fill": donor_x.mean(axis=0),
                "nominal": is_nominal(df[col]),
            }

    def _neighbours(self, index: NearestNeighbors, query: np.ndarray, k: int):
        """Yield (distances, donor positions) of the k nearest donors per query row."""
        kth, _ = index.kneighbors(query, n_neighbors=k)
        for row, radius in zip(query, kth[:, -1]):
            # widen by a few ulps so donors tied with the k-th are all candidates
            dist, pos = index.radius_neighbors(row.reshape(1, -1), radius=radius * (1 + 1e-9) + 1e-12)
            order = np.lexsort((pos[0], dist[0]))[:k]
            yield dist[0][order], pos[0][order]

    @staticmethod
    def _estimate(dist: np.ndarray, labels: np.ndarray, nominal: bool):
        if (dist == 0).any():
            weights = (dist == 0).astype(float)
        else:
            weights = 1.0 / dist

        if not nominal:
            return float(np.dot(weights, labels.astype(float)) / weights.sum())

        totals: Dict[Any, float] = {}
        for label, weight in zip(labels, weights):
            totals[label] = totals.get(label, 0.0) + weight
        best = max(totals.values())
        # labels are ordered nearest first
        for label in labels:
            if np.isclose(totals[label], best):
                return label
        return labels[0]

    def _apply(self, df):
        out = df.copy()
        for col in self.columns_:
            missing = out[col].isna().to_numpy()
            if not missing.any():
                continue
            donors = self.donors_[col]
            query = self._scale(out.loc[missing, self.impute_with_])
            query = np.where(np.isnan(query), donors["fill"], query)
            k = min(self.neighbors, len(donors["y"]))
            values = [
                self._estimate(dist, donors["y"][pos], donors["nominal"])
                for dist, pos in self._neighbours(donors["index"], query, k)
            ]
            out.loc[missing, col] = values
        return out


@dataclass
class Normalize(Step):
    """Center and scale with reference mean and standard deviation.

    Zero-variance columns are centred and left at a constant 0.
    """

    kind: ClassVar[str] = "normalize"

    columns: Selector = "all_numeric_predictors"
    scaler_: Optional[StandardScaler] = field(default=None, init=False, repr=False)

    def _fit(self, df, outcome):
        for col in self.columns_:
            self._require_numeric(df, col)
            self._require_observed(df, col)
        if self.columns_:
            # StandardScaler keeps scale_ at 1.0 for constant columns
            self.scaler_ = StandardScaler().fit(df[self.columns_].astype(float))

    def _apply(self, df):
        out = df.copy()
        if self.columns_:
            out[self.columns_] = self.scaler_.transform(out[self.columns_].astype(float))
        return out


def _as_objects(series: pd.Series) -> np.ndarray:
    """Single-column object array with every missing value as NaN."""
    values = series.astype(object).where(series.notna(), np.nan)
    return values.to_numpy(dtype=object).reshape(-1, 1)


@dataclass
class DummyEncode(Step):
    """Expand nominal columns into 0/1 indicator columns named ``<column>_<level>``.

    Levels are the values observed at prep time, in category order for
    categorical columns and sorted otherwise. By default the first level is
    the reference baseline and gets no column; ``one_hot=True`` keeps every
    level. Unseen levels and missing values encode as all zeros.
    """

    kind: ClassVar[str] = "dummy"

    columns: Selector = "all_nominal_predictors"
    one_hot: bool = False
    levels_: Dict[str, List[Any]] = field(default_factory=dict, init=False, repr=False)
    encoders_: Dict[str, OneHotEncoder] = field(default_factory=dict, init=False, repr=False)

    def _fit(self, df, outcome):
        self.levels_ = {}
        self.encoders_ = {}
        for col in self.columns_:
            series = df[col]
            if not is_nominal(series):
                raise DataError(f"Step '{self.kind}': column '{col}' must be nominal, got {series.dtype}")
            observed = series.dropna()
            if isinstance(series.dtype, pd.CategoricalDtype):
                seen = set(observed.tolist())
                levels = [level for level in series.cat.categories if level in seen]
            else:
                try:
                    levels = sorted(observed.unique().tolist())
                except TypeError as exc:
                    raise DataError(f"Step '{self.kind}': column '{col}' mixes incomparable values") from exc
            if not levels:
                raise DataError(f"Step '{self.kind}': column '{col}' has no observed levels")
            self.levels_[col] = levels
            # drop="first" would warn on every unseen level; the baseline is sliced off in _apply
            self.encoders_[col] = OneHotEncoder(
                categories=[np.array(levels, dtype=object)],
                handle_unknown="ignore",
                sparse_output=False,
                dtype=int,
            ).fit(_as_objects(series))

    def indicator_names(self, col: str) -> List[str]:
        levels = self.levels_[col] if self.one_hot else self.levels_[col][1:]
        return [f"{col}_{level}" for level in levels]

    def _apply(self, df):
        out = df
        for col in self.levels_:
            names = self.indicator_names(col)
            clash = [name for name in names if name in out.columns and name != col]
            if clash:
                raise ConfigurationError(f"Step '{self.kind}': indicator columns already exist: {clash}")
            encoded = self.encoders_[col].transform(_as_objects(out[col]))
            if not self.one_hot:
                encoded = encoded[:, 1:]
            block = pd.DataFrame(encoded, columns=names, index=out.index)
            pos = out.columns.get_loc(col)
            out = pd.concat([out.iloc[:, :pos], block, out.iloc[:, pos + 1:]], axis=1)
        return out


STEP_KINDS = {
    cls.kind: cls for cls in (ImputeMean, ImputeMedian, ImputeKnn, Normalize, DummyEncode)
}


class Recipe:
    """Ordered fit-then-apply sequence of preprocessing steps."""

    def __init__(self, outcome: Optional[str], steps: Iterable[Step] = ()):
        self.outcome = outcome
        self.steps: List[Step] = list(steps)
        self.output_columns_: Optional[List[str]] = None
        self.logger = get_logger(self.__class__.__name__)

        for step in self.steps:
            if not isinstance(step, Step):
                raise ConfigurationError(f"Not a recipe step: {step!r}")

    @classmethod
    def from_config(cls, outcome: Optional[str], steps: Sequence[Dict[str, Any]]) -> "Recipe":
        """Build from dicts such as ``{"kind": "impute_mean", "columns": ["BMI"]}``."""
        built = []
        for spec in steps:
            options = dict(spec)
            kind = options.pop("kind", None)
            if kind not in STEP_KINDS:
                raise ConfigurationError(f"Unknown step kind '{kind}', expected one of {sorted(STEP_KINDS)}")
            try:
                built.append(STEP_KINDS[kind](**options))
            except TypeError as exc:
                raise ConfigurationError(f"Invalid options for step '{kind}': {exc}") from exc
        return cls(outcome, built)

    @property
    def prepped(self) -> bool:
        return self.output_columns_ is not None

    def check(self, columns: Iterable[str]) -> None:
        """Verify explicitly named columns exist where each step needs them."""
        available = set(columns)
        consumed: set = set()
        open_ended = False

        for position, step in enumerate(self.steps, start=1):
            named = [] if isinstance(step.columns, str) else list(step.columns)
            if isinstance(step, ImputeKnn) and not isinstance(step.impute_with, str):
                named += list(step.impute_with)
            for col in named:
                if col in consumed:
                    raise ConfigurationError(
                        f"Step {position} ('{step.kind}') uses '{col}', which an earlier dummy step replaced"
                    )
                if col not in available and not open_ended:
                    raise ConfigurationError(f"Step {position} ('{step.kind}'): column '{col}' not found")
            if isinstance(step, DummyEncode):
                if isinstance(step.columns, str):
                    open_ended = True
                else:
                    consumed.update(step.columns)
                    available.difference_update(step.columns)
                    open_ended = True

    def prep(self, df: pd.DataFrame) -> "Recipe":
        """Return a copy of this recipe with every step fitted on ``df``."""
        if self.outcome is not None and self.outcome not in df.columns:
            raise ConfigurationError(f"Outcome column '{self.outcome}' not found")
        self.check(df.columns)

        prepped = copy.deepcopy(self)
        current = df
        for step in prepped.steps:
            step.fit(current, self.outcome)
            current = step.apply(current)
        prepped.output_columns_ = list(current.columns)
        self.logger.debug(
            f"Prepped {len(self.steps)} steps on {len(df):,} rows -> {len(prepped.output_columns_)} columns"
        )
        return prepped

    def bake(self, df: pd.DataFrame) -> pd.DataFrame:
        """Apply the fitted steps to ``df``; output columns match prep time."""
        if not self.prepped:
            raise NotPreppedError("Recipe must be prepped before baking")

        current = df
        for step in self.steps:
            current = step.apply(current)

        expected = [
            col for col in self.output_columns_
            if col != self.outcome or col in current.columns
        ]
        missing = [col for col in expected if col not in current.columns]
        if missing:
            raise ConfigurationError(f"Columns missing from baked data: {missing}")
        return current[expected]

    def __repr__(self) -> str:
        kinds = ", ".join(step.kind for step in self.steps)
        state = "prepped" if self.prepped else "unprepped"
        return f"Recipe(outcome={self.outcome!r}, steps=[{kinds}], {state})"
