from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from lightgbm import LGBMClassifier
from sklearn.ensemble import RandomForestClassifier
from sklearn.exceptions import ConvergenceWarning
from sklearn.model_selection import ParameterGrid
from sklearn.neural_network import MLPClassifier

from .exceptions import ConfigurationError, DataError
from .recipe import Recipe
from .utils.logger import get_logger


def _single_layer(units: Any) -> Tuple[int]:
    return (int(units),)


@dataclass(frozen=True)
class ModelFamily:
    """Maps tunable parameter names onto an estimator's constructor arguments."""

    name: str
    estimator: Callable[..., Any]
    params: Dict[str, Tuple[str, Callable[[Any], Any]]]
    defaults: Dict[str, Any] = field(default_factory=dict)

    def build(self, params: Dict[str, Any], seed: int, n_features: Optional[int] = None):
        kwargs = dict(self.defaults)
        for name, value in params.items():
            if name not in self.params:
                raise ConfigurationError(f"Model '{self.name}' has no parameter '{name}'")
            arg, cast = self.params[name]
            kwargs[arg] = cast(value)
        # mtry larger than the predictor count falls back to all predictors
        if n_features and isinstance(kwargs.get("max_features"), int):
            kwargs["max_features"] = min(kwargs["max_features"], n_features)
        kwargs["random_state"] = seed
        return self.estimator(**kwargs)


MODEL_FAMILIES: Dict[str, ModelFamily] = {
    "nnet": ModelFamily(
        name="nnet",
        estimator=MLPClassifier,
        params={
            "hidden_units": ("hidden_layer_sizes", _single_layer),
            "penalty": ("alpha", float),
            "epochs": ("max_iter", int),
        },
        defaults={"hidden_layer_sizes": (5,), "max_iter": 200},
    ),
    "rf": ModelFamily(
        name="rf",
        estimator=RandomForestClassifier,
        params={
            "trees": ("n_estimators", int),
            "mtry": ("max_features", int),
            "min_n": ("min_samples_split", int),
        },
        defaults={"n_estimators": 500},
    ),
    "lgbm": ModelFamily(
        name="lgbm",
        estimator=LGBMClassifier,
        params={
            "trees": ("n_estimators", int),
            "learn_rate": ("learning_rate", float),
            "tree_depth": ("max_depth", int),
        },
        defaults={"verbosity": -1},
    ),
}


@dataclass
class ModelSpec:
    """
    A model family plus its hyperparameter grid.

    ``simplicity`` lists grid parameters in tie-break order for model
    selection; smaller values are simpler unless the name is prefixed with
    ``-`` (e.g. ``-penalty``: more regularisation is simpler).
    """

    family: str
    grid: Dict[str, List[Any]] = field(default_factory=dict)
    simplicity: List[str] = field(default_factory=list)
    fixed: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.family not in MODEL_FAMILIES:
            raise ConfigurationError(
                f"Unknown model family '{self.family}', expected one of {sorted(MODEL_FAMILIES)}"
            )
        known = MODEL_FAMILIES[self.family].params
        for name, values in {**self.grid, **{k: [v] for k, v in self.fixed.items()}}.items():
            if name not in known:
                raise ConfigurationError(f"Model '{self.family}' has no parameter '{name}'")
            if not isinstance(values, (list, tuple)) or len(values) == 0:
                raise ConfigurationError(f"Grid for '{self.family}.{name}' needs at least one candidate")
        for key in self.simplicity:
            if key.lstrip("-") not in self.grid:
                raise ConfigurationError(f"Simplicity key '{key}' is not a tuned parameter of '{self.family}'")

    @classmethod
    def from_config(cls, family: str, cfg: Dict[str, Any]) -> "ModelSpec":
        return cls(
            family=family,
            grid={k: list(v) for k, v in (cfg.get("grid") or {}).items()},
            simplicity=list(cfg.get("simplicity") or []),
            fixed=dict(cfg.get("fixed") or {}),
        )

    def combinations(self) -> List[Dict[str, Any]]:
        """Full cross-product of the grid in a deterministic order."""
        if not self.grid:
            return [{}]
        return list(ParameterGrid(self.grid))

    def build(self, params: Dict[str, Any], seed: int, n_features: Optional[int] = None):
        return MODEL_FAMILIES[self.family].build({**self.fixed, **params}, seed, n_features)


@dataclass(frozen=True)
class FittedModel:
    """A fitted estimator bound to the prepped recipe that produced its features.

    Probabilities always refer to ``outcome == positive_label``.
    """

    family: str
    recipe: Recipe
    estimator: Any
    params: Dict[str, Any]
    outcome: str
    positive_label: Any = 1

    def features(self, df: pd.DataFrame) -> pd.DataFrame:
        baked = self.recipe.bake(df)
        return baked.drop(columns=[self.outcome], errors="ignore")

    def _positive_column(self) -> int:
        classes = list(self.estimator.classes_)
        if self.positive_label not in classes:
            raise DataError(
                f"Positive label {self.positive_label!r} was not seen in training (classes={classes})"
            )
        return classes.index(self.positive_label)

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        column = self._positive_column()
        return self.estimator.predict_proba(self.features(df))[:, column]

    def predict(self, df: pd.DataFrame, threshold: float = 0.5) -> np.ndarray:
        proba = self.predict_proba(df)
        classes = list(self.estimator.classes_)
        negative = next(c for c in classes if c != self.positive_label)
        return np.where(proba >= threshold, self.positive_label, negative)

    def augment(self, df: pd.DataFrame, threshold: float = 0.5) -> pd.DataFrame:
        """Prediction table: truth (when present), positive-class probability, predicted label."""
        proba = self.predict_proba(df)
        table = pd.DataFrame(index=df.index)
        if self.outcome in df.columns:
            table[self.outcome] = df[self.outcome]
        table[".pred_prob"] = proba
        table[".pred_class"] = self.predict(df, threshold=threshold)
        return table

    def save(self, path: str) -> str:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        joblib.dump(self, path)
        return path

    @staticmethod
    def load(path: str) -> "FittedModel":
        return joblib.load(path)


class ModelTrainer:
    """Preps the recipe on a training frame, bakes it and fits one estimator."""

    def __init__(
        self,
        spec: ModelSpec,
        recipe: Recipe,
        outcome: str,
        positive_label: Any = 1,
        seed: int = 123,
    ):
        self.spec = spec
        self.recipe = recipe
        self.outcome = outcome
        self.positive_label = positive_label
        self.seed = seed
        self.logger = get_logger(self.__class__.__name__)

    def fit(self, df: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> FittedModel:
        params = dict(params or {})
        prepped = self.recipe.prep(df)
        baked = prepped.bake(df)

        if self.outcome not in baked.columns:
            raise DataError(f"Outcome column '{self.outcome}' missing after preprocessing")
        y = baked[self.outcome]
        if y.isna().any():
            raise DataError(f"Outcome column '{self.outcome}' has {int(y.isna().sum())} missing values")
        X = baked.drop(columns=[self.outcome])

        estimator = self.spec.build(params, seed=self.seed, n_features=X.shape[1])
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=ConvergenceWarning)
            warnings.filterwarnings("ignore", category=UserWarning, module="lightgbm")
            estimator.fit(X, np.asarray(y))

        self.logger.debug(f"Fitted {self.spec.family} {params} on {len(X):,} rows x {X.shape[1]} features")
        return FittedModel(
            family=self.spec.family,
            recipe=prepped,
            estimator=estimator,
            params=params,
            outcome=self.outcome,
            positive_label=self.positive_label,
        )
