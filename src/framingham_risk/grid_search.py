import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .evaluator import METRIC_DIRECTIONS, score
from .exceptions import ConfigurationError, GridSearchError
from .models import FittedModel, ModelTrainer
from .splitter import Fold
from .utils.logger import get_logger


class GridSearch:
    """
    Exhaustive grid search over a model family with v-fold resampling.

    The recipe is prepped on each fold's training rows only, so held-out rows
    never leak into imputation or scaling statistics. A fit that fails on one
    (fold, combination) pair is recorded with NaN metrics and its error text;
    the remaining grid keeps running.
    """

    def __init__(
        self,
        trainer: ModelTrainer,
        folds: Sequence[Fold],
        metrics: Sequence[str] = ("roc_auc", "accuracy"),
        n_jobs: int = 1,
        backend: Optional[str] = None,
    ):
        unknown = [m for m in metrics if m not in METRIC_DIRECTIONS]
        if unknown:
            raise ConfigurationError(f"Unknown metrics {unknown}, expected any of {sorted(METRIC_DIRECTIONS)}")
        if not folds:
            raise ConfigurationError("Grid search needs at least one fold")

        self.trainer = trainer
        self.folds = list(folds)
        self.metrics = list(metrics)
        self.n_jobs = n_jobs
        self.backend = backend
        self.logger = get_logger(self.__class__.__name__)

        self.configs_: Dict[str, Dict[str, Any]] = {}
        self.results_: Optional[pd.DataFrame] = None
        self.selected_: Optional[Dict[str, Any]] = None

    @property
    def spec(self):
        return self.trainer.spec

    def _fit_one(self, df: pd.DataFrame, fold: Fold, config: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        error = None
        try:
            model = self.trainer.fit(df.iloc[fold.train], params)
            holdout = df.iloc[fold.holdout]
            proba = model.predict_proba(holdout)
            pred = model.predict(holdout)
            truth = holdout[self.trainer.outcome]
            values = {
                m: score(m, truth, pred, proba, self.trainer.positive_label) for m in self.metrics
            }
        except ConfigurationError:
            raise
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            values = {m: float("nan") for m in self.metrics}
            self.logger.warning(f"{self.spec.family} {config} {params} failed on {fold.id}: {error}")

        return [
            {"config": config, **params, "fold": fold.id, "metric": m, "value": v, "error": error}
            for m, v in values.items()
        ]

    def run(self, df: pd.DataFrame) -> pd.DataFrame:
        """Fit every (fold, combination) pair and return the aggregated metrics table."""
        combos = self.spec.combinations()
        width = len(str(len(combos)))
        self.configs_ = {f"Model{i:0{width}d}": params for i, params in enumerate(combos, start=1)}

        self.logger.info(
            f"Grid search {self.spec.family}: {len(combos)} combinations x {len(self.folds)} folds"
        )
        chunks = Parallel(n_jobs=self.n_jobs, backend=self.backend)(
            delayed(self._fit_one)(df, fold, config, params)
            for config, params in self.configs_.items()
            for fold in self.folds
        )
        self.results_ = pd.DataFrame([row for chunk in chunks for row in chunk])

        n_failed = int(self.results_.loc[self.results_["error"].notna(), ["config", "fold"]].drop_duplicates().shape[0])
        if n_failed:
            self.logger.warning(f"{n_failed} of {len(combos) * len(self.folds)} fits failed")
        return self.collect_metrics()

    def collect_metrics(self) -> pd.DataFrame:
        """One row per (combination, metric): mean, standard error, and fold counts."""
        if self.results_ is None:
            raise GridSearchError("Call run() before collect_metrics()")

        records = []
        for (config, metric), group in self.results_.groupby(["config", "metric"], sort=True):
            values = group["value"].astype(float)
            ok = values[np.isfinite(values)]
            n = int(len(ok))
            records.append(
                {
                    "config": config,
                    **self.configs_[config],
                    "metric": metric,
                    "mean": float(ok.mean()) if n else float("nan"),
                    "std_err": float(ok.std(ddof=1) / math.sqrt(n)) if n > 1 else float("nan"),
                    "n": n,
                    "n_failed": int(len(values) - n),
                }
            )
        return pd.DataFrame(records)

    def show_best(self, metric: str = "roc_auc", n: int = 5) -> pd.DataFrame:
        table = self.collect_metrics()
        table = table[table["metric"] == metric]
        ascending = METRIC_DIRECTIONS[metric] == "minimize"
        return table.sort_values(["mean", "config"], ascending=[ascending, True], na_position="last").head(n)

    def select_by_pct_loss(self, metric: str = "roc_auc", limit: float = 2.0) -> Dict[str, Any]:
        """
        Pick the simplest combination whose mean is within ``limit`` percent of the best.

        Candidates are ordered by the model's simplicity keys, then by mean
        (best first), then by config name; the first one wins.
        """
        if metric not in METRIC_DIRECTIONS:
            raise ConfigurationError(f"Unknown metric '{metric}'")
        if limit < 0:
            raise ConfigurationError(f"limit must be >= 0, got {limit}")

        table = self.collect_metrics()
        rows = table[(table["metric"] == metric) & table["mean"].notna()]
        if rows.empty:
            raise GridSearchError(f"No combination of '{self.spec.family}' produced a finite {metric}")

        maximize = METRIC_DIRECTIONS[metric] == "maximize"
        best = rows["mean"].max() if maximize else rows["mean"].min()
        gap = (best - rows["mean"]) if maximize else (rows["mean"] - best)
        if best == 0:
            loss = gap.where(gap == 0, np.inf)
        else:
            loss = 100.0 * gap / abs(best)
        candidates = rows.assign(pct_loss=loss)
        candidates = candidates[candidates["pct_loss"] <= limit + 1e-12]

        def simplicity_key(record: Dict[str, Any]):
            key = []
            for name in self.spec.simplicity:
                value = record[name.lstrip("-")]
                key.append(-value if name.startswith("-") else value)
            key.append(-record["mean"] if maximize else record["mean"])
            key.append(record["config"])
            return tuple(key)

        chosen = min(candidates.to_dict("records"), key=simplicity_key)
        self.selected_ = {
            "config": chosen["config"],
            "params": dict(self.configs_[chosen["config"]]),
            "metric": metric,
            "mean": float(chosen["mean"]),
            "pct_loss": float(chosen["pct_loss"]),
        }
        self.logger.info(
            f"Selected {self.spec.family} {chosen['config']} {self.selected_['params']}: "
            f"{metric}={chosen['mean']:.4f} ({chosen['pct_loss']:.2f}% below best {best:.4f})"
        )
        return dict(self.selected_["params"])

    def finalize(self, df: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> FittedModel:
        """Fit the recipe and model on all of ``df`` with the selected (or given) parameters."""
        if params is None:
            if self.selected_ is None:
                raise GridSearchError("No parameters selected; call select_by_pct_loss() first")
            params = self.selected_["params"]
        return self.trainer.fit(df, params)
