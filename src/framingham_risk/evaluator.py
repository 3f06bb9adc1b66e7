import json
import os
from typing import Any, Dict, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import accuracy_score, confusion_matrix, roc_auc_score, roc_curve

from .exceptions import ConfigurationError
from .utils.logger import get_logger

# Probabilities are always P(outcome == positive_label).
METRIC_DIRECTIONS = {
    "roc_auc": "maximize",
    "accuracy": "maximize",
}


def score(
    metric: str,
    y_true: Sequence[Any],
    y_pred: Sequence[Any],
    y_proba: Sequence[float],
    positive_label: Any = 1,
) -> float:
    """Compute one metric; ROC-AUC is NaN when ``y_true`` holds a single class."""
    y_true = np.asarray(y_true)
    if metric == "roc_auc":
        truth = (y_true == positive_label).astype(int)
        if np.unique(truth).size < 2:
            return float("nan")
        return float(roc_auc_score(truth, np.asarray(y_proba, dtype=float)))
    if metric == "accuracy":
        return float(accuracy_score(y_true, np.asarray(y_pred)))
    raise ConfigurationError(f"Unknown metric '{metric}', expected one of {sorted(METRIC_DIRECTIONS)}")


class Evaluator:
    """Evaluate binary classifier predictions, save metrics, confusion matrix and ROC curve."""

    def __init__(
        self,
        metrics_path: Optional[str] = None,
        figures_dir: Optional[str] = None,
        positive_label: Any = 1,
        metrics: Sequence[str] = ("roc_auc", "accuracy"),
        verbose: bool = True,
    ):
        self.metrics_path = metrics_path
        self.figures_dir = figures_dir
        self.positive_label = positive_label
        self.metrics = list(metrics)
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    def compute(self, y_true, y_pred, y_proba) -> Dict[str, float]:
        results = {
            metric: score(metric, y_true, y_pred, y_proba, self.positive_label)
            for metric in self.metrics
        }
        if "roc_auc" in results and np.isnan(results["roc_auc"]):
            self.logger.warning("ROC-AUC undefined: only one class present in y_true")
        return results

    @staticmethod
    def confusion(y_true, y_pred) -> pd.DataFrame:
        """Counts of (actual, predicted) pairs; rows are actual labels."""
        y_true = np.asarray(y_true)
        y_pred = np.asarray(y_pred)
        labels = sorted(set(y_true.tolist()) | set(y_pred.tolist()))
        cm = confusion_matrix(y_true, y_pred, labels=labels)
        return pd.DataFrame(
            cm,
            index=pd.Index(labels, name="actual"),
            columns=pd.Index(labels, name="predicted"),
        )

    def _plot_confusion_matrix(self, cm: pd.DataFrame, name: str) -> str:
        plt.figure(figsize=(6, 5))
        sns.heatmap(cm, annot=True, fmt="d", cmap="Blues")
        plt.xlabel("Predicted")
        plt.ylabel("Actual")
        plt.title(f"Confusion Matrix ({name})")

        path = os.path.join(self.figures_dir, f"confusion_matrix_{name}.png")
        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()
        return path

    def _plot_roc_curve(self, y_true, y_proba, auc: float, name: str) -> str:
        truth = (np.asarray(y_true) == self.positive_label).astype(int)
        fpr, tpr, _ = roc_curve(truth, y_proba)

        plt.figure(figsize=(6, 5))
        sns.lineplot(x=fpr, y=tpr, estimator=None, sort=False, label=f"ROC (AUC={auc:.3f})")
        plt.plot([0, 1], [0, 1], linestyle="--", color="grey")
        plt.xlabel("False positive rate")
        plt.ylabel("True positive rate")
        plt.title(f"ROC Curve ({name})")
        plt.legend()

        path = os.path.join(self.figures_dir, f"roc_curve_{name}.png")
        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()
        return path

    def evaluate(self, y_true, y_pred, y_proba, name: str = "test") -> Dict[str, Any]:
        """Compute metrics and the confusion matrix; persist them when paths are configured."""
        metrics = self.compute(y_true, y_pred, y_proba)
        cm = self.confusion(y_true, y_pred)

        if self.metrics_path:
            directory = os.path.dirname(self.metrics_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            payload = {
                "metrics": metrics,
                "confusion_matrix": {
                    "labels": [str(label) for label in cm.index],
                    "counts": cm.to_numpy().tolist(),
                },
            }
            with open(self.metrics_path, "w") as f:
                json.dump(payload, f, indent=4)
            if self.verbose:
                self.logger.info(f"Saved metrics: {self.metrics_path}")

        if self.figures_dir:
            os.makedirs(self.figures_dir, exist_ok=True)
            paths = [self._plot_confusion_matrix(cm, name)]
            if not np.isnan(metrics.get("roc_auc", float("nan"))):
                paths.append(self._plot_roc_curve(y_true, y_proba, metrics["roc_auc"], name))
            if self.verbose:
                self.logger.info(f"Saved figures: {paths}")

        return {**metrics, "confusion_matrix": cm}
