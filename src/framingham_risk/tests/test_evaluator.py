import json

import numpy as np
import pandas as pd
import pytest

from framingham_risk.evaluator import Evaluator, score
from framingham_risk.exceptions import ConfigurationError


def test_perfect_ranking_gives_auc_one_and_accuracy():
    y_true = [0, 0, 1, 1]
    y_proba = [0.1, 0.3, 0.7, 0.9]
    y_pred = [0, 1, 1, 1]
    metrics = Evaluator().compute(y_true, y_pred, y_proba)
    assert metrics["roc_auc"] == pytest.approx(1.0)
    assert metrics["accuracy"] == pytest.approx(0.75)


def test_auc_matches_hand_count():
    # 2 positives x 2 negatives; one discordant pair out of four
    y_true = [1, 0, 1, 0]
    y_proba = [0.8, 0.6, 0.4, 0.2]
    assert score("roc_auc", y_true, y_true, y_proba) == pytest.approx(0.75)


def test_positive_label_flips_probability_convention():
    y_true = np.array([0, 0, 1, 1, 0])
    p_one = np.array([0.2, 0.6, 0.7, 0.9, 0.1])
    auc_one = score("roc_auc", y_true, y_true, p_one, positive_label=1)
    auc_zero = score("roc_auc", y_true, y_true, 1 - p_one, positive_label=0)
    assert auc_one == pytest.approx(auc_zero)


def test_single_class_auc_is_nan():
    metrics = Evaluator().compute([1, 1, 1], [1, 0, 1], [0.9, 0.4, 0.8])
    assert np.isnan(metrics["roc_auc"])
    assert metrics["accuracy"] == pytest.approx(2 / 3)


def test_unknown_metric_is_configuration_error():
    with pytest.raises(ConfigurationError):
        score("f1", [0, 1], [0, 1], [0.2, 0.8])


def test_confusion_matrix_rows_are_actual_columns_predicted():
    cm = Evaluator.confusion([0, 0, 1, 1, 1], [0, 1, 1, 1, 0])
    assert cm.index.name == "actual"
    assert cm.columns.name == "predicted"
    assert cm.loc[0, 0] == 1
    assert cm.loc[0, 1] == 1
    assert cm.loc[1, 0] == 1
    assert cm.loc[1, 1] == 2
    assert cm.to_numpy().sum() == 5


def test_confusion_matrix_includes_labels_seen_only_in_predictions():
    cm = Evaluator.confusion([0, 0], [0, 1])
    assert list(cm.index) == [0, 1]
    assert cm.loc[1].sum() == 0


def test_evaluate_writes_metrics_json_and_figures(tmp_path):
    metrics_path = tmp_path / "metrics" / "rf_test.json"
    figures_dir = tmp_path / "figures"
    evaluator = Evaluator(metrics_path=str(metrics_path), figures_dir=str(figures_dir))

    result = evaluator.evaluate([0, 1, 0, 1], [0, 1, 1, 1], [0.2, 0.9, 0.6, 0.7], name="rf_test")

    saved = json.loads(metrics_path.read_text())
    assert saved["metrics"]["accuracy"] == pytest.approx(0.75)
    assert saved["confusion_matrix"]["counts"] == [[1, 1], [0, 2]]
    assert (figures_dir / "confusion_matrix_rf_test.png").exists()
    assert (figures_dir / "roc_curve_rf_test.png").exists()
    assert isinstance(result["confusion_matrix"], pd.DataFrame)


def test_evaluate_without_paths_writes_nothing(tmp_path):
    result = Evaluator().evaluate([0, 1], [0, 1], [0.1, 0.9])
    assert result["roc_auc"] == pytest.approx(1.0)
    assert list(tmp_path.iterdir()) == []
