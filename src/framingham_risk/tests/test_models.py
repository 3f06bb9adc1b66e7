import numpy as np
import pandas as pd
import pytest

from framingham_risk.exceptions import ConfigurationError, DataError
from framingham_risk.models import FittedModel, ModelSpec, ModelTrainer
from framingham_risk.recipe import ImputeMean, Normalize, Recipe
from framingham_risk.type_normalizer import TypeNormalizer


def _simple_recipe():
    return Recipe(
        "TenYearCHD",
        [ImputeMean(["cigsPerDay", "totChol", "BMI", "heartRate", "glucose"]), Normalize(["age", "sysBP", "totChol"])],
    )


def _numeric_frame(df):
    return df.drop(columns=["education", "BPMeds"])


def test_combinations_expand_full_grid():
    spec = ModelSpec("rf", grid={"trees": [10, 20, 30], "mtry": [1, 2]})
    combos = spec.combinations()
    assert len(combos) == 6
    assert {"trees": 10, "mtry": 1} in combos
    assert spec.combinations() == combos


def test_empty_grid_is_single_default_combination():
    assert ModelSpec("nnet").combinations() == [{}]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"family": "svm"},
        {"family": "rf", "grid": {"depth": [1]}},
        {"family": "rf", "grid": {"trees": []}},
        {"family": "rf", "grid": {"trees": [10]}, "simplicity": ["mtry"]},
    ],
)
def test_invalid_specs_are_configuration_errors(kwargs):
    with pytest.raises(ConfigurationError):
        ModelSpec(**kwargs)


def test_build_maps_parameters_and_threads_seed():
    nnet = ModelSpec("nnet").build({"hidden_units": 3, "penalty": 0.1, "epochs": 50}, seed=7)
    assert nnet.hidden_layer_sizes == (3,)
    assert nnet.alpha == 0.1
    assert nnet.max_iter == 50
    assert nnet.random_state == 7

    rf = ModelSpec("rf").build({"trees": 25, "mtry": 50}, seed=3, n_features=4)
    assert rf.n_estimators == 25
    assert rf.max_features == 4
    assert rf.random_state == 3


def test_from_config_reads_grid_and_simplicity():
    spec = ModelSpec.from_config(
        "nnet", {"grid": {"hidden_units": [1, 5], "penalty": [0.01]}, "simplicity": ["hidden_units", "-penalty"]}
    )
    assert spec.grid == {"hidden_units": [1, 5], "penalty": [0.01]}
    assert spec.simplicity == ["hidden_units", "-penalty"]


@pytest.mark.parametrize(
    "family,params",
    [
        ("rf", {"trees": 20, "mtry": 2}),
        ("nnet", {"hidden_units": 3, "epochs": 100}),
        ("lgbm", {"trees": 20, "learn_rate": 0.1, "tree_depth": 3}),
    ],
)
def test_trainer_fits_each_family(framingham_df, family, params):
    df = _numeric_frame(framingham_df)
    trainer = ModelTrainer(ModelSpec(family), _simple_recipe(), "TenYearCHD", seed=123)
    model = trainer.fit(df, params)

    proba = model.predict_proba(df)
    assert proba.shape == (len(df),)
    assert ((proba >= 0) & (proba <= 1)).all()
    assert set(np.unique(model.predict(df))) <= {0, 1}
    assert model.params == params
    assert model.recipe.prepped


def test_fitted_model_keeps_reference_to_prepped_recipe(framingham_df):
    df = _numeric_frame(framingham_df)
    model = ModelTrainer(ModelSpec("rf"), _simple_recipe(), "TenYearCHD").fit(df, {"trees": 10})
    features = model.features(df)
    assert "TenYearCHD" not in features.columns
    assert list(features.columns) == [c for c in model.recipe.output_columns_ if c != "TenYearCHD"]


def test_positive_class_column_follows_positive_label(framingham_df):
    df = _numeric_frame(framingham_df)
    df["TenYearCHD"] = np.where(df["TenYearCHD"] == 1, "yes", "no")
    df = TypeNormalizer(["TenYearCHD"]).transform(df)

    model = ModelTrainer(
        ModelSpec("rf"), _simple_recipe(), "TenYearCHD", positive_label="yes"
    ).fit(df, {"trees": 10})

    expected = model.estimator.predict_proba(model.features(df))[:, list(model.estimator.classes_).index("yes")]
    np.testing.assert_allclose(model.predict_proba(df), expected)
    assert set(model.predict(df)) <= {"yes", "no"}


def test_unseen_positive_label_is_data_error(framingham_df):
    df = _numeric_frame(framingham_df)
    model = ModelTrainer(ModelSpec("rf"), _simple_recipe(), "TenYearCHD", positive_label=2).fit(df, {"trees": 5})
    with pytest.raises(DataError, match="Positive label"):
        model.predict_proba(df)


def test_missing_outcome_values_are_data_error(framingham_df):
    df = _numeric_frame(framingham_df).astype({"TenYearCHD": float})
    df.loc[0, "TenYearCHD"] = np.nan
    with pytest.raises(DataError, match="missing values"):
        ModelTrainer(ModelSpec("rf"), _simple_recipe(), "TenYearCHD").fit(df, {"trees": 5})


def test_augment_and_save_load_round_trip(framingham_df, tmp_path):
    df = _numeric_frame(framingham_df)
    model = ModelTrainer(ModelSpec("rf"), _simple_recipe(), "TenYearCHD").fit(df, {"trees": 10})

    table = model.augment(df.head(5))
    assert list(table.columns) == ["TenYearCHD", ".pred_prob", ".pred_class"]
    assert table.index.equals(df.head(5).index)

    path = model.save(str(tmp_path / "models" / "rf.joblib"))
    loaded = FittedModel.load(path)
    np.testing.assert_allclose(loaded.predict_proba(df), model.predict_proba(df))

    new_rows = df.drop(columns=["TenYearCHD"]).head(3)
    assert list(model.augment(new_rows).columns) == [".pred_prob", ".pred_class"]
