import numpy as np
import pandas as pd
import pytest


def make_framingham(n: int = 240, seed: int = 0) -> pd.DataFrame:
    """Synthetic Framingham-shaped data with a learnable CHD signal and sparse gaps."""
    rng = np.random.RandomState(seed)
    age = rng.randint(32, 71, n)
    male = rng.randint(0, 2, n)
    smoker = rng.randint(0, 2, n)
    sys_bp = rng.normal(132, 22, n).round(1)
    logit = -5.0 + 0.06 * age + 0.025 * (sys_bp - 132) + 0.5 * male + 0.4 * smoker
    chd = (rng.rand(n) < 1 / (1 + np.exp(-logit))).astype(int)

    df = pd.DataFrame(
        {
            "male": male,
            "age": age,
            "education": rng.randint(1, 5, n).astype(float),
            "currentSmoker": smoker,
            "cigsPerDay": np.where(smoker == 1, rng.randint(1, 40, n), 0).astype(float),
            "BPMeds": (rng.rand(n) < 0.05).astype(float),
            "prevalentStroke": (rng.rand(n) < 0.05).astype(int),
            "prevalentHyp": (sys_bp > 140).astype(int),
            "diabetes": (rng.rand(n) < 0.05).astype(int),
            "totChol": rng.normal(236, 44, n).round(0),
            "sysBP": sys_bp,
            "diaBP": rng.normal(83, 12, n).round(1),
            "BMI": rng.normal(25.8, 4, n).round(2),
            "heartRate": rng.normal(76, 12, n).round(0),
            "glucose": rng.normal(82, 24, n).round(0),
            "TenYearCHD": chd,
        }
    )

    for col, frac in [
        ("glucose", 0.08),
        ("education", 0.03),
        ("BPMeds", 0.02),
        ("totChol", 0.02),
        ("BMI", 0.01),
        ("cigsPerDay", 0.01),
        ("heartRate", 0.01),
    ]:
        holes = rng.rand(n) < frac
        df.loc[holes, col] = np.nan
    return df


FACTOR_COLS = [
    "male",
    "education",
    "currentSmoker",
    "BPMeds",
    "prevalentStroke",
    "prevalentHyp",
    "diabetes",
    "TenYearCHD",
]

RECIPE_STEPS = [
    {"kind": "impute_mean", "columns": ["cigsPerDay", "totChol", "BMI", "heartRate"]},
    {
        "kind": "impute_knn",
        "columns": ["glucose", "education", "BPMeds"],
        "impute_with": ["age", "sysBP", "diaBP", "totChol", "BMI"],
        "neighbors": 5,
    },
    {"kind": "normalize", "columns": "all_numeric_predictors"},
    {"kind": "dummy", "columns": "all_nominal_predictors"},
]


@pytest.fixture
def framingham_df():
    return make_framingham()


@pytest.fixture
def factor_cols():
    return list(FACTOR_COLS)


@pytest.fixture
def recipe_steps():
    return [dict(step) for step in RECIPE_STEPS]


@pytest.fixture
def ten_row_df():
    """10 rows, binary outcome, 3 missing predictor values, two categorical columns."""
    return pd.DataFrame(
        {
            "age": [45.0, 52.0, np.nan, 61.0, 39.0, 48.0, 57.0, 66.0, 43.0, 50.0],
            "sysBP": [120.0, 135.0, 142.0, np.nan, 118.0, 128.0, 150.0, 160.0, 125.0, 132.0],
            "BMI": [24.1, 27.3, 22.8, 30.2, np.nan, 26.0, 28.4, 25.5, 23.9, 29.1],
            "sex": pd.Categorical(["F", "M", "M", "F", "F", "M", "F", "M", "F", "M"]),
            "smoking": pd.Categorical(
                ["never", "former", "current", "never", "current", "never", "former", "current", "never", "former"]
            ),
            "chd": [0, 1, 0, 1, 0, 0, 1, 1, 0, 0],
        }
    )
