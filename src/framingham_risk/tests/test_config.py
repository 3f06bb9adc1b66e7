from pathlib import Path

import pytest
import yaml

from framingham_risk.config import Config
from framingham_risk.exceptions import ConfigurationError

DEFAULT_CONFIG = Path(__file__).resolve().parents[3] / "config" / "default.yaml"


def _base():
    return {
        "data": {"path": "data/framingham.csv", "target_col": "TenYearCHD"},
        "split": {"proportions": [0.8], "seed": 123},
        "model": {"families": {"rf": {"grid": {"trees": [100, 500]}}}},
        "validation": {"n_folds": 5, "tolerance": 2.0},
        "output": {},
    }


def _write(tmp_path, cfg):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg))
    return str(path)


def test_from_yaml_loads_sections(tmp_path):
    config = Config.from_yaml(_write(tmp_path, _base()))
    assert config.data["target_col"] == "TenYearCHD"
    assert config.model["families"]["rf"]["grid"]["trees"] == [100, 500]
    assert config.preprocessing == {}


def test_default_config_is_valid():
    config = Config.from_yaml(str(DEFAULT_CONFIG))
    assert set(config.model["families"]) == {"nnet", "rf"}
    assert config.split["seed"] == 123


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("data", "target_col", None),
        ("split", "proportions", [0.9, 0.3]),
        ("split", "proportions", [-0.2]),
        ("validation", "n_folds", 1),
        ("validation", "tolerance", -1),
        ("model", "families", {}),
        ("model", "families", {"rf": {"grid": {"trees": []}}}),
        ("preprocessing", "steps", [{"columns": ["BMI"]}]),
        ("model", "families", {"rff": {"grid": {"trees": [100]}}}),
        ("model", "families", {"rf": {"grid": {"trees": [100]}}, "svm": {"grid": {"cost": [1.0]}}}),
        ("model", "families", {"rf": {"grid": {"depth": [3]}}}),
        ("model", "families", {"rf": {"grid": {"trees": [100]}, "simplicity": ["mtry"]}}),
        ("validation", "select_metric", "auc"),
        ("validation", "metrics", ["roc_auc", "f1"]),
        ("validation", "metrics", ["accuracy"]),
    ],
)
def test_invalid_settings_fail_fast(tmp_path, section, key, value):
    cfg = _base()
    cfg.setdefault(section, {})[key] = value
    with pytest.raises(ConfigurationError):
        Config.from_yaml(_write(tmp_path, cfg))


def test_unknown_section_is_configuration_error(tmp_path):
    cfg = _base()
    cfg["plots"] = {}
    with pytest.raises(ConfigurationError):
        Config.from_yaml(_write(tmp_path, cfg))
