from dataclasses import dataclass, field
from typing import Any, Dict

import yaml

from .evaluator import METRIC_DIRECTIONS
from .exceptions import ConfigurationError
from .models import ModelSpec


@dataclass
class Config:
    """Configuration object loaded from YAML."""
    data: Dict[str, Any]
    preprocessing: Dict[str, Any] = field(default_factory=dict)
    split: Dict[str, Any] = field(default_factory=dict)
    model: Dict[str, Any] = field(default_factory=dict)
    validation: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        with open(path, "r") as f:
            cfg = yaml.safe_load(f)
        if not isinstance(cfg, dict):
            raise ConfigurationError(f"{path} does not contain a mapping")
        try:
            config = cls(**cfg)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid sections in {path}: {exc}") from exc
        config.validate()
        return config

    def validate(self) -> None:
        """Fail fast on settings that would only break later in the run."""
        for key in ("path", "target_col"):
            if not self.data.get(key):
                raise ConfigurationError(f"data.{key} is required")

        proportions = self.split.get("proportions", [0.8])
        if any(float(p) < 0 for p in proportions) or sum(float(p) for p in proportions) > 1 + 1e-9:
            raise ConfigurationError(f"split.proportions must be non-negative and sum to <= 1: {proportions}")

        if int(self.validation.get("n_folds", 5)) < 2:
            raise ConfigurationError("validation.n_folds must be >= 2")
        if float(self.validation.get("tolerance", 0.0)) < 0:
            raise ConfigurationError("validation.tolerance must be >= 0")

        metrics = list(self.validation.get("metrics", ["roc_auc", "accuracy"]))
        select_metric = self.validation.get("select_metric", "roc_auc")
        unknown = [m for m in metrics + [select_metric] if m not in METRIC_DIRECTIONS]
        if unknown:
            raise ConfigurationError(f"Unknown metrics {unknown}, expected any of {sorted(METRIC_DIRECTIONS)}")
        if select_metric not in metrics:
            raise ConfigurationError(f"validation.select_metric '{select_metric}' is not in validation.metrics")

        families = self.model.get("families") or {}
        if not families:
            raise ConfigurationError("model.families must name at least one model family")
        for family, spec in families.items():
            for name, values in ((spec or {}).get("grid") or {}).items():
                if not values:
                    raise ConfigurationError(f"model.families.{family}.grid.{name} is empty")
            # unknown families, parameters and simplicity keys
            ModelSpec.from_config(family, spec or {})

        steps = self.preprocessing.get("steps") or []
        for position, step in enumerate(steps, start=1):
            if not isinstance(step, dict) or "kind" not in step:
                raise ConfigurationError(f"preprocessing.steps[{position}] needs a 'kind'")
