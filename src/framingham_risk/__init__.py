"""
Framingham Heart Study — Ten-Year CHD Risk Pipeline

This package provides an end-to-end implementation for
ten-year coronary heart disease risk classification with
missing-value auditing, a declarative prep/bake preprocessing
recipe, reproducible splitting, cross-validated grid search
over a neural network and a random forest, and evaluation.

Modules:
    config              — Load and validate YAML configuration.
    data_loader         — Read and write delimited datasets.
    auditor             — Count missing values per row and column.
    type_normalizer     — Recast factor-coded columns as categorical.
    recipe              — Impute, normalize and dummy-encode via prep/bake.
    splitter            — Train/validation/test splits and v-fold resampling.
    models              — Model families, trainer and fitted models.
    grid_search         — Cross-validated grid search and model selection.
    evaluator           — ROC-AUC, accuracy, confusion matrix and plots.
    pipeline            — Orchestrates all components.
    utils.logger        — Unified timestamped console logger.
"""

from .config import Config
from .data_loader import DataLoader
from .auditor import MissingnessAuditor
from .type_normalizer import TypeNormalizer
from .recipe import Recipe, ImputeMean, ImputeMedian, ImputeKnn, Normalize, DummyEncode
from .splitter import DatasetSplitter, Split, Fold, make_folds
from .models import ModelSpec, ModelTrainer, FittedModel
from .grid_search import GridSearch
from .evaluator import Evaluator
from .pipeline import PipelineRunner

__all__ = [
    "Config",
    "DataLoader",
    "MissingnessAuditor",
    "TypeNormalizer",
    "Recipe",
    "ImputeMean",
    "ImputeMedian",
    "ImputeKnn",
    "Normalize",
    "DummyEncode",
    "DatasetSplitter",
    "Split",
    "Fold",
    "make_folds",
    "ModelSpec",
    "ModelTrainer",
    "FittedModel",
    "GridSearch",
    "Evaluator",
    "PipelineRunner",
]
