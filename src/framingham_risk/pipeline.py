import os
import warnings
from textwrap import indent
from typing import Any, Dict

import pandas as pd

from .auditor import MissingnessAuditor
from .config import Config
from .data_loader import DataLoader
from .evaluator import Evaluator
from .grid_search import GridSearch
from .models import ModelSpec, ModelTrainer
from .recipe import Recipe
from .splitter import DatasetSplitter, make_folds
from .type_normalizer import TypeNormalizer
from .utils.logger import get_logger


class PipelineRunner:
    """End-to-end Framingham ten-year CHD risk pipeline.

    Steps:
      1. Load the delimited dataset
      2. Audit missing values per row and column
      3. Recast factor-coded columns as categorical
      4. Split into train/(validation)/test parts, stratified on the outcome
      5. Build the preprocessing recipe and v folds on the training part
      6. Grid search every configured model family with cross-validation
      7. Select the simplest combination within the loss tolerance and refit
      8. Evaluate on held-out parts (metrics, confusion matrix, ROC curve)
      9. Save the processed training set, tuning tables and fitted models"""

    def __init__(self, config_path: str):
        self.config = Config.from_yaml(config_path)
        self.logger = get_logger(self.__class__.__name__)
        warnings.filterwarnings(
            "ignore",
            message="X does not have valid feature names",
            category=UserWarning,
            module="sklearn",
        )

    def run(self) -> Dict[str, Any]:
        cfg = self.config
        self.logger.info("Starting Framingham CHD risk pipeline")

        loader = DataLoader(
            cfg.data["path"],
            sample_size=cfg.data.get("sample_size"),
            sep=cfg.data.get("sep", ","),
        )
        df = loader.load()

        audit = MissingnessAuditor().summary(df)

        df = TypeNormalizer(cfg.data.get("categorical_cols", [])).transform(df)

        target_col = cfg.data["target_col"]
        seed = int(cfg.split.get("seed", 123))
        splitter = DatasetSplitter(
            proportions=cfg.split.get("proportions", [0.8]),
            stratify=cfg.split.get("stratify"),
            seed=seed,
        )
        split = splitter.split(df)
        train_df = split.subset(df, "train")

        recipe = Recipe.from_config(target_col, cfg.preprocessing.get("steps", []))
        processed = recipe.prep(train_df).bake(train_df)
        out = cfg.output
        if out.get("processed_path"):
            loader.save(processed, out["processed_path"])

        folds = make_folds(
            train_df,
            n_folds=int(cfg.validation.get("n_folds", 5)),
            stratify=cfg.split.get("stratify"),
            seed=seed,
        )

        positive_label = cfg.model.get("positive_label", 1)
        metrics = cfg.validation.get("metrics", ["roc_auc", "accuracy"])
        select_metric = cfg.validation.get("select_metric", "roc_auc")
        tolerance = float(cfg.validation.get("tolerance", 0.0))

        results: Dict[str, Any] = {"audit": audit, "split": split.sizes(), "models": {}}
        for family, family_cfg in cfg.model["families"].items():
            spec = ModelSpec.from_config(family, family_cfg or {})
            trainer = ModelTrainer(spec, recipe, target_col, positive_label=positive_label, seed=seed)
            search = GridSearch(
                trainer,
                folds,
                metrics=metrics,
                n_jobs=int(cfg.validation.get("n_jobs", 1)),
            )
            tuning = search.run(train_df)
            params = search.select_by_pct_loss(select_metric, limit=tolerance)
            model = search.finalize(train_df, params)

            if out.get("tuning_dir"):
                os.makedirs(out["tuning_dir"], exist_ok=True)
                tuning.to_csv(os.path.join(out["tuning_dir"], f"{family}_metrics.csv"), index=False)
                search.results_.to_csv(os.path.join(out["tuning_dir"], f"{family}_folds.csv"), index=False)
            if out.get("model_dir"):
                path = model.save(os.path.join(out["model_dir"], f"{family}.joblib"))
                self.logger.info(f"Saved model: {path}")

            evaluations = {}
            for part in ("validation", "test"):
                holdout = split.subset(df, part)
                if holdout.empty:
                    continue
                evaluator = Evaluator(
                    metrics_path=(
                        os.path.join(out["metrics_dir"], f"{family}_{part}.json")
                        if out.get("metrics_dir") else None
                    ),
                    figures_dir=out.get("figures_dir"),
                    positive_label=positive_label,
                    metrics=metrics,
                )
                table = model.augment(holdout)
                evaluations[part] = evaluator.evaluate(
                    table[target_col], table[".pred_class"], table[".pred_prob"], name=f"{family}_{part}"
                )
                metrics_str = indent(
                    "\n".join(f"{k}: {v:.4f}" for k, v in evaluations[part].items() if isinstance(v, float)),
                    " " * 4,
                )
                self.logger.info(f"{family} {part} metrics:\n{metrics_str}")

            results["models"][family] = {
                "params": params,
                "selected": search.selected_,
                "tuning": tuning,
                "evaluation": evaluations,
                "model": model,
            }

        scored = {
            family: res["evaluation"]["test"][select_metric]
            for family, res in results["models"].items()
            if "test" in res["evaluation"] and not pd.isna(res["evaluation"]["test"][select_metric])
        }
        if scored:
            best_family = max(scored, key=scored.get)
            results["best_family"] = best_family
            self.logger.info(f"Best model family on test: {best_family} ({select_metric}={scored[best_family]:.4f})")

        self.logger.info("Pipeline finished")
        return results
