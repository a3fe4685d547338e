"""
pipeline.py - End-to-end position analysis over one cleaned player table.

Processing steps:
1. Aggregate positions and build the hierarchical clustering dendrogram
2. Build the shared stratified train/test partition from an explicit seed
3. Assemble the SVM and ensemble design matrices
4. Fit and evaluate every enabled model family on the same partition
5. Collect the comparison table, confusion matrices and misclassified players

A failing model is reported in its outcome and the remaining models still run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .classifiers import build_model
from .clustering import PositionClusterer, cluster_positions
from .config_loader import ConfigLoader, get_config
from .constants import MAIN_POSITION_COLUMN
from .evaluator import (
    EvaluationResult,
    comparison_table,
    eligible_positions_for,
    misclassified_players,
    per_class_table,
)
from .exceptions import DegenerateClassError, PositionModelError
from .splitting import Partition, build_feature_matrices, stratified_split

logger = logging.getLogger(__name__)


@dataclass
class ModelOutcome:
    """Result of one model family: metrics on success, the error otherwise."""
    name: str
    family: str
    result: Optional[EvaluationResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    misclassified: Optional[pd.DataFrame] = None
    feature_importance: Optional[pd.Series] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.result is not None


@dataclass
class AnalysisResults:
    """Everything the report renderer consumes from one run."""
    random_state: int
    partition: Partition
    class_proportions: pd.DataFrame
    position_means: Optional[pd.DataFrame]
    clusterer: Optional[PositionClusterer]
    cluster_groups: Optional[pd.Series]
    outcomes: Dict[str, ModelOutcome]

    @property
    def evaluations(self) -> Dict[str, EvaluationResult]:
        return {name: o.result for name, o in self.outcomes.items() if o.succeeded}

    def comparison(self) -> pd.DataFrame:
        return comparison_table(self.evaluations)

    def per_class(self) -> pd.DataFrame:
        return per_class_table(self.evaluations)

    def failures(self) -> Dict[str, str]:
        return {
            name: f"{o.error_type}: {o.error}"
            for name, o in self.outcomes.items() if not o.succeeded
        }


# ============================================================================
# DESIGN MATRICES
# ============================================================================

def prepare_design_matrices(
    df: pd.DataFrame,
    partition: Partition,
) -> Dict[str, Tuple[pd.DataFrame, pd.DataFrame]]:
    """
    (train, test) design matrices per feature set.

    Matrices are selected and encoded only; any fitted preprocessing
    (scaling) belongs to the model that needs it.
    """
    return {
        name: (partition.train(matrix), partition.test(matrix))
        for name, matrix in build_feature_matrices(df).items()
    }


def _model_settings(config: ConfigLoader, model_name: str) -> Dict[str, Any]:
    settings_key = 'svm' if model_name.startswith('svm_') else model_name
    return config.get_model_config(settings_key)


# ============================================================================
# MODEL RUNS
# ============================================================================

def run_model(
    name: str,
    design: Dict[str, Tuple[pd.DataFrame, pd.DataFrame]],
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    random_state: int,
    settings: Optional[Dict[str, Any]] = None,
) -> ModelOutcome:
    """
    Fit and evaluate one model family on the shared partition.

    PositionModelError (degenerate classes, numerical failures) is reported
    in the returned outcome instead of propagating.
    """
    model = build_model(name, random_state=random_state, settings=settings)
    outcome = ModelOutcome(name=name, family=model.family)

    X_train, X_test = design[model.feature_set]
    y_train = train_df[MAIN_POSITION_COLUMN]
    y_test = test_df[MAIN_POSITION_COLUMN]

    try:
        model.fit(X_train, y_train)
        result = model.evaluate(X_test, y_test, eligible_positions_for(test_df))
    except PositionModelError as e:
        logger.error(f"[{name}] {type(e).__name__}: {e}")
        outcome.error = str(e)
        outcome.error_type = type(e).__name__
        return outcome

    outcome.result = result
    outcome.misclassified = misclassified_players(test_df, result.predictions)
    outcome.feature_importance = model.feature_importance()
    outcome.details['fit_warnings'] = list(model.fit_warnings)

    if hasattr(model, 'n_binary_classifiers'):
        outcome.details['n_binary_classifiers'] = model.n_binary_classifiers
    if getattr(model, 'oob_scores', None):
        outcome.details['oob_scores'] = dict(model.oob_scores)
        outcome.details['selected_max_features'] = model.selected_max_features
    if getattr(model, 'selected_k', None) is not None:
        outcome.details['selected_k'] = model.selected_k
        outcome.details['cv_scores'] = dict(model.cv_scores)

    logger.info(
        f"[{name}] accuracy={result.accuracy:.3f} kappa={result.kappa:.3f} "
        f"total_accuracy={result.total_accuracy:.3f}"
    )
    return outcome


def run_clustering(df: pd.DataFrame, config: ConfigLoader):
    """Dendrogram over position means; a degenerate input is logged, not fatal."""
    clustering_config = config.get_clustering_config()
    try:
        position_means, clusterer = cluster_positions(
            df,
            linkage_method=clustering_config.get('linkage', 'complete'),
            min_players=int(clustering_config.get('min_players', 5)),
        )
    except DegenerateClassError as e:
        logger.error(f"[Clustering] {e}")
        return None, None, None

    groups = clusterer.cut(int(clustering_config.get('n_clusters', 4)))
    return position_means, clusterer, groups


def run_analysis(
    df: pd.DataFrame,
    config: Optional[ConfigLoader] = None,
    model_names: Optional[List[str]] = None,
) -> AnalysisResults:
    """
    Cluster positions, split once, and fit/evaluate every model family.

    Args:
        df: Cleaned player table from data_engine.process_all_data()
        config: Loaded configuration (defaults to the global config)
        model_names: Models to run (defaults to models.enabled)

    Returns:
        AnalysisResults

    Raises:
        DegenerateClassError: if the table cannot be stratified (no model can run)
    """
    config = config or get_config()
    random_state = config.get_random_state()
    model_names = model_names or config.get_enabled_models()

    logger.info("[1/4] Clustering position profiles...")
    position_means, clusterer, groups = run_clustering(df, config)

    logger.info("[2/4] Building stratified train/test partition...")
    partition = stratified_split(df, random_state=random_state, train_fraction=config.get_train_fraction())
    train_df = partition.train(df)
    test_df = partition.test(df)

    logger.info("[3/4] Assembling design matrices...")
    design = prepare_design_matrices(df, partition)

    logger.info(f"[4/4] Fitting {len(model_names)} models...")
    outcomes = {}
    for name in model_names:
        outcomes[name] = run_model(
            name,
            design,
            train_df,
            test_df,
            random_state=random_state,
            settings=_model_settings(config, name),
        )

    failed = [name for name, outcome in outcomes.items() if not outcome.succeeded]
    if failed:
        logger.warning(f"Models that failed to report: {failed}")

    return AnalysisResults(
        random_state=random_state,
        partition=partition,
        class_proportions=partition.class_proportions(df[MAIN_POSITION_COLUMN]),
        position_means=position_means,
        clusterer=clusterer,
        cluster_groups=groups,
        outcomes=outcomes,
    )
