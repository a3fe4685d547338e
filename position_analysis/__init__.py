"""
position_analysis/__init__.py - Package initialization for the position analysis

Exports commonly used classes and functions for easy importing:
    from position_analysis import process_all_data, run_analysis, build_model, SVM_FEATURES
"""

__version__ = "0.1.0"

from .constants import (
    CANONICAL_POSITIONS,
    POSITION_LABEL_MAP,
    LABEL_MAP_VERSION,
    CLUSTER_METRICS,
    SVM_FEATURES,
)

from .exceptions import (
    PositionAnalysisError,
    SchemaError,
    PositionModelError,
    DegenerateClassError,
    NumericalError,
    ModelStateError,
)

from .data_engine import (
    load_data,
    process_all_data,
    relabel_positions,
    deduplicate_players,
    get_eligible_positions,
)

from .clustering import (
    aggregate_position_means,
    cluster_positions,
    PositionClusterer,
    MergeEvent,
)

from .splitting import (
    Partition,
    stratified_split,
    build_feature_matrices,
)

from .evaluator import (
    EvaluationResult,
    evaluate_predictions,
    comparison_table,
    misclassified_players,
)

from .classifiers import (
    ModelState,
    PositionModel,
    MODEL_REGISTRY,
    build_model,
)

from .pipeline import (
    AnalysisResults,
    ModelOutcome,
    run_analysis,
)

from .config_loader import (
    ConfigLoader,
    get_config,
)


__all__ = [
    # Constants
    'CANONICAL_POSITIONS',
    'POSITION_LABEL_MAP',
    'LABEL_MAP_VERSION',
    'CLUSTER_METRICS',
    'SVM_FEATURES',
    # Errors
    'PositionAnalysisError',
    'SchemaError',
    'PositionModelError',
    'DegenerateClassError',
    'NumericalError',
    'ModelStateError',
    # Data Engine
    'load_data',
    'process_all_data',
    'relabel_positions',
    'deduplicate_players',
    'get_eligible_positions',
    # Clustering
    'aggregate_position_means',
    'cluster_positions',
    'PositionClusterer',
    'MergeEvent',
    # Splitting
    'Partition',
    'stratified_split',
    'build_feature_matrices',
    # Evaluation
    'EvaluationResult',
    'evaluate_predictions',
    'comparison_table',
    'misclassified_players',
    # Classifiers
    'ModelState',
    'PositionModel',
    'MODEL_REGISTRY',
    'build_model',
    # Pipeline
    'AnalysisResults',
    'ModelOutcome',
    'run_analysis',
    # Config
    'ConfigLoader',
    'get_config',
]
