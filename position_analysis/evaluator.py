"""
evaluator.py - Classification metrics for position predictions.

This module provides:
- Confusion matrices over the canonical labels (rows = predicted, columns = actual)
- Overall accuracy and Cohen's kappa
- Per-class accuracy (recall), not applicable when a class has no test players
- Total accuracy: a prediction counts if it names any of the player's listed positions
- Misclassified-player listings and the cross-model comparison table
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix

from .constants import (
    CANONICAL_POSITIONS,
    MAIN_POSITION_COLUMN,
    PLAYER_COLUMN,
    POSITIONS_COLUMN,
)
from .data_engine import get_eligible_positions

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Metrics for one model on one test partition."""
    model_name: Optional[str]
    labels: List[str]
    confusion: pd.DataFrame
    accuracy: float
    kappa: float
    per_class_accuracy: pd.Series
    total_accuracy: float
    n_test: int
    predictions: pd.Series = field(repr=False, default=None)

    def summary(self) -> Dict[str, float]:
        return {
            'Model': self.model_name,
            'Accuracy': self.accuracy,
            'Kappa': self.kappa,
            'Total_Accuracy': self.total_accuracy,
            'N_Test': self.n_test,
        }


def eligible_positions_for(df: pd.DataFrame) -> List[List[str]]:
    """Listed positions (main first, at most three) for every row of ``df``."""
    return [
        get_eligible_positions(pos, main)
        for pos, main in zip(df[POSITIONS_COLUMN], df[MAIN_POSITION_COLUMN])
    ]


def cohen_kappa(actual: Sequence[str], predicted: Sequence[str], labels: List[str] = CANONICAL_POSITIONS) -> float:
    """
    Chance-corrected agreement, (p0 - pe) / (1 - pe).

    Undefined (NaN) when the marginals leave no room for disagreement (pe == 1).
    """
    observed = set(actual) | set(predicted)
    if len(observed) < 2:
        return float('nan')
    return float(cohen_kappa_score(actual, predicted, labels=labels))


def per_class_accuracy(confusion: pd.DataFrame) -> pd.Series:
    """
    Recall per label from a (predicted x actual) confusion matrix.

    Labels with no test examples are NaN (not applicable), never 0.
    """
    actual_totals = confusion.sum(axis=0)
    correct = pd.Series(np.diag(confusion.values), index=confusion.columns)
    recall = correct / actual_totals.where(actual_totals > 0)
    recall.name = 'Per_Class_Accuracy'
    return recall


def total_accuracy(
    actual: Sequence[str],
    predicted: Sequence[str],
    eligible_positions: Sequence[Sequence[str]],
) -> float:
    """
    Share of predictions naming any listed position of the player.

    The main position always counts, so this is never below plain accuracy.
    """
    hits = [
        pred == act or pred in listed
        for act, pred, listed in zip(actual, predicted, eligible_positions)
    ]
    return float(np.mean(hits))


def evaluate_predictions(
    actual: Sequence[str],
    predicted: Sequence[str],
    eligible_positions: Sequence[Sequence[str]],
    labels: List[str] = CANONICAL_POSITIONS,
    model_name: Optional[str] = None,
) -> EvaluationResult:
    """
    Compute every metric for one set of test predictions.

    Args:
        actual: True main positions of the test players
        predicted: Predicted positions, aligned with ``actual``
        eligible_positions: Listed positions per test player, aligned with ``actual``
        labels: Label order for the confusion matrix and per-class table
        model_name: Name recorded on the result

    Returns:
        EvaluationResult
    """
    actual = pd.Series(actual).astype(str)
    predicted = pd.Series(np.asarray(predicted), index=actual.index).astype(str)

    if len(actual) == 0:
        raise ValueError("Cannot evaluate an empty test partition")
    if len(eligible_positions) != len(actual):
        raise ValueError(
            f"eligible_positions has {len(eligible_positions)} rows, expected {len(actual)}"
        )

    matrix = confusion_matrix(actual, predicted, labels=labels)
    confusion = pd.DataFrame(
        matrix.T,
        index=pd.Index(labels, name='Predicted'),
        columns=pd.Index(labels, name='Actual'),
    )

    result = EvaluationResult(
        model_name=model_name,
        labels=list(labels),
        confusion=confusion,
        accuracy=float(accuracy_score(actual, predicted)),
        kappa=cohen_kappa(actual, predicted, labels),
        per_class_accuracy=per_class_accuracy(confusion),
        total_accuracy=total_accuracy(actual, predicted, eligible_positions),
        n_test=len(actual),
        predictions=predicted,
    )

    if result.total_accuracy < result.accuracy:
        logger.warning(f"{model_name}: total accuracy below accuracy, check listed positions")

    return result


# ============================================================================
# REPORT TABLES
# ============================================================================

def misclassified_players(test_df: pd.DataFrame, predicted: Sequence[str]) -> pd.DataFrame:
    """
    Test players whose prediction differs from their main position.

    'Listed_Match' flags predictions that still name one of the player's
    secondary or tertiary positions.
    """
    report = test_df[[PLAYER_COLUMN, MAIN_POSITION_COLUMN, POSITIONS_COLUMN]].copy()
    report['Predicted'] = np.asarray(predicted)
    report['Listed_Match'] = [
        pred in listed
        for pred, listed in zip(report['Predicted'], eligible_positions_for(report))
    ]
    return report[report['Predicted'] != report[MAIN_POSITION_COLUMN]].reset_index(drop=True)


def comparison_table(results: Dict[str, EvaluationResult]) -> pd.DataFrame:
    """One row per model: accuracy, kappa and total accuracy, best first."""
    if not results:
        return pd.DataFrame(columns=['Model', 'Accuracy', 'Kappa', 'Total_Accuracy', 'N_Test'])

    table = pd.DataFrame([result.summary() for result in results.values()])
    return table.sort_values('Accuracy', ascending=False).reset_index(drop=True)


def per_class_table(results: Dict[str, EvaluationResult]) -> pd.DataFrame:
    """Per-class accuracy for every model (labels x models, NaN = not applicable)."""
    return pd.DataFrame({
        name: result.per_class_accuracy for name, result in results.items()
    })
