"""
splitting.py - Feature selection and the shared stratified train/test partition.

Two feature sets are used across model families:
- SVM: the 14 hand-picked per-90 / physical / disciplinary / penalty features
- Ensemble: every cleaned column except the identifier and the position columns,
  with categorical columns one-hot encoded

One partition is built per run from an explicit seed and shared read-only by
every model family so their accuracies are comparable.
"""

import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from .constants import (
    ENSEMBLE_EXCLUDE,
    MAIN_POSITION_COLUMN,
    MIN_CLASS_EXAMPLES,
    SVM_FEATURES,
    TRAIN_FRACTION,
)
from .exceptions import DegenerateClassError, SchemaError

logger = logging.getLogger(__name__)

SVM_FEATURE_SET = 'svm'
ENSEMBLE_FEATURE_SET = 'ensemble'


# ============================================================================
# FEATURE SELECTION
# ============================================================================

def select_svm_features(df: pd.DataFrame) -> pd.DataFrame:
    """The 14-feature SVM design matrix (missing values filled with 0)."""
    missing = [col for col in SVM_FEATURES if col not in df.columns]
    if missing:
        raise SchemaError(f"SVM features missing from player table: {missing}", missing_columns=missing)
    return df[SVM_FEATURES].astype(float).fillna(0)


def select_ensemble_features(df: pd.DataFrame) -> pd.DataFrame:
    """
    Broad design matrix for the tree / neighbour / discriminant models.

    Drops the identifier and the columns that encode the target, one-hot
    encodes every non-numeric column and fills missing numbers with 0.
    Encoding runs on the whole table so both partitions share one column layout.
    """
    features = df.drop(columns=[col for col in ENSEMBLE_EXCLUDE if col in df.columns])

    categorical = features.select_dtypes(exclude=[np.number]).columns.tolist()
    if categorical:
        features = pd.get_dummies(features, columns=categorical, dtype=float)

    return features.astype(float).fillna(0)


def build_feature_matrices(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Both design matrices, indexed like ``df``."""
    matrices = {
        SVM_FEATURE_SET: select_svm_features(df),
        ENSEMBLE_FEATURE_SET: select_ensemble_features(df),
    }
    logger.info(
        f"Feature sets: svm={matrices[SVM_FEATURE_SET].shape[1]} columns, "
        f"ensemble={matrices[ENSEMBLE_FEATURE_SET].shape[1]} columns"
    )
    return matrices


# ============================================================================
# TRAIN / TEST PARTITION
# ============================================================================

@dataclass(frozen=True)
class Partition:
    """Disjoint train/test row labels over the player table."""
    train_index: np.ndarray
    test_index: np.ndarray
    random_state: int
    train_fraction: float

    @property
    def n_train(self) -> int:
        return len(self.train_index)

    @property
    def n_test(self) -> int:
        return len(self.test_index)

    def train(self, frame):
        """Training rows of a DataFrame or Series indexed like the player table."""
        return frame.loc[self.train_index]

    def test(self, frame):
        """Test rows of a DataFrame or Series indexed like the player table."""
        return frame.loc[self.test_index]

    def class_proportions(self, labels: pd.Series) -> pd.DataFrame:
        """Per-class train/test counts and the share of each class kept for training."""
        counts = pd.DataFrame({
            'train': self.train(labels).value_counts(),
            'test': self.test(labels).value_counts(),
        }).fillna(0).astype(int)
        counts['train_share'] = counts['train'] / (counts['train'] + counts['test'])
        return counts


def stratified_split(
    df: pd.DataFrame,
    random_state: int,
    train_fraction: float = TRAIN_FRACTION,
    label_column: str = MAIN_POSITION_COLUMN,
) -> Partition:
    """
    Partition players into training and test sets, stratified by position.

    Deterministic for a given seed and input ordering.

    Args:
        df: Cleaned player table
        random_state: Seed for the shuffle (passed explicitly, never global)
        train_fraction: Share of each class used for training

    Returns:
        Partition with disjoint train/test index labels

    Raises:
        DegenerateClassError: if a class has too few players to appear in both sets
    """
    if not 0 < train_fraction < 1:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    labels = df[label_column]
    counts = labels.value_counts()
    too_small = counts[counts < MIN_CLASS_EXAMPLES]
    if not too_small.empty:
        raise DegenerateClassError(
            f"Cannot stratify: classes with fewer than {MIN_CLASS_EXAMPLES} players: "
            f"{too_small.to_dict()}"
        )

    try:
        train_index, test_index = train_test_split(
            df.index.values,
            train_size=train_fraction,
            stratify=labels.values,
            random_state=random_state,
        )
    except ValueError as e:
        raise DegenerateClassError(f"Stratified split failed: {e}") from e

    partition = Partition(
        train_index=np.sort(train_index),
        test_index=np.sort(test_index),
        random_state=random_state,
        train_fraction=train_fraction,
    )
    logger.info(
        f"Split {len(df)} players into {partition.n_train} train / {partition.n_test} test "
        f"(seed={random_state})"
    )
    return partition
