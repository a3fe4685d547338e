"""
clustering.py - Hierarchical clustering of per-position performance profiles.

This module implements:
- Position aggregation: mean per-90 / progressive profile for each main position
- Column standardisation and pairwise Euclidean distances between positions
- Agglomerative linkage (complete by default, average supported)
- Merge-event extraction and dendrogram structure for external rendering
- Flat cuts describing which positions are statistically confusable

The clustering is purely descriptive; there is no prediction step.

Main entry point: cluster_positions() - aggregate, scale and link in one call
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cophenet, dendrogram, fcluster, linkage
from scipy.spatial.distance import pdist, squareform
from sklearn.preprocessing import StandardScaler

from .constants import (
    CLUSTER_METRICS,
    DEFAULT_LINKAGE,
    MAIN_POSITION_COLUMN,
    MIN_PLAYERS_PER_POSITION,
    OVERLAPPING_POSITIONS,
    SUPPORTED_LINKAGES,
)
from .exceptions import DegenerateClassError, SchemaError

logger = logging.getLogger(__name__)


# ============================================================================
# POSITION AGGREGATION
# ============================================================================

def aggregate_position_means(
    df: pd.DataFrame,
    metrics: List[str] = CLUSTER_METRICS,
    exclude: List[str] = OVERLAPPING_POSITIONS,
    min_players: int = MIN_PLAYERS_PER_POSITION,
) -> pd.DataFrame:
    """
    Mean performance vector per main position.

    Positions listed in ``exclude`` and positions with fewer than
    ``min_players`` players are dropped here, before any scaling, so they
    cannot produce degenerate column variance.

    Args:
        df: Cleaned player table
        metrics: Metric columns to average (NaN ignored)
        exclude: Position labels never clustered on their own
        min_players: Minimum players for a position to be kept

    Returns:
        DataFrame indexed by position with one column per metric plus 'Count'
    """
    missing = [col for col in metrics if col not in df.columns]
    if missing:
        raise SchemaError(
            f"Clustering metrics missing from player table: {missing}", missing_columns=missing
        )

    work = df[~df[MAIN_POSITION_COLUMN].isin(exclude)]
    grouped = work.groupby(MAIN_POSITION_COLUMN)

    means = grouped[metrics].mean()
    means['Count'] = grouped.size()

    small = means.index[means['Count'] < min_players].tolist()
    if small:
        logger.info(f"Excluding positions with fewer than {min_players} players: {small}")
        means = means.drop(index=small)

    means.index.name = MAIN_POSITION_COLUMN
    return means


# ============================================================================
# HIERARCHICAL CLUSTERING
# ============================================================================

@dataclass
class MergeEvent:
    """One agglomeration step of the dendrogram."""
    step: int
    left: int          # index < n_positions is a leaf, otherwise an earlier merge (n + step)
    right: int
    height: float
    size: int
    members: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'step': self.step,
            'left': self.left,
            'right': self.right,
            'height': self.height,
            'size': self.size,
            'members': list(self.members),
        }


class PositionClusterer:
    """
    Agglomerative clustering of positions on standardised mean profiles.

    Strategy:
    - Standardise each metric column across positions (zero mean, unit variance)
    - Compute the condensed pairwise Euclidean distance matrix
    - Link with a fixed, recorded linkage method (results are linkage-sensitive)

    Attributes:
        linkage_method: 'complete' or 'average'
        positions: Leaf labels in input order
        metrics: Metric columns used as clustering features
        scaler: Fitted StandardScaler
        distances: Condensed distance vector (scipy pdist layout)
        linkage_matrix: scipy linkage matrix (n-1 x 4)
    """

    def __init__(self, linkage_method: str = DEFAULT_LINKAGE, metrics: List[str] = CLUSTER_METRICS):
        if linkage_method not in SUPPORTED_LINKAGES:
            raise ValueError(
                f"Unsupported linkage '{linkage_method}'. Choose one of {SUPPORTED_LINKAGES}"
            )
        self.linkage_method = linkage_method
        self.metrics = list(metrics)
        self.positions: List[str] = []
        self.scaler: Optional[StandardScaler] = None
        self.scaled_features: Optional[np.ndarray] = None
        self.distances: Optional[np.ndarray] = None
        self.linkage_matrix: Optional[np.ndarray] = None

    def fit(self, position_means: pd.DataFrame) -> 'PositionClusterer':
        """
        Scale the position-mean matrix and build the merge tree.

        Args:
            position_means: Output of aggregate_position_means()

        Returns:
            self for method chaining
        """
        if len(position_means) < 2:
            raise DegenerateClassError(
                f"Need at least 2 positions to cluster, got {len(position_means)}"
            )

        features = position_means[self.metrics].astype(float)

        if features.isna().any().any():
            empty = features.columns[features.isna().any()].tolist()
            raise DegenerateClassError(f"Position means contain missing values in {empty}")

        constant = features.columns[features.std(ddof=0) == 0].tolist()
        if constant:
            raise DegenerateClassError(f"Zero variance across positions for {constant}")

        self.positions = [str(pos) for pos in position_means.index]

        self.scaler = StandardScaler()
        self.scaled_features = self.scaler.fit_transform(features.values)
        self.distances = pdist(self.scaled_features, metric='euclidean')
        self.linkage_matrix = linkage(self.distances, method=self.linkage_method)

        logger.info(
            f"[Clustering] Linked {len(self.positions)} positions "
            f"({self.linkage_method} linkage, cophenetic r={self.cophenetic_correlation():.3f})"
        )
        return self

    def _require_fit(self) -> None:
        if self.linkage_matrix is None:
            raise ValueError("Clusterer not fitted. Call fit() first.")

    def distance_matrix(self) -> pd.DataFrame:
        """Square Euclidean distance table labelled by position."""
        self._require_fit()
        return pd.DataFrame(
            squareform(self.distances),
            index=self.positions,
            columns=self.positions,
        )

    def merge_events(self) -> List[MergeEvent]:
        """
        Ordered merge sequence (scipy convention: ids >= n refer to earlier merges).
        """
        self._require_fit()
        n = len(self.positions)
        members: Dict[int, List[str]] = {i: [pos] for i, pos in enumerate(self.positions)}
        events = []

        for step, (left, right, height, size) in enumerate(self.linkage_matrix):
            left, right = int(left), int(right)
            merged = members[left] + members[right]
            members[n + step] = merged
            events.append(MergeEvent(
                step=step,
                left=left,
                right=right,
                height=float(height),
                size=int(size),
                members=merged,
            ))

        return events

    def dendrogram_structure(self) -> Dict:
        """Leaf order and merge events as plain data for a report renderer."""
        self._require_fit()
        tree = dendrogram(self.linkage_matrix, labels=self.positions, no_plot=True)
        return {
            'linkage': self.linkage_method,
            'metrics': list(self.metrics),
            'labels': list(self.positions),
            'leaf_order': list(tree['ivl']),
            'merges': [event.to_dict() for event in self.merge_events()],
            'cophenetic_correlation': self.cophenetic_correlation(),
        }

    def cut(self, n_clusters: int) -> pd.Series:
        """Flat cluster id per position when the tree is cut into ``n_clusters`` groups."""
        self._require_fit()
        n_clusters = max(1, min(n_clusters, len(self.positions)))
        labels = fcluster(self.linkage_matrix, t=n_clusters, criterion='maxclust')
        return pd.Series(labels, index=self.positions, name='Cluster')

    def cophenetic_correlation(self) -> float:
        """How faithfully the tree preserves the original pairwise distances."""
        self._require_fit()
        if len(self.positions) < 3:
            return float('nan')
        corr, _ = cophenet(self.linkage_matrix, self.distances)
        return float(corr)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def cluster_positions(
    df: pd.DataFrame,
    linkage_method: str = DEFAULT_LINKAGE,
    min_players: int = MIN_PLAYERS_PER_POSITION,
) -> Tuple[pd.DataFrame, PositionClusterer]:
    """
    Aggregate the player table by main position and build the dendrogram.

    Returns:
        Tuple of (position_means, fitted_clusterer)
    """
    position_means = aggregate_position_means(df, min_players=min_players)
    logger.info(f"[Clustering] Aggregated {len(position_means)} positions: {list(position_means.index)}")

    clusterer = PositionClusterer(linkage_method=linkage_method)
    clusterer.fit(position_means)

    return position_means, clusterer
