"""
classifiers.py - Supervised position classifiers behind one fit/predict/evaluate interface.

This module implements six model families:
- Multi-class SVM (linear, radial and polynomial kernels), one-vs-one decomposition
- Random forest
- Ranger-style random forest (out-of-bag tuning of the split-feature count)
- k-nearest neighbours (k chosen by stratified cross-validation, scaled features)
- Bagged decision trees (treebag)
- Linear discriminant analysis

Every model moves UNTRAINED → FITTED → EVALUATED. A fitted model can be
evaluated any number of times but never goes back to UNTRAINED.

Main entry point: build_model(name, random_state, settings) - registry dispatch by name
"""

import logging
import warnings
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.ensemble import BaggingClassifier, RandomForestClassifier
from sklearn.exceptions import ConvergenceWarning
from sklearn.model_selection import GridSearchCV, StratifiedKFold
from sklearn.multiclass import OneVsOneClassifier
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC
from sklearn.tree import DecisionTreeClassifier

from .constants import CANONICAL_POSITIONS, MIN_CLASS_EXAMPLES, RANDOM_STATE
from .evaluator import EvaluationResult, evaluate_predictions
from .exceptions import (
    DegenerateClassError,
    ModelStateError,
    NumericalError,
    PositionModelError,
)
from .splitting import ENSEMBLE_FEATURE_SET, SVM_FEATURE_SET

logger = logging.getLogger(__name__)


class ModelState(Enum):
    """Lifecycle of a position model."""
    UNTRAINED = "untrained"
    FITTED = "fitted"
    EVALUATED = "evaluated"


# ============================================================================
# BASE INTERFACE
# ============================================================================

class PositionModel:
    """
    Common fit/predict/evaluate capability shared by every model family.

    Subclasses provide _build_estimator() (or override _fit_estimator() when
    fitting involves internal tuning) and declare which feature set they use.

    Attributes:
        name: Registry name of the model
        family: Model family used in the comparison table
        feature_set: Design matrix the model expects ('svm' or 'ensemble')
        random_state: Seed passed to every randomised estimator
        settings: Model-specific options from config.yaml
        estimator: Fitted scikit-learn estimator
        fit_warnings: Non-fatal warnings raised while fitting
    """

    name = 'base'
    family = 'base'
    feature_set = ENSEMBLE_FEATURE_SET

    def __init__(self, random_state: int = RANDOM_STATE, settings: Optional[Dict[str, Any]] = None):
        self.random_state = random_state
        self.settings = dict(settings or {})
        self.state = ModelState.UNTRAINED
        self.estimator = None
        self.classes_: List[str] = []
        self.feature_columns: List[str] = []
        self.fit_warnings: List[str] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self.state.value}, random_state={self.random_state})"

    @property
    def is_fitted(self) -> bool:
        return self.state is not ModelState.UNTRAINED

    def _build_estimator(self):
        raise NotImplementedError

    def _check_training_classes(self, y: pd.Series) -> None:
        counts = pd.Series(y).value_counts()
        if len(counts) < 2:
            raise DegenerateClassError(
                f"{self.name}: need at least 2 classes, got {list(counts.index)}",
                model_name=self.name,
            )
        too_small = counts[counts < MIN_CLASS_EXAMPLES]
        if not too_small.empty:
            raise DegenerateClassError(
                f"{self.name}: classes with fewer than {MIN_CLASS_EXAMPLES} training examples: "
                f"{too_small.to_dict()}",
                model_name=self.name,
            )

    def _fit_with_checks(self, estimator, X: pd.DataFrame, y: pd.Series):
        """
        Fit one estimator, turning numerical failures into NumericalError.

        Only UserWarning subclasses (ConvergenceWarning included) are treated as
        model warnings; library deprecation notices pass through unchanged.
        """
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            try:
                estimator.fit(X, y)
            except np.linalg.LinAlgError as e:
                raise NumericalError(f"{self.name}: {e}", model_name=self.name) from e
            except ValueError as e:
                raise PositionModelError(f"{self.name}: {e}", model_name=self.name) from e

        for warning in caught:
            if not issubclass(warning.category, UserWarning):
                warnings.warn_explicit(
                    warning.message, warning.category, warning.filename, warning.lineno
                )
                continue
            if issubclass(warning.category, ConvergenceWarning):
                raise NumericalError(
                    f"{self.name} did not converge: {warning.message}",
                    model_name=self.name,
                )
            message = str(warning.message)
            if message not in self.fit_warnings:
                self.fit_warnings.append(message)
                logger.warning(f"[{self.name}] {message}")

        return estimator

    def _fit_estimator(self, X: pd.DataFrame, y: pd.Series):
        return self._fit_with_checks(self._build_estimator(), X, y)

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'PositionModel':
        """
        Train on one partition.

        Raises:
            ModelStateError: if the model was already fitted
            DegenerateClassError: if a class has fewer than 2 training examples
            NumericalError: on singular matrices or non-convergence
        """
        if self.state is not ModelState.UNTRAINED:
            raise ModelStateError(f"{self.name} is already fitted", model_name=self.name)

        self._check_training_classes(y)
        self.feature_columns = list(X.columns)
        self.estimator = self._fit_estimator(X, pd.Series(y).astype(str).values)
        self.classes_ = [str(c) for c in self.estimator.classes_]
        self.state = ModelState.FITTED

        logger.info(f"[{self.name}] Fitted on {len(X)} players, {len(self.feature_columns)} features")
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Predicted main position for every row of ``X``."""
        if not self.is_fitted:
            raise ModelStateError(f"{self.name} not trained. Call fit() first.", model_name=self.name)
        try:
            predicted = self.estimator.predict(X[self.feature_columns])
        except ValueError as e:
            raise PositionModelError(f"{self.name}: {e}", model_name=self.name) from e
        return np.asarray(predicted).astype(str)

    def evaluate(
        self,
        X: pd.DataFrame,
        y: pd.Series,
        eligible_positions: Sequence[Sequence[str]],
        labels: List[str] = CANONICAL_POSITIONS,
    ) -> EvaluationResult:
        """Predict ``X`` and score against the true and listed positions."""
        predicted = self.predict(X)
        result = evaluate_predictions(
            y, predicted, eligible_positions, labels=labels, model_name=self.name
        )
        self.state = ModelState.EVALUATED
        return result

    def feature_importance(self) -> Optional[pd.Series]:
        """Impurity-based importance for tree ensembles, None otherwise."""
        if self.estimator is None or not hasattr(self.estimator, 'feature_importances_'):
            return None
        importance = pd.Series(self.estimator.feature_importances_, index=self.feature_columns)
        return importance.sort_values(ascending=False)


# ============================================================================
# SUPPORT VECTOR MACHINES
# ============================================================================

class SVMPositionModel(PositionModel):
    """
    Multi-class SVM with explicit one-vs-one decomposition.

    For N classes, N(N-1)/2 binary SVMs are trained; each votes for one of its
    two classes. Ties in the vote count are broken by adding each binary
    classifier's normalised decision confidence (always worth less than one
    vote); a remaining tie goes to the first label in sorted order.

    Features are standardised and the cost is left at the library default.
    """

    family = 'svm'
    feature_set = SVM_FEATURE_SET
    kernel = 'linear'

    def _build_estimator(self):
        svc = SVC(
            kernel=self.kernel,
            C=float(self.settings.get('cost', 1.0)),
            gamma='auto',
            degree=int(self.settings.get('degree', 3)),
            coef0=0.0,
            random_state=self.random_state,
        )
        return Pipeline([
            ('scaler', StandardScaler()),
            ('ovo', OneVsOneClassifier(svc)),
        ])

    @property
    def n_binary_classifiers(self) -> int:
        """Number of pairwise SVMs in the fitted decomposition."""
        if not self.is_fitted:
            return 0
        return len(self.estimator.named_steps['ovo'].estimators_)


class LinearSVMModel(SVMPositionModel):
    name = 'svm_linear'
    kernel = 'linear'


class RadialSVMModel(SVMPositionModel):
    name = 'svm_radial'
    kernel = 'rbf'


class PolynomialSVMModel(SVMPositionModel):
    name = 'svm_polynomial'
    kernel = 'poly'


# ============================================================================
# TREE ENSEMBLES
# ============================================================================

class RandomForestModel(PositionModel):
    """Bootstrap forest of decision trees over the broad feature set."""

    name = 'random_forest'
    family = 'random_forest'

    def _build_estimator(self):
        return RandomForestClassifier(
            n_estimators=int(self.settings.get('n_estimators', 500)),
            random_state=self.random_state,
        )


class RangerModel(PositionModel):
    """
    Ranger-style random forest tuned on out-of-bag accuracy.

    Each candidate split-feature count is scored by the forest's own
    out-of-bag accuracy, so no validation fold is held out. The winning
    forest reports impurity-based feature importance.
    """

    name = 'ranger'
    family = 'ranger'

    def __init__(self, random_state: int = RANDOM_STATE, settings: Optional[Dict[str, Any]] = None):
        super().__init__(random_state=random_state, settings=settings)
        self.oob_scores: Dict[str, float] = {}
        self.selected_max_features = None

    def _fit_estimator(self, X: pd.DataFrame, y: np.ndarray):
        grid = self.settings.get('max_features_grid', ['sqrt', 0.5, 1.0])
        best_forest = None

        for max_features in grid:
            forest = RandomForestClassifier(
                n_estimators=int(self.settings.get('n_estimators', 500)),
                max_features=max_features,
                oob_score=True,
                bootstrap=True,
                random_state=self.random_state,
            )
            forest = self._fit_with_checks(forest, X, y)
            self.oob_scores[str(max_features)] = float(forest.oob_score_)
            logger.info(f"[{self.name}] max_features={max_features}: OOB accuracy {forest.oob_score_:.3f}")

            if best_forest is None or forest.oob_score_ > best_forest.oob_score_:
                best_forest = forest
                self.selected_max_features = max_features

        logger.info(f"[{self.name}] Selected max_features={self.selected_max_features}")
        return best_forest

    @property
    def oob_error(self) -> Optional[float]:
        if self.selected_max_features is None:
            return None
        return 1.0 - self.oob_scores[str(self.selected_max_features)]


class TreeBagModel(PositionModel):
    """Bootstrap-aggregated unpruned decision trees, majority vote."""

    name = 'treebag'
    family = 'treebag'

    def _build_estimator(self):
        return BaggingClassifier(
            estimator=DecisionTreeClassifier(random_state=self.random_state),
            n_estimators=int(self.settings.get('n_estimators', 25)),
            bootstrap=True,
            random_state=self.random_state,
        )


# ============================================================================
# NEIGHBOURS & DISCRIMINANT ANALYSIS
# ============================================================================

class KNNModel(PositionModel):
    """
    k-nearest neighbours on standardised features.

    The scaler is part of the fitted pipeline, so distances always use
    training-partition statistics (refit inside every CV fold while tuning).
    k is picked from a small grid by stratified cross-validation on the
    training partition.
    """

    name = 'knn'
    family = 'knn'

    def __init__(self, random_state: int = RANDOM_STATE, settings: Optional[Dict[str, Any]] = None):
        super().__init__(random_state=random_state, settings=settings)
        self.selected_k: Optional[int] = None
        self.cv_scores: Dict[int, float] = {}

    def _fit_estimator(self, X: pd.DataFrame, y: np.ndarray):
        k_grid = [int(k) for k in self.settings.get('k_grid', [5, 7, 9])]
        smallest_class = int(pd.Series(y).value_counts().min())
        n_splits = max(2, min(int(self.settings.get('cv_folds', 5)), smallest_class))

        # Every k must fit inside the smallest training fold
        max_k = len(X) - int(np.ceil(len(X) / n_splits))
        k_grid = [k for k in k_grid if k <= max_k]
        if not k_grid:
            raise DegenerateClassError(
                f"{self.name}: training partition too small for any k (max {max_k})",
                model_name=self.name,
            )

        knn = Pipeline([
            ('scaler', StandardScaler()),
            ('knn', KNeighborsClassifier()),
        ])
        search = GridSearchCV(
            knn,
            param_grid={'knn__n_neighbors': k_grid},
            cv=StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=self.random_state),
            scoring='accuracy',
        )
        search = self._fit_with_checks(search, X, y)

        self.selected_k = int(search.best_params_['knn__n_neighbors'])
        self.cv_scores = {
            int(k): float(score)
            for k, score in zip(search.cv_results_['param_knn__n_neighbors'], search.cv_results_['mean_test_score'])
        }
        logger.info(f"[{self.name}] Selected k={self.selected_k} ({n_splits}-fold CV)")
        return search.best_estimator_


class LDAModel(PositionModel):
    """
    Linear discriminant analysis: shared-covariance Gaussian classes,
    highest posterior wins. Collinearity warnings are kept in fit_warnings.
    """

    name = 'lda'
    family = 'lda'

    def _build_estimator(self):
        return LinearDiscriminantAnalysis()


# ============================================================================
# REGISTRY
# ============================================================================

MODEL_REGISTRY = {
    model_cls.name: model_cls
    for model_cls in [
        LinearSVMModel,
        RadialSVMModel,
        PolynomialSVMModel,
        RandomForestModel,
        RangerModel,
        KNNModel,
        TreeBagModel,
        LDAModel,
    ]
}


def build_model(
    name: str,
    random_state: int = RANDOM_STATE,
    settings: Optional[Dict[str, Any]] = None,
) -> PositionModel:
    """
    Create an untrained model by registry name.

    Args:
        name: One of MODEL_REGISTRY's keys
        random_state: Seed for every randomised step of the model
        settings: Model-specific options (see config.yaml 'models' block)
    """
    if name not in MODEL_REGISTRY:
        raise KeyError(f"Unknown model '{name}'. Available: {sorted(MODEL_REGISTRY)}")
    return MODEL_REGISTRY[name](random_state=random_state, settings=settings)
