import warnings

import pytest
import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning

from position_analysis.classifiers import (
    MODEL_REGISTRY,
    KNNModel,
    LDAModel,
    LinearSVMModel,
    ModelState,
    PositionModel,
    RangerModel,
    build_model,
)
from position_analysis.evaluator import eligible_positions_for
from position_analysis.exceptions import (
    DegenerateClassError,
    ModelStateError,
    NumericalError,
    PositionModelError,
)
from position_analysis.pipeline import prepare_design_matrices
from position_analysis.splitting import stratified_split


@pytest.fixture(scope="module")
def split_data(player_df):
    partition = stratified_split(player_df, random_state=42)
    design = prepare_design_matrices(player_df, partition)
    return {
        'design': design,
        'train_df': partition.train(player_df),
        'test_df': partition.test(player_df),
    }


def _fit(model, split_data):
    X_train, X_test = split_data['design'][model.feature_set]
    model.fit(X_train, split_data['train_df']['Main_Pos'])
    return model, X_test


class _SingularEstimator:
    def fit(self, X, y):
        raise np.linalg.LinAlgError("Singular matrix")


class _NonConvergingEstimator:
    def fit(self, X, y):
        warnings.warn("Maximum iterations reached", ConvergenceWarning)
        self.classes_ = np.unique(y)
        return self


class _NoisyEstimator:
    def fit(self, X, y):
        warnings.warn("Keyword will be renamed", FutureWarning)
        warnings.warn("Variables are collinear", UserWarning)
        self.classes_ = np.unique(y)
        return self


class _SingularModel(PositionModel):
    name = 'singular'

    def _build_estimator(self):
        return _SingularEstimator()


class _NonConvergingModel(PositionModel):
    name = 'non_converging'

    def _build_estimator(self):
        return _NonConvergingEstimator()


class _NoisyModel(PositionModel):
    name = 'noisy'

    def _build_estimator(self):
        return _NoisyEstimator()


def test_registry_names():
    assert set(MODEL_REGISTRY) == {
        'svm_linear', 'svm_radial', 'svm_polynomial',
        'random_forest', 'ranger', 'knn', 'treebag', 'lda',
    }


def test_unknown_model_name():
    with pytest.raises(KeyError):
        build_model('xgboost')


def test_svm_trains_one_classifier_per_pair(split_data):
    model, _ = _fit(LinearSVMModel(random_state=42), split_data)

    assert model.classes_ == sorted(model.classes_)
    assert len(model.classes_) == 12
    assert model.n_binary_classifiers == 66
    assert len(model.feature_columns) == 14


@pytest.mark.parametrize("name", ['svm_linear', 'svm_radial', 'svm_polynomial'])
def test_svm_kernels_beat_chance(split_data, name):
    model, X_test = _fit(build_model(name, random_state=42), split_data)
    test_df = split_data['test_df']

    result = model.evaluate(X_test, test_df['Main_Pos'], eligible_positions_for(test_df))

    assert result.n_test == len(test_df)
    assert result.accuracy > 1 / 12
    assert result.total_accuracy >= result.accuracy


def test_state_transitions(split_data):
    model = LDAModel(random_state=42)
    assert model.state is ModelState.UNTRAINED

    model, X_test = _fit(model, split_data)
    assert model.state is ModelState.FITTED

    test_df = split_data['test_df']
    model.evaluate(X_test, test_df['Main_Pos'], eligible_positions_for(test_df))
    assert model.state is ModelState.EVALUATED

    # Re-evaluating is allowed, refitting is not
    model.evaluate(X_test, test_df['Main_Pos'], eligible_positions_for(test_df))
    with pytest.raises(ModelStateError):
        _fit(model, split_data)


def test_predict_before_fit(split_data):
    X_train, _ = split_data['design']['ensemble']
    with pytest.raises(ModelStateError):
        build_model('random_forest').predict(X_train)


def test_single_class_training_is_degenerate(split_data):
    X_train, _ = split_data['design']['svm']
    y = pd.Series(['ST'] * len(X_train), index=X_train.index)
    with pytest.raises(DegenerateClassError):
        LinearSVMModel().fit(X_train, y)


def test_singleton_training_class_is_degenerate(split_data):
    X_train, _ = split_data['design']['ensemble']
    y = split_data['train_df']['Main_Pos'].copy()
    y.iloc[0] = 'SW'
    with pytest.raises(DegenerateClassError):
        build_model('treebag').fit(X_train, y)


def test_singular_fit_raises_numerical_error(split_data):
    X_train, _ = split_data['design']['ensemble']
    model = _SingularModel()
    with pytest.raises(NumericalError):
        model.fit(X_train, split_data['train_df']['Main_Pos'])
    assert model.state is ModelState.UNTRAINED


def test_non_convergence_raises_numerical_error(split_data):
    X_train, _ = split_data['design']['ensemble']
    with pytest.raises(NumericalError):
        _NonConvergingModel().fit(X_train, split_data['train_df']['Main_Pos'])


def test_ranger_tunes_on_out_of_bag_accuracy(split_data):
    settings = {'n_estimators': 60, 'max_features_grid': ['sqrt', 0.5]}
    model, _ = _fit(RangerModel(random_state=42, settings=settings), split_data)

    assert set(model.oob_scores) == {'sqrt', '0.5'}
    assert model.oob_scores[str(model.selected_max_features)] == max(model.oob_scores.values())
    assert 0 <= model.oob_error <= 1

    importance = model.feature_importance()
    assert importance is not None
    assert importance.sum() == pytest.approx(1.0)
    assert 'Main_Pos' not in importance.index
    assert importance.index[0] in model.feature_columns


def test_ranger_is_reproducible(split_data):
    settings = {'n_estimators': 30, 'max_features_grid': ['sqrt']}
    first, X_test = _fit(RangerModel(random_state=3, settings=settings), split_data)
    second, _ = _fit(RangerModel(random_state=3, settings=settings), split_data)
    assert np.array_equal(first.predict(X_test), second.predict(X_test))


def test_knn_selects_k_by_cross_validation(split_data):
    model, X_test = _fit(KNNModel(random_state=42, settings={'k_grid': [5, 7, 9]}), split_data)

    assert model.feature_set == 'ensemble'
    assert model.selected_k in (5, 7, 9)
    assert set(model.cv_scores) == {5, 7, 9}
    assert model.cv_scores[model.selected_k] == max(model.cv_scores.values())
    assert model.feature_importance() is None
    assert len(model.predict(X_test)) == len(X_test)


def test_treebag_and_forest_report_importance(split_data):
    forest, _ = _fit(build_model('random_forest', settings={'n_estimators': 40}), split_data)
    bagged, X_test = _fit(build_model('treebag', settings={'n_estimators': 10}), split_data)

    assert forest.feature_importance() is not None
    # BaggingClassifier exposes no impurity importance
    assert bagged.feature_importance() is None
    assert set(bagged.predict(X_test)) <= set(bagged.classes_)


def test_lda_collinearity_is_not_fatal(split_data):
    model, X_test = _fit(LDAModel(), split_data)
    assert model.state is ModelState.FITTED
    assert all(isinstance(message, str) for message in model.fit_warnings)
    assert len(model.predict(X_test)) == len(X_test)


def test_library_notices_are_not_model_warnings(split_data):
    X_train, _ = split_data['design']['ensemble']
    model = _NoisyModel()

    with pytest.warns(FutureWarning):
        model.fit(X_train, split_data['train_df']['Main_Pos'])

    assert model.fit_warnings == ['Variables are collinear']


def test_invalid_input_is_a_model_error(split_data):
    X_train, X_test = split_data['design']['ensemble']
    bad_train = X_train.copy()
    bad_train.iloc[0, bad_train.columns.get_loc('Min')] = np.inf

    with pytest.raises(PositionModelError):
        LDAModel().fit(bad_train, split_data['train_df']['Main_Pos'])

    model, _ = _fit(LDAModel(), split_data)
    bad_test = X_test.copy()
    bad_test.iloc[0, bad_test.columns.get_loc('Min')] = np.inf
    with pytest.raises(PositionModelError):
        model.predict(bad_test)


def test_knn_scales_with_training_statistics(split_data):
    model, X_test = _fit(KNNModel(random_state=42), split_data)
    X_train, _ = split_data['design']['ensemble']

    scaler = model.estimator.named_steps['scaler']
    assert np.allclose(scaler.mean_, X_train.mean().values)
    assert model.estimator.named_steps['knn'].n_neighbors == model.selected_k
