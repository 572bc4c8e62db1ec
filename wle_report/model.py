"""
Model Training Module
=====================

Fits the candidate classifiers with stratified k-fold cross-validation.

Features:
    - Estimator registry (decision tree, random forest, gradient boosting)
    - Model configurations read from the config file
    - Grid search over each configuration's parameter grid
    - Model persistence (save/load)
    - Training progress logging
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import BaseEstimator
from sklearn.ensemble import RandomForestClassifier, HistGradientBoostingClassifier
from sklearn.model_selection import GridSearchCV, StratifiedKFold, cross_val_score
from sklearn.tree import DecisionTreeClassifier

logger = logging.getLogger(__name__)

ESTIMATORS = {
    'decision_tree': DecisionTreeClassifier,
    'random_forest': RandomForestClassifier,
    'gradient_boosting': HistGradientBoostingClassifier,
}

DEFAULT_MODEL_SPECS = [
    {
        'name': 'decision_tree',
        'estimator': 'decision_tree',
        'params': {},
        'param_grid': {}
    },
    {
        'name': 'decision_tree_pruned',
        'estimator': 'decision_tree',
        'params': {},
        'param_grid': {'ccp_alpha': [0.0, 0.0005, 0.001, 0.005]}
    },
    {
        'name': 'random_forest',
        'estimator': 'random_forest',
        'params': {'n_estimators': 100},
        'param_grid': {}
    },
    {
        'name': 'random_forest_tuned',
        'estimator': 'random_forest',
        'params': {'n_estimators': 100},
        'param_grid': {'max_features': [2, 'sqrt', 0.5]}
    },
    {
        'name': 'gradient_boosting',
        'estimator': 'gradient_boosting',
        'params': {'learning_rate': 0.1, 'early_stopping': False},
        'param_grid': {'max_depth': [1, 2, 3], 'max_iter': [50, 100, 150]}
    },
]


@dataclass
class ModelSpec:
    """One candidate model configuration."""

    name: str
    estimator: str
    params: Dict[str, Any] = field(default_factory=dict)
    param_grid: Dict[str, List[Any]] = field(default_factory=dict)

    def __post_init__(self):
        if self.estimator not in ESTIMATORS:
            raise ValueError(
                f"Unknown estimator '{self.estimator}'. Choose from: {', '.join(ESTIMATORS)}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelSpec':
        return cls(
            name=data['name'],
            estimator=data.get('estimator', data['name']),
            params=dict(data.get('params') or {}),
            param_grid=dict(data.get('param_grid') or {})
        )


def build_model_specs(config: Dict[str, Any]) -> List[ModelSpec]:
    """
    Build the candidate model configurations.

    Args:
        config: Configuration dictionary (``model.specs`` overrides defaults)

    Returns:
        List of ModelSpec
    """
    raw_specs = config.get('model', {}).get('specs') or DEFAULT_MODEL_SPECS
    specs = [ModelSpec.from_dict(spec) for spec in raw_specs]

    names = [spec.name for spec in specs]
    if len(set(names)) != len(names):
        raise ValueError(f"Model names must be unique: {names}")

    return specs


class ExerciseClassifier:
    """
    A cross-validated classifier for one model configuration.

    ``fit`` estimates accuracy with stratified k-fold cross-validation
    (searching the parameter grid when one is given) and then refits the
    best configuration on all training rows.
    """

    def __init__(
        self,
        spec: ModelSpec,
        cv_folds: int = 5,
        random_state: int = 1234,
        n_jobs: int = -1
    ):
        """
        Initialize the classifier.

        Args:
            spec: Model configuration
            cv_folds: Number of cross-validation folds
            random_state: Seed for the folds and the estimator
            n_jobs: Number of parallel jobs (-1 for all cores)
        """
        self.spec = spec
        self.cv_folds = cv_folds
        self.random_state = random_state
        self.n_jobs = n_jobs

        self.model: Optional[BaseEstimator] = None
        self.classes_: Optional[np.ndarray] = None
        self.feature_names_: Optional[List[str]] = None
        self.cv_accuracy: Optional[float] = None
        self.cv_accuracy_std: Optional[float] = None
        self.best_params: Dict[str, Any] = {}
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    @property
    def name(self) -> str:
        return self.spec.name

    def _create_base_estimator(self) -> BaseEstimator:
        """Create the unfitted scikit-learn estimator."""
        estimator_cls = ESTIMATORS[self.spec.estimator]
        params = dict(self.spec.params)
        params.setdefault('random_state', self.random_state)
        return estimator_cls(**params)

    def _cv(self) -> StratifiedKFold:
        return StratifiedKFold(n_splits=self.cv_folds, shuffle=True, random_state=self.random_state)

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'ExerciseClassifier':
        """
        Cross-validate and train the model on the provided data.

        Args:
            X: Feature frame of shape (n_samples, n_features)
            y: Class labels

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info(f"TRAINING {self.name} ({self.spec.estimator})")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}")
        logger.info(f"Cross-validation: {self.cv_folds}-fold stratified")
        if self.spec.params:
            logger.info(f"Fixed parameters: {self.spec.params}")
        if self.spec.param_grid:
            logger.info(f"Parameter grid: {self.spec.param_grid}")

        estimator = self._create_base_estimator()

        if self.spec.param_grid:
            search = GridSearchCV(
                estimator,
                param_grid=self.spec.param_grid,
                scoring='accuracy',
                cv=self._cv(),
                n_jobs=self.n_jobs,
                refit=True
            )
            search.fit(X, y)
            self.model = search.best_estimator_
            self.best_params = dict(search.best_params_)
            self.cv_accuracy = float(search.best_score_)
            self.cv_accuracy_std = float(search.cv_results_['std_test_score'][search.best_index_])
            grid_results = pd.DataFrame(search.cv_results_)[['params', 'mean_test_score', 'std_test_score']]
            for _, row in grid_results.iterrows():
                logger.info(f"  {row['params']}: {row['mean_test_score']:.4f} (+/- {row['std_test_score']:.4f})")
        else:
            scores = cross_val_score(
                estimator, X, y,
                scoring='accuracy',
                cv=self._cv(),
                n_jobs=self.n_jobs
            )
            self.cv_accuracy = float(np.mean(scores))
            self.cv_accuracy_std = float(np.std(scores))
            self.model = estimator.fit(X, y)
            self.best_params = {}

        self.classes_ = np.asarray(self.model.classes_)
        self.feature_names_ = list(X.columns) if hasattr(X, 'columns') else None

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'n_classes': int(len(self.classes_)),
            'trained_at': end_time.isoformat(),
            'estimator': self.spec.estimator,
            'params': dict(self.spec.params),
            'best_params': dict(self.best_params)
        }

        self._is_fitted = True

        logger.info(f"CV accuracy: {self.cv_accuracy:.4f} (+/- {self.cv_accuracy_std:.4f})")
        logger.info(f"{self.name} trained in {training_duration:.2f} seconds")

        return self

    def refit(self, X: pd.DataFrame, y: pd.Series) -> 'ExerciseClassifier':
        """
        Refit the selected configuration on new rows without re-running
        cross-validation.
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained before refit. Call fit() first.")

        params = dict(self.spec.params)
        params.update(self.best_params)
        params.setdefault('random_state', self.random_state)
        self.model = ESTIMATORS[self.spec.estimator](**params).fit(X, y)
        self.classes_ = np.asarray(self.model.classes_)
        self.training_info['refit_samples'] = int(X.shape[0])
        logger.info(f"Refitted {self.name} on {X.shape[0]} samples")
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict class labels.

        Args:
            X: Feature frame of shape (n_samples, n_features)

        Returns:
            Array of predicted labels
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        if X.shape[1] != self.training_info['n_features']:
            raise ValueError(
                f"Expected {self.training_info['n_features']} features, but got {X.shape[1]}"
            )

        return self.model.predict(X)

    def get_feature_importances(self) -> pd.Series:
        """
        Get impurity-based feature importances, largest first.

        Returns:
            Series indexed by feature name (empty when the estimator has none)
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")

        importances = getattr(self.model, 'feature_importances_', None)
        if importances is None:
            return pd.Series(dtype=float)

        index = self.feature_names_ or [f"feature_{i}" for i in range(len(importances))]
        return pd.Series(importances, index=index).sort_values(ascending=False)

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'model': self.model,
            'spec': {
                'name': self.spec.name,
                'estimator': self.spec.estimator,
                'params': self.spec.params,
                'param_grid': self.spec.param_grid
            },
            'cv_folds': self.cv_folds,
            'random_state': self.random_state,
            'n_jobs': self.n_jobs,
            'classes_': self.classes_,
            'feature_names_': self.feature_names_,
            'cv_accuracy': self.cv_accuracy,
            'cv_accuracy_std': self.cv_accuracy_std,
            'best_params': self.best_params,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ExerciseClassifier':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded ExerciseClassifier instance
        """
        state = joblib.load(filepath)

        model = cls(
            ModelSpec.from_dict(state['spec']),
            cv_folds=state['cv_folds'],
            random_state=state['random_state'],
            n_jobs=state['n_jobs']
        )
        model.model = state['model']
        model.classes_ = state['classes_']
        model.feature_names_ = state['feature_names_']
        model.cv_accuracy = state['cv_accuracy']
        model.cv_accuracy_std = state['cv_accuracy_std']
        model.best_params = state['best_params']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def train_models(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    config: Dict[str, Any],
    specs: Optional[List[ModelSpec]] = None
) -> Dict[str, ExerciseClassifier]:
    """
    Train every candidate model configuration.

    Args:
        X_train: Training features
        y_train: Training labels
        config: Configuration dictionary
        specs: Model configurations (default: built from config)

    Returns:
        Dictionary mapping model name to trained ExerciseClassifier,
        in configuration order
    """
    model_config = config.get('model', {})

    if specs is None:
        specs = build_model_specs(config)

    logger.info(f"Training {len(specs)} model configurations: {[spec.name for spec in specs]}")

    models = {}
    for spec in specs:
        model = ExerciseClassifier(
            spec,
            cv_folds=model_config.get('cv_folds', 5),
            random_state=model_config.get('random_state', 1234),
            n_jobs=model_config.get('n_jobs', -1)
        )
        models[spec.name] = model.fit(X_train, y_train)

    return models


def print_model_summary(models: Dict[str, ExerciseClassifier]) -> None:
    """
    Print a summary of the trained models.

    Args:
        models: Trained models by name
    """
    print("\n" + "=" * 70)
    print("MODEL SUMMARY")
    print("=" * 70)
    print(f"{'Model':<24} {'Estimator':<20} {'CV Acc':<10} {'Time (s)':<10}")
    print("-" * 70)

    for name, model in models.items():
        duration = model.training_info.get('training_duration_seconds', 0.0)
        print(f"{name:<24} {model.spec.estimator:<20} {model.cv_accuracy:<10.4f} {duration:<10.2f}")
        if model.best_params:
            print(f"{'':<24} best: {model.best_params}")

    print("=" * 70 + "\n")
