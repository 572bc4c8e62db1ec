"""
Shared fixtures: small synthetic frames shaped like the sensor dataset.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

CLASSES = ['A', 'B', 'C', 'D', 'E']
USERS = ['adelmo', 'carlitos', 'pedro']
FEATURES = ['roll_belt', 'pitch_belt', 'yaw_arm', 'accel_dumbbell_z']


def make_sensor_frame(n_per_class: int = 60, seed: int = 42, labelled: bool = True) -> pd.DataFrame:
    """
    Build a frame with identifier columns, four usable sensor columns, two
    mostly-empty summary columns and two near-constant columns.
    """
    rng = np.random.RandomState(seed)

    if labelled:
        labels = np.repeat(CLASSES, n_per_class)
    else:
        labels = np.array(CLASSES * (n_per_class // len(CLASSES) + 1))[:n_per_class]
    n = len(labels)
    class_index = np.array([CLASSES.index(label) for label in labels])

    accel = rng.randn(n) * 10
    accel[rng.choice(n, size=max(1, n // 20), replace=False)] = np.nan

    kurtosis = np.full(n, np.nan)
    kurtosis[:min(3, n)] = rng.randn(min(3, n))

    rare = np.zeros(n, dtype=int)
    rare[:5] = 1

    df = pd.DataFrame({
        'X': np.arange(1, n + 1),
        'user_name': [USERS[i % len(USERS)] for i in range(n)],
        'raw_timestamp_part_1': 1322489600 + np.arange(n),
        'raw_timestamp_part_2': rng.randint(0, 999999, size=n),
        'cvtd_timestamp': '05/12/2011 11:23',
        'new_window': 'no',
        'num_window': np.arange(n) // 10,
        'roll_belt': class_index * 5.0 + rng.randn(n),
        'pitch_belt': class_index * -3.0 + rng.randn(n),
        'yaw_arm': rng.randn(n) * 50,
        'kurtosis_roll_belt': kurtosis,
        'skewness_yaw_belt': np.nan,
        'accel_dumbbell_z': accel,
        'amplitude_yaw_belt': 0,
        'gyros_forearm_flag': rare,
    })

    if labelled:
        df['classe'] = labels
    else:
        df['problem_id'] = np.arange(1, n + 1)

    return df


@pytest.fixture
def sensor_frame():
    """300 labelled rows, 60 per class."""
    return make_sensor_frame()


@pytest.fixture
def eval_frame():
    """20 unlabelled rows with a problem_id column."""
    return make_sensor_frame(n_per_class=20, seed=7, labelled=False)


@pytest.fixture
def small_config(tmp_path):
    """Fast configuration writing every artifact under tmp_path."""
    return {
        'data': {
            'label_column': 'classe',
            'user_column': 'user_name',
            'case_column': 'problem_id',
        },
        'preprocessing': {
            'train_split': 0.7,
            'random_state': 1234,
        },
        'model': {
            'cv_folds': 3,
            'random_state': 1234,
            'n_jobs': 1,
            'specs': [
                {'name': 'tree', 'estimator': 'decision_tree', 'params': {}, 'param_grid': {}},
                {'name': 'tree_pruned', 'estimator': 'decision_tree', 'params': {},
                 'param_grid': {'ccp_alpha': [0.0, 0.01]}},
                {'name': 'forest', 'estimator': 'random_forest',
                 'params': {'n_estimators': 10}, 'param_grid': {}},
            ],
        },
        'prediction': {
            'refit_on_full_data': False,
            'write_answer_files': True,
        },
        'output': {
            'figures_path': str(tmp_path / 'figures'),
            'metrics_path': str(tmp_path / 'metrics'),
            'report_path': str(tmp_path / 'report.md'),
            'predictions_path': str(tmp_path / 'predictions'),
            'answers_path': str(tmp_path / 'predictions' / 'answers'),
            'model_path': str(tmp_path / 'models' / 'best_model.joblib'),
            'preprocessor_path': str(tmp_path / 'models' / 'preprocessor.joblib'),
        },
    }
