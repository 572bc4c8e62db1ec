"""
Test Suite for Evaluation Module
================================

Tests for classification metrics, model comparison and selection.
"""

import json

import matplotlib
matplotlib.use("Agg")

import pytest
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from wle_report.evaluation import (
    calculate_metrics,
    compare_models,
    evaluate_models,
    select_best_model,
)
from wle_report.model import train_models
from wle_report.preprocessing import preprocess_pipeline


@pytest.fixture
def prepared(sensor_frame):
    return preprocess_pipeline(sensor_frame, train_split=0.7, random_state=1234)


@pytest.fixture
def models(prepared, small_config):
    return train_models(prepared['X_train'], prepared['y_train'], small_config)


class TestCalculateMetrics:
    """Tests for calculate_metrics against hand-computed values."""

    @pytest.fixture
    def metrics(self):
        y_true = ['A', 'A', 'A', 'B', 'B', 'C']
        y_pred = ['A', 'A', 'B', 'B', 'B', 'C']
        return calculate_metrics(y_true, y_pred)

    def test_accuracy(self, metrics):
        overall = metrics['overall']

        assert overall['accuracy'] == pytest.approx(5 / 6)
        assert overall['error_rate'] == pytest.approx(1 / 6)
        assert overall['n_samples'] == 6

    def test_confusion_matrix(self, metrics):
        assert metrics['labels'] == ['A', 'B', 'C']
        assert metrics['confusion_matrix'] == [[2, 1, 0], [0, 2, 0], [0, 0, 1]]

    def test_kappa(self, metrics):
        # observed 5/6, expected (3*2 + 2*3 + 1*1) / 36
        assert metrics['overall']['kappa'] == pytest.approx(17 / 23)

    def test_confidence_interval_brackets_accuracy(self, metrics):
        overall = metrics['overall']

        assert 0.0 <= overall['accuracy_ci_lower'] < overall['accuracy'] < overall['accuracy_ci_upper'] <= 1.0
        assert overall['confidence_level'] == 0.95

    def test_no_information_rate(self, metrics):
        overall = metrics['overall']

        assert overall['no_information_rate'] == pytest.approx(0.5)
        assert 0.0 <= overall['p_value_acc_greater_nir'] <= 1.0

    def test_per_class(self, metrics):
        a = metrics['per_class']['A']
        b = metrics['per_class']['B']

        assert a['sensitivity'] == pytest.approx(2 / 3)
        assert a['specificity'] == pytest.approx(1.0)
        assert b['sensitivity'] == pytest.approx(1.0)
        assert b['specificity'] == pytest.approx(3 / 4)
        assert b['pos_pred_value'] == pytest.approx(2 / 3)
        assert b['balanced_accuracy'] == pytest.approx((1.0 + 0.75) / 2)
        assert a['support'] == 3

    def test_perfect_predictions(self):
        labels = ['A', 'B', 'C', 'D', 'E'] * 4
        metrics = calculate_metrics(labels, labels)

        assert metrics['overall']['accuracy'] == 1.0
        assert metrics['overall']['accuracy_ci_upper'] == pytest.approx(1.0)
        assert metrics['overall']['kappa'] == pytest.approx(1.0)

    def test_explicit_label_order(self):
        metrics = calculate_metrics(['B', 'A'], ['B', 'A'], labels=['B', 'A', 'C'])

        assert metrics['labels'] == ['B', 'A', 'C']
        assert metrics['confusion_matrix'][0] == [1, 0, 0]

    def test_empty_input(self):
        with pytest.raises(ValueError, match="No samples"):
            calculate_metrics([], [], labels=['A', 'B'])


class TestSelectBestModel:
    """Tests for select_best_model."""

    def test_highest_out_of_sample(self):
        comparison = pd.DataFrame({
            'model': ['tree', 'forest', 'boost'],
            'cv_accuracy': [0.7, 0.99, 0.95],
            'out_of_sample_accuracy': [0.72, 0.98, 0.99],
        })

        assert select_best_model(comparison) == 'boost'

    def test_tie_broken_by_cv_accuracy(self):
        comparison = pd.DataFrame({
            'model': ['forest', 'boost'],
            'cv_accuracy': [0.97, 0.98],
            'out_of_sample_accuracy': [0.99, 0.99],
        })

        assert select_best_model(comparison) == 'boost'

    def test_full_tie_keeps_first(self):
        comparison = pd.DataFrame({
            'model': ['forest', 'boost'],
            'cv_accuracy': [0.98, 0.98],
            'out_of_sample_accuracy': [0.99, 0.99],
        })

        assert select_best_model(comparison) == 'forest'

    def test_empty(self):
        empty = pd.DataFrame(columns=['model', 'cv_accuracy', 'out_of_sample_accuracy'])

        with pytest.raises(ValueError):
            select_best_model(empty)


class TestModelComparison:
    """Tests for compare_models and evaluate_models."""

    def test_compare_models(self, models, prepared):
        comparison, metrics = compare_models(
            models,
            prepared['X_train'], prepared['y_train'],
            prepared['X_valid'], prepared['y_valid']
        )

        assert list(comparison['model']) == ['tree', 'tree_pruned', 'forest']
        assert set(metrics) == {'tree', 'tree_pruned', 'forest'}
        for _, row in comparison.iterrows():
            assert 0.0 <= row['out_of_sample_accuracy'] <= 1.0
            assert row['out_of_sample_error'] == pytest.approx(1 - row['out_of_sample_accuracy'])
        # Unpruned trees memorise the training partition
        assert comparison.loc[comparison['model'] == 'tree', 'in_sample_accuracy'].iloc[0] == 1.0

    def test_evaluate_models_writes_artifacts(self, models, prepared, tmp_path):
        result = evaluate_models(
            models,
            prepared['X_train'], prepared['y_train'],
            prepared['X_valid'], prepared['y_valid'],
            figures_dir=str(tmp_path / "figures"),
            metrics_dir=str(tmp_path / "metrics")
        )

        assert result['best_model'] in models
        assert result['best_metrics'] is result['metrics'][result['best_model']]
        for figure in result['figures']:
            assert (tmp_path / "figures" / figure).exists()
        assert "eval_confusion_matrix.png" in result['figures']

        with open(result['metrics_file']) as f:
            saved = json.load(f)
        assert saved['best_model'] == result['best_model']
        assert len(saved['comparison']) == 3
