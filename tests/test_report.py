"""
Test Suite for Report Module
============================
"""

import pytest
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from wle_report.evaluation import calculate_metrics
from wle_report.report import relative_figure_paths, render_report, write_report


@pytest.fixture
def context():
    comparison = pd.DataFrame({
        'model': ['decision_tree', 'random_forest'],
        'estimator': ['decision_tree', 'random_forest'],
        'cv_accuracy': [0.71, 0.99],
        'in_sample_accuracy': [1.0, 1.0],
        'out_of_sample_accuracy': [0.73, 0.995],
        'out_of_sample_error': [0.27, 0.005],
        'kappa': [0.66, 0.99],
        'fit_seconds': [1.2, 30.5],
        'best_params': ['', '{"max_features": "sqrt"}'],
    })
    predictions = pd.DataFrame({
        'case': [1, 2, 3],
        'user_name': ['pedro', 'jeremy', 'jeremy'],
        'predicted_classe': ['B', 'A', 'B'],
    })
    return {
        'train_shape': (19622, 160),
        'eval_shape': (20, 160),
        'class_counts': {'A': 5580, 'B': 3797},
        'dropped': {'identifier': ['X', 'user_name'], 'sparse': ['kurtosis_roll_belt']},
        'n_features': 52,
        'n_train': 13737,
        'n_valid': 5885,
        'comparison': comparison,
        'best_model': 'random_forest',
        'best_metrics': calculate_metrics(['A', 'B', 'B', 'A'], ['A', 'B', 'B', 'B']),
        'predictions': predictions,
        'figures': ['figures/eval_confusion_matrix.png'],
        'generated_at': '2024-01-01 00:00:00',
    }


def table_rows(text):
    """Cell values of every Markdown table row in ``text``."""
    return [
        [cell.strip() for cell in line.strip().strip('|').split(' | ')]
        for line in text.splitlines()
        if line.startswith('|')
    ]


def test_tables_rendered_with_float_format(context):
    rows = table_rows(render_report(context))

    assert ['**random_forest**', '0.9900', '1.0000', '0.9950', '0.0050', '0.9900', '30.5000',
            '{"max_features": "sqrt"}'] in rows
    assert ['decision_tree', '0.7100', '1.0000', '0.7300', '0.2700', '0.6600', '1.2000', ''] in rows


def test_pipes_escaped_in_cells(context):
    context['predictions'].loc[0, 'user_name'] = 'a|b'

    text = render_report(context)

    assert 'a\\|b' in text
    assert ['1', 'a\\|b', 'B'] in table_rows(text)


def test_render_report_sections(context):
    text = render_report(context)

    for heading in ["## Data", "## Cleaning", "## Model comparison",
                    "## Selected model on the validation partition",
                    "## Predictions for the evaluation set", "## Figures"]:
        assert heading in text

    assert "Training data: 19622 rows × 160 columns" in text
    assert "Dropped 1 sparse columns" in text
    assert "Selected model: **random_forest**" in text
    assert "Expected out-of-sample error: 25.00%" in text
    assert ['2', 'jeremy', 'A'] in table_rows(text)
    assert "![eval_confusion_matrix](figures/eval_confusion_matrix.png)" in text


def test_render_report_without_figures(context):
    context['figures'] = []

    assert "## Figures" not in render_report(context)


def test_write_report(context, tmp_path):
    path = write_report(context, str(tmp_path / "nested" / "report.md"))

    assert path.exists()
    assert path.read_text(encoding='utf-8').startswith("# Weight Lifting Exercise Classification")


def test_relative_figure_paths(tmp_path):
    paths = relative_figure_paths(
        ['01_class_distribution.png'],
        str(tmp_path / 'reports' / 'figures'),
        str(tmp_path / 'reports' / 'report.md')
    )

    assert paths == ['figures/01_class_distribution.png']
