"""
Test Suite for EDA Module
=========================
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from wle_report.eda import (
    generate_eda_report,
    missing_value_profile,
    strong_correlations,
    user_class_chi_square,
)


def test_user_class_independence_balanced(sensor_frame):
    # every participant contributes 20 rows of every class
    result = user_class_chi_square(sensor_frame)

    assert result['contingency_table'].shape == (3, 5)
    assert result['dof'] == 8
    assert result['chi2'] == pytest.approx(0.0)
    assert result['p_value'] == pytest.approx(1.0)


def test_user_class_independence_dependent():
    df = pd.DataFrame({
        'user_name': ['pedro'] * 50 + ['jeremy'] * 50,
        'classe': ['A'] * 50 + ['B'] * 50,
    })

    result = user_class_chi_square(df)

    assert result['p_value'] < 0.001


def test_missing_value_profile(sensor_frame):
    profile = missing_value_profile(sensor_frame)

    assert profile.index[0] == 'skewness_yaw_belt'
    assert profile.iloc[0] == 1.0
    assert profile['kurtosis_roll_belt'] == pytest.approx(297 / 300)
    assert profile['roll_belt'] == 0.0


def test_strong_correlations():
    rng = np.random.RandomState(3)
    base = rng.randn(100)
    df = pd.DataFrame({
        'a': base,
        'b': -base + rng.randn(100) * 0.01,
        'c': rng.randn(100),
    })

    pairs = strong_correlations(df.corr(), threshold=0.8)

    assert len(pairs) == 1
    assert (pairs[0]['col1'], pairs[0]['col2']) == ('a', 'b')
    assert pairs[0]['correlation'] < -0.99


def test_generate_eda_report(sensor_frame, tmp_path):
    report = generate_eda_report(sensor_frame, output_dir=str(tmp_path))

    assert report['class_counts'] == {'A': 60, 'B': 60, 'C': 60, 'D': 60, 'E': 60}
    assert report['statistics']['missing']['mostly_missing_columns'] == 2
    for figure in report['figures']:
        assert (tmp_path / figure).exists()
    assert "04_correlation_matrix.png" in report['figures']
    # roll_belt and pitch_belt both track the class index
    assert any(
        {pair['col1'], pair['col2']} == {'roll_belt', 'pitch_belt'}
        for pair in report['strong_correlations']
    )
