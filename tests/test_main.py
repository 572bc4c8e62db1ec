"""
Test Suite for the Pipeline Entry Point
=======================================

Runs the phases end to end on small synthetic CSV files.
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import yaml

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from wle_report.model import ExerciseClassifier


@pytest.fixture
def data_files(sensor_frame, eval_frame, tmp_path):
    training = tmp_path / "pml-training.csv"
    testing = tmp_path / "pml-testing.csv"
    sensor_frame.to_csv(training, index=False)
    eval_frame.to_csv(testing, index=False)
    return str(training), str(testing)


@pytest.fixture
def pipeline_config(small_config, tmp_path):
    small_config['logging'] = {'level': 'INFO', 'log_dir': str(tmp_path / 'logs')}
    return small_config


def write_config(config, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding='utf-8')
    return str(path)


class TestCommandLine:
    """Tests for main() exit codes and outputs."""

    def test_full_run(self, pipeline_config, data_files, tmp_path, monkeypatch):
        training, testing = data_files
        config_path = write_config(pipeline_config, tmp_path)
        monkeypatch.setattr(sys, 'argv', [
            'main.py', '--config', config_path, '--training', training, '--testing', testing
        ])

        assert main.main() == 0

        report = (tmp_path / 'report.md').read_text(encoding='utf-8')
        assert "## Predictions for the evaluation set" in report
        assert "A: 60 (20.0%)" in report
        assert "Participant vs. class chi-square" in report
        assert "![01_class_distribution](figures/01_class_distribution.png)" in report
        assert "![eval_model_comparison](figures/eval_model_comparison.png)" in report

        answers = sorted((tmp_path / 'predictions' / 'answers').glob('problem_id_*.txt'))
        assert len(answers) == 20
        assert (tmp_path / 'models' / 'best_model.joblib').exists()
        assert (tmp_path / 'models' / 'preprocessor.joblib').exists()

    def test_unknown_estimator_fails(self, pipeline_config, data_files, tmp_path, monkeypatch):
        pipeline_config['model']['specs'].append({'name': 'svm', 'estimator': 'svm'})
        training, testing = data_files
        config_path = write_config(pipeline_config, tmp_path)
        monkeypatch.setattr(sys, 'argv', [
            'main.py', '--config', config_path, '--training', training, '--testing', testing
        ])

        assert main.main() == 1
        assert not (tmp_path / 'report.md').exists()

    def test_missing_training_file(self, pipeline_config, tmp_path, monkeypatch):
        config_path = write_config(pipeline_config, tmp_path)
        monkeypatch.setattr(sys, 'argv', [
            'main.py', '--config', config_path, '--training', str(tmp_path / 'nope.csv')
        ])

        with pytest.raises(SystemExit) as excinfo:
            main.main()

        assert excinfo.value.code == 1


class TestPhases:
    """Tests for single phases and the saved model."""

    def test_preprocess_phase(self, pipeline_config, data_files, tmp_path):
        training, testing = data_files
        config_path = write_config(pipeline_config, tmp_path)

        result = main.run_single_phase('preprocess', config_path, training, testing)

        for key in ['X_train', 'X_valid', 'y_train', 'y_valid', 'preprocessor', 'feature_names', 'dropped']:
            assert key in result
        assert len(result['X_train']) + len(result['X_valid']) == 300
        assert (tmp_path / 'models' / 'preprocessor.joblib').exists()

    def test_unknown_phase(self, pipeline_config, data_files, tmp_path):
        training, testing = data_files
        config_path = write_config(pipeline_config, tmp_path)

        with pytest.raises(ValueError, match="Unknown phase"):
            main.run_single_phase('deploy', config_path, training, testing)

    def test_saved_model_is_refit_model(self, pipeline_config, data_files, tmp_path):
        pipeline_config['prediction']['refit_on_full_data'] = True
        training, testing = data_files
        config_path = write_config(pipeline_config, tmp_path)

        results = main.run_full_pipeline(config_path, training, testing)

        saved = ExerciseClassifier.load(str(tmp_path / 'models' / 'best_model.joblib'))
        assert results['prediction']['refit'] is True
        assert saved.name == results['evaluation']['best_model']
        assert saved.training_info['refit_samples'] == 300
