#!/usr/bin/env python3
"""
Weight Lifting Exercise Classification - Main Pipeline
======================================================

Runs the complete analysis, from the raw sensor CSV files to the report.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Preprocessing - Column cleaning, imputation, NZV filtering, split, scaling
    3. Training - Five cross-validated model configurations
    4. Evaluation - In-sample / out-of-sample accuracy and model selection
    5. Prediction - Class predictions for the 20 evaluation rows
    6. Report - Markdown report with comparison and prediction tables

Usage:
    # Run complete pipeline (downloads the data)
    python main.py

    # Use local copies of the data
    python main.py --training data/raw/pml-training.csv --testing data/raw/pml-testing.csv

    # Run specific phase
    python main.py --phase eda

    # Run with custom config
    python main.py --config config/custom.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from wle_report.data_loader import load_config, load_datasets, validate_data, print_data_summary
from wle_report.eda import generate_eda_report, print_eda_insights
from wle_report.preprocessing import preprocess_pipeline, print_preprocessing_summary
from wle_report.model import train_models, print_model_summary, ExerciseClassifier
from wle_report.evaluation import evaluate_models, print_evaluation_report
from wle_report.prediction import run_final_prediction, print_prediction_results
from wle_report.report import write_report, relative_figure_paths


def setup_logging(level: str = "INFO", log_dir: str = "logs/") -> None:
    """Configure logging for the pipeline."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_dir / f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ],
        force=True
    )


def run_eda(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Raw training data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    data_config = config.get('data', {})
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(
        df,
        output_dir=output_dir,
        label_column=data_config.get('label_column', 'classe'),
        user_column=data_config.get('user_column', 'user_name'),
        show_plots=False
    )

    print_eda_insights(report)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 2: Data Preprocessing.

    Args:
        df: Raw training data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    data_config = config.get('data', {})
    prep_config = config.get('preprocessing', {})
    preprocessor_path = config.get('output', {}).get('preprocessor_path', 'models/preprocessor.joblib')
    Path(preprocessor_path).parent.mkdir(parents=True, exist_ok=True)

    result = preprocess_pipeline(
        df,
        label_column=data_config.get('label_column', 'classe'),
        id_columns=data_config.get('id_columns'),
        max_missing_fraction=prep_config.get('max_missing_fraction', 0.95),
        impute_strategy=prep_config.get('impute_strategy', 'median'),
        nzv_freq_cut=prep_config.get('nzv_freq_cut', 95 / 5),
        nzv_unique_cut=prep_config.get('nzv_unique_cut', 10.0),
        train_split=prep_config.get('train_split', 0.7),
        standardize=prep_config.get('standardize', True),
        random_state=prep_config.get('random_state', 1234),
        save_preprocessor=preprocessor_path
    )

    print_preprocessing_summary(result)

    return result


def run_training(prep_result: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, ExerciseClassifier]:
    """
    Execute Phase 3: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Trained models by name
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TRAINING")
    print("=" * 70)

    models = train_models(prep_result['X_train'], prep_result['y_train'], config)

    print_model_summary(models)

    return models


def run_evaluation(
    models: Dict[str, ExerciseClassifier],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation.

    Args:
        models: Trained models
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    output_config = config.get('output', {})

    result = evaluate_models(
        models,
        prep_result['X_train'],
        prep_result['y_train'],
        prep_result['X_valid'],
        prep_result['y_valid'],
        figures_dir=output_config.get('figures_path', 'reports/figures/'),
        metrics_dir=output_config.get('metrics_path', 'reports/metrics/'),
        show_plots=False
    )

    best = models[result['best_model']]
    best.save(output_config.get('model_path', 'models/best_model.joblib'))

    print_evaluation_report(result)

    return result


def run_final_prediction_phase(
    models: Dict[str, ExerciseClassifier],
    prep_result: Dict[str, Any],
    eval_df: pd.DataFrame,
    eval_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Final Prediction.

    Args:
        models: Trained models
        prep_result: Preprocessing result dictionary
        eval_df: Raw evaluation rows
        eval_result: Evaluation result with the selected model
        config: Configuration dictionary

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: FINAL PREDICTION")
    print("=" * 70)

    best = models[eval_result['best_model']]
    result = run_final_prediction(
        model=best,
        preprocessor=prep_result['preprocessor'],
        eval_df=eval_df,
        config=config,
        X_full=prep_result['X_full'],
        y_full=prep_result['y_full']
    )

    if result['refit']:
        # Replace the partition-trained copy saved during evaluation
        best.save(config.get('output', {}).get('model_path', 'models/best_model.joblib'))

    print_prediction_results(result)

    return result


def run_report(
    train_df: pd.DataFrame,
    eval_df: pd.DataFrame,
    results: Dict[str, Any],
    config: Dict[str, Any]
) -> Path:
    """
    Execute Phase 6: Render the report.

    Args:
        train_df: Raw training data
        eval_df: Raw evaluation rows
        results: Results of the previous phases
        config: Configuration dictionary

    Returns:
        Path to the report
    """
    print("\n" + "=" * 70)
    print("PHASE 6: REPORT")
    print("=" * 70)

    output_config = config.get('output', {})
    label_column = config.get('data', {}).get('label_column', 'classe')
    report_path = output_config.get('report_path', 'reports/report.md')
    figures_path = output_config.get('figures_path', 'reports/figures/')

    prep = results['preprocessing']
    evaluation = results['evaluation']
    figures = results.get('eda', {}).get('figures', []) + evaluation['figures']

    context = {
        'train_shape': train_df.shape,
        'eval_shape': eval_df.shape,
        'class_counts': {
            str(k): int(v) for k, v in train_df[label_column].value_counts().sort_index().items()
        },
        'dropped': prep['dropped'],
        'n_features': len(prep['feature_names']),
        'n_train': len(prep['X_train']),
        'n_valid': len(prep['X_valid']),
        'comparison': evaluation['comparison'],
        'best_model': evaluation['best_model'],
        'best_metrics': evaluation['best_metrics'],
        'predictions': results['prediction']['predictions'],
        'figures': relative_figure_paths(figures, figures_path, report_path),
        'eda': results.get('eda')
    }

    path = write_report(context, report_path)
    print(f"\n✓ Report written to {path}")
    return path


def run_full_pipeline(
    config_path: str = "config/config.yaml",
    training_path: Optional[str] = None,
    testing_path: Optional[str] = None,
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute the complete pipeline.

    Args:
        config_path: Path to configuration file
        training_path: Local training CSV (downloaded when omitted)
        testing_path: Local evaluation CSV (downloaded when omitted)
        verbose: Log at DEBUG level regardless of the configured level

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("WEIGHT LIFTING EXERCISE CLASSIFICATION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    logging_config = config.get('logging', {})
    level = "DEBUG" if verbose else logging_config.get("level", "INFO")
    setup_logging(level, logging_config.get("log_dir", "logs/"))

    print("\n📊 Loading data...")
    train_df, eval_df = load_datasets(config, training_path, testing_path)
    print_data_summary(train_df, "TRAINING DATA")
    print_data_summary(eval_df, "EVALUATION DATA")

    label_column = config.get('data', {}).get('label_column', 'classe')
    is_valid, _ = validate_data(train_df, label_column=label_column, strict=False)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    results = {
        'config': config,
        'data_shape': train_df.shape,
        'eval_shape': eval_df.shape
    }

    results['eda'] = run_eda(train_df, config)
    results['preprocessing'] = run_preprocessing(train_df, config)
    results['models'] = run_training(results['preprocessing'], config)
    results['evaluation'] = run_evaluation(results['models'], results['preprocessing'], config)
    results['prediction'] = run_final_prediction_phase(
        results['models'], results['preprocessing'], eval_df, results['evaluation'], config
    )
    results['report_path'] = run_report(train_df, eval_df, results, config)

    best = results['evaluation']['best_metrics']['overall']

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Training data: {train_df.shape[0]} rows × {train_df.shape[1]} columns")
    print(f"  • Best model: {results['evaluation']['best_model']}")
    print(f"  • Out-of-sample accuracy: {best['accuracy']:.4f}")
    print(f"  • Predictions: {results['prediction']['csv_path']}")
    print(f"  • Report: {results['report_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    config_path: str = "config/config.yaml",
    training_path: Optional[str] = None,
    testing_path: Optional[str] = None,
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline (and the phases it depends on).

    Args:
        phase: Phase to run ('eda', 'preprocess', 'train', 'evaluate', 'predict')
        config_path: Path to configuration file
        training_path: Local training CSV (downloaded when omitted)
        testing_path: Local evaluation CSV (downloaded when omitted)
        verbose: Log at DEBUG level regardless of the configured level

    Returns:
        Phase result dictionary
    """
    if phase == 'predict':
        return run_full_pipeline(config_path, training_path, testing_path, verbose)

    config = load_config(config_path)
    logging_config = config.get('logging', {})
    level = "DEBUG" if verbose else logging_config.get("level", "INFO")
    setup_logging(level, logging_config.get("log_dir", "logs/"))

    train_df, _ = load_datasets(config, training_path, testing_path)

    if phase == 'eda':
        return run_eda(train_df, config)

    elif phase == 'preprocess':
        return run_preprocessing(train_df, config)

    elif phase == 'train':
        prep_result = run_preprocessing(train_df, config)
        return {'models': run_training(prep_result, config), 'preprocessing': prep_result}

    elif phase == 'evaluate':
        prep_result = run_preprocessing(train_df, config)
        models = run_training(prep_result, config)
        return run_evaluation(models, prep_result, config)

    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: eda, preprocess, train, evaluate, predict")


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Weight Lifting Exercise classification report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --phase eda
  python main.py --training data/raw/pml-training.csv --testing data/raw/pml-testing.csv
  python main.py --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--training', '-t',
        type=str,
        default=None,
        help='Local training CSV (default: download data.training_url)'
    )

    parser.add_argument(
        '--testing', '-e',
        type=str,
        default=None,
        help='Local evaluation CSV (default: download data.testing_url)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda', 'preprocess', 'train', 'evaluate', 'predict', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help="Enable verbose (DEBUG) logging"
    )

    args = parser.parse_args()

    for label, path in (('Training', args.training), ('Evaluation', args.testing)):
        if path is not None and not Path(path).exists():
            print(f"Error: {label} data file not found: {path}")
            sys.exit(1)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    try:
        if args.phase == 'all':
            run_full_pipeline(args.config, args.training, args.testing, args.verbose)
        else:
            run_single_phase(args.phase, args.config, args.training, args.testing, args.verbose)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
