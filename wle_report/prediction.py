"""
Prediction Module
=================

Predicts the exercise class of the held-out evaluation rows.

Features:
    - Prediction table (case, user name, predicted class)
    - Export predictions to CSV
    - One answer file per evaluation case
    - Optional refit of the selected model on all labelled rows
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .model import ExerciseClassifier
from .preprocessing import SensorPreprocessor

logger = logging.getLogger(__name__)

PREDICTION_COLUMNS = ['case', 'user_name', 'predicted_classe']


def predict_evaluation_set(
    model: ExerciseClassifier,
    preprocessor: SensorPreprocessor,
    eval_df: pd.DataFrame,
    case_column: str = "problem_id",
    user_column: str = "user_name"
) -> pd.DataFrame:
    """
    Predict the class of every evaluation row.

    Args:
        model: Trained classifier
        preprocessor: Preprocessor fitted on the training data
        eval_df: Raw evaluation rows
        case_column: Column holding the case index (1-based position if absent)
        user_column: Column holding the participant name

    Returns:
        DataFrame with columns case, user_name, predicted_classe
    """
    X_eval = preprocessor.transform(eval_df)
    predicted = model.predict(X_eval)

    if case_column in eval_df.columns:
        cases = eval_df[case_column].to_numpy()
    else:
        cases = np.arange(1, len(eval_df) + 1)

    if user_column in eval_df.columns:
        users = eval_df[user_column].astype(str).to_numpy()
    else:
        users = np.full(len(eval_df), "", dtype=object)

    predictions = pd.DataFrame({
        'case': cases,
        'user_name': users,
        'predicted_classe': [str(label) for label in predicted]
    }, columns=PREDICTION_COLUMNS)

    logger.info(f"Predicted {len(predictions)} evaluation rows with {model.name}")
    return predictions


def export_predictions(
    predictions: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = False
) -> str:
    """
    Export predictions to CSV file.

    Args:
        predictions: Prediction table
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"predictions_{timestamp}.csv"
    else:
        filename = "predictions.csv"

    filepath = output_path / filename
    predictions.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def write_answer_files(predictions: pd.DataFrame, output_dir: str) -> List[str]:
    """
    Write one ``problem_id_<case>.txt`` file per prediction containing only
    the predicted class.

    Args:
        predictions: Prediction table
        output_dir: Directory for the answer files

    Returns:
        Paths of the written files, in table order
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for case, label in zip(predictions['case'], predictions['predicted_classe']):
        path = output_dir / f"problem_id_{case}.txt"
        path.write_text(str(label))
        paths.append(str(path))

    logger.info(f"Wrote {len(paths)} answer files to {output_dir}")
    return paths


def run_final_prediction(
    model: ExerciseClassifier,
    preprocessor: SensorPreprocessor,
    eval_df: pd.DataFrame,
    config: Dict[str, Any],
    X_full: Optional[pd.DataFrame] = None,
    y_full: Optional[pd.Series] = None
) -> Dict[str, Any]:
    """
    Execute the complete final prediction workflow.

    This function:
    1. Optionally refits the selected model on all labelled rows
    2. Predicts the evaluation rows
    3. Exports the prediction table and answer files

    Args:
        model: Selected trained model
        preprocessor: Fitted preprocessor
        eval_df: Raw evaluation rows
        config: Configuration dictionary
        X_full: All cleaned, scaled labelled rows (needed for refit)
        y_full: Labels for X_full

    Returns:
        Dictionary containing predictions and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING FINAL PREDICTION")
    logger.info("=" * 60)

    data_config = config.get('data', {})
    prediction_config = config.get('prediction', {})
    output_config = config.get('output', {})

    refit = prediction_config.get('refit_on_full_data', False)
    if refit:
        if X_full is None or y_full is None:
            raise ValueError("refit_on_full_data requires X_full and y_full")
        logger.info(f"Refitting {model.name} on all {len(X_full)} labelled rows...")
        model.refit(X_full, y_full)

    predictions = predict_evaluation_set(
        model,
        preprocessor,
        eval_df,
        case_column=data_config.get('case_column', 'problem_id'),
        user_column=data_config.get('user_column', 'user_name')
    )

    csv_path = export_predictions(predictions, output_config.get('predictions_path', 'data/predictions/'))

    answer_paths = []
    if prediction_config.get('write_answer_files', True):
        answer_paths = write_answer_files(
            predictions,
            output_config.get('answers_path', 'data/predictions/answers/')
        )

    result = {
        'predictions': predictions,
        'model_name': model.name,
        'refit': bool(refit),
        'csv_path': csv_path,
        'answer_paths': answer_paths
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Model: {model.name}")
    logger.info(f"  Class counts: {predictions['predicted_classe'].value_counts().sort_index().to_dict()}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    predictions = result['predictions']

    print("\n" + "=" * 50)
    print(f"PREDICTION RESULTS - {result['model_name']}")
    print("=" * 50)
    print(f"\n{'Case':<8} {'User':<15} {'Predicted classe':<18}")
    print("-" * 50)

    for _, row in predictions.iterrows():
        print(f"{str(row['case']):<8} {row['user_name']:<15} {row['predicted_classe']:<18}")

    print("-" * 50)
    print(f"\nPredictions exported to: {result['csv_path']}")
    if result['answer_paths']:
        print(f"Answer files written: {len(result['answer_paths'])}")
    print("=" * 50 + "\n")
