"""
Model Evaluation Module
=======================

Scores the trained classifiers and picks the one used for final predictions.

Features:
    - Accuracy with exact binomial confidence interval and no-information rate
    - Cohen's kappa and per-class statistics from the confusion matrix
    - In-sample / out-of-sample model comparison table
    - Confusion matrix and model comparison plots
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix

from .model import ExerciseClassifier

logger = logging.getLogger(__name__)


def calculate_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Optional[List[str]] = None,
    confidence_level: float = 0.95
) -> Dict[str, Any]:
    """
    Calculate classification metrics.

    Args:
        y_true: Ground truth labels
        y_pred: Predicted labels
        labels: Class order for the confusion matrix (default: sorted union)
        confidence_level: Confidence level of the accuracy interval

    Returns:
        Dictionary containing overall and per-class metrics
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)

    if labels is None:
        labels = sorted(set(y_true.tolist()) | set(y_pred.tolist()))
    labels = list(labels)

    n = len(y_true)
    if n == 0:
        raise ValueError("No samples to score")

    cm = confusion_matrix(y_true, y_pred, labels=labels)
    correct = int(np.trace(cm))
    accuracy = correct / n

    ci = stats.binomtest(correct, n).proportion_ci(confidence_level=confidence_level, method='exact')

    class_counts = cm.sum(axis=1)
    no_information_rate = float(class_counts.max() / n)
    nir_p_value = float(
        stats.binomtest(correct, n, p=no_information_rate, alternative='greater').pvalue
    ) if 0 < no_information_rate < 1 else 1.0

    per_class = {}
    for i, label in enumerate(labels):
        tp = cm[i, i]
        fn = cm[i, :].sum() - tp
        fp = cm[:, i].sum() - tp
        tn = cm.sum() - tp - fn - fp

        sensitivity = tp / (tp + fn) if (tp + fn) else float('nan')
        specificity = tn / (tn + fp) if (tn + fp) else float('nan')

        per_class[str(label)] = {
            'sensitivity': float(sensitivity),
            'specificity': float(specificity),
            'pos_pred_value': float(tp / (tp + fp)) if (tp + fp) else float('nan'),
            'neg_pred_value': float(tn / (tn + fn)) if (tn + fn) else float('nan'),
            'prevalence': float((tp + fn) / n),
            'balanced_accuracy': float((sensitivity + specificity) / 2),
            'support': int(tp + fn)
        }

    return {
        'overall': {
            'accuracy': float(accuracy),
            'accuracy_ci_lower': float(ci.low),
            'accuracy_ci_upper': float(ci.high),
            'confidence_level': confidence_level,
            'no_information_rate': no_information_rate,
            'p_value_acc_greater_nir': nir_p_value,
            'kappa': float(cohen_kappa_score(y_true, y_pred, labels=labels)),
            'error_rate': float(1.0 - accuracy),
            'n_samples': int(n)
        },
        'per_class': per_class,
        'labels': [str(label) for label in labels],
        'confusion_matrix': cm.tolist()
    }


def compare_models(
    models: Dict[str, ExerciseClassifier],
    X_train: pd.DataFrame,
    y_train: pd.Series,
    X_valid: pd.DataFrame,
    y_valid: pd.Series
) -> Tuple[pd.DataFrame, Dict[str, Dict[str, Any]]]:
    """
    Score every model in-sample and out-of-sample.

    Args:
        models: Trained models by name
        X_train, y_train: Training partition
        X_valid, y_valid: Validation partition

    Returns:
        Tuple of (comparison table in model order, validation metrics by model)
    """
    rows = []
    metrics_by_model = {}

    for name, model in models.items():
        in_sample = accuracy_score(y_train, model.predict(X_train))
        metrics = calculate_metrics(y_valid, model.predict(X_valid), labels=list(model.classes_))
        metrics_by_model[name] = metrics

        rows.append({
            'model': name,
            'estimator': model.spec.estimator,
            'cv_accuracy': model.cv_accuracy,
            'in_sample_accuracy': float(in_sample),
            'out_of_sample_accuracy': metrics['overall']['accuracy'],
            'out_of_sample_error': metrics['overall']['error_rate'],
            'kappa': metrics['overall']['kappa'],
            'fit_seconds': model.training_info.get('training_duration_seconds'),
            'best_params': json.dumps(model.best_params, default=str) if model.best_params else ''
        })

        logger.info(
            f"{name}: in-sample {in_sample:.4f}, out-of-sample {metrics['overall']['accuracy']:.4f}"
        )

    return pd.DataFrame(rows), metrics_by_model


def select_best_model(comparison: pd.DataFrame) -> str:
    """
    Pick the model with the highest out-of-sample accuracy.

    Ties are broken by cross-validated accuracy, then by table order.
    """
    if comparison.empty:
        raise ValueError("No models to select from")

    ranked = comparison.assign(_order=np.arange(len(comparison))).sort_values(
        ['out_of_sample_accuracy', 'cv_accuracy', '_order'],
        ascending=[False, False, True]
    )
    return str(ranked.iloc[0]['model'])


def plot_confusion_matrix(
    metrics: Dict[str, Any],
    title: str = "Confusion Matrix",
    normalize: bool = False,
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot a confusion matrix heatmap (rows = reference, columns = prediction).

    Args:
        metrics: Metrics dictionary from calculate_metrics
        title: Plot title
        normalize: Show row proportions instead of counts
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    cm = np.asarray(metrics['confusion_matrix'], dtype=float)
    labels = metrics['labels']

    if normalize:
        row_sums = cm.sum(axis=1, keepdims=True)
        cm = np.divide(cm, row_sums, out=np.zeros_like(cm), where=row_sums > 0)

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        cm,
        annot=True,
        fmt='.2f' if normalize else '.0f',
        cmap='Blues',
        xticklabels=labels,
        yticklabels=labels,
        cbar=False,
        square=True,
        linewidths=0.5,
        ax=ax
    )
    ax.set_xlabel('Predicted')
    ax.set_ylabel('Reference')
    accuracy = metrics['overall']['accuracy']
    ax.set_title(f'{title}\nAccuracy={accuracy:.4f}', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def plot_model_comparison(
    comparison: pd.DataFrame,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of cross-validated, in-sample and out-of-sample accuracy.

    Args:
        comparison: Table from compare_models
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    long = comparison.melt(
        id_vars='model',
        value_vars=['cv_accuracy', 'in_sample_accuracy', 'out_of_sample_accuracy'],
        var_name='measure',
        value_name='accuracy'
    )
    long['measure'] = long['measure'].str.replace('_', ' ')

    fig, ax = plt.subplots(figsize=figsize)
    sns.barplot(data=long, x='model', y='accuracy', hue='measure', ax=ax)
    ax.set_ylim(max(0.0, long['accuracy'].min() - 0.1), 1.02)
    ax.set_xlabel('Model')
    ax.set_ylabel('Accuracy')
    ax.set_title('Model Accuracy Comparison', fontsize=14, fontweight='bold')
    ax.tick_params(axis='x', rotation=30)
    ax.legend(loc='lower right', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Model comparison plot saved to {save_path}")

    return fig


def plot_feature_importances(
    model: ExerciseClassifier,
    top_n: int = 20,
    figsize: Tuple[int, int] = (10, 7),
    save_path: Optional[str] = None
) -> Optional[plt.Figure]:
    """Horizontal bar chart of the model's most important features."""
    importances = model.get_feature_importances()
    if importances.empty:
        return None

    top = importances.head(top_n).iloc[::-1]
    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(top.index, top.values, color='steelblue', alpha=0.8)
    ax.set_xlabel('Importance')
    ax.set_title(f'Top {len(top)} Features - {model.name}', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature importance plot saved to {save_path}")

    return fig


def evaluate_models(
    models: Dict[str, ExerciseClassifier],
    X_train: pd.DataFrame,
    y_train: pd.Series,
    X_valid: pd.DataFrame,
    y_valid: pd.Series,
    figures_dir: str = "reports/figures/",
    metrics_dir: str = "reports/metrics/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run complete model evaluation and generate all reports.

    Args:
        models: Trained models by name
        X_train, y_train: Training partition
        X_valid, y_valid: Validation partition
        figures_dir: Directory for figures
        metrics_dir: Directory for the metrics JSON
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing the comparison table, the best model name,
        per-model metrics and file paths
    """
    figures_dir = Path(figures_dir)
    metrics_dir = Path(metrics_dir)
    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION")
    logger.info("=" * 60)

    comparison, metrics_by_model = compare_models(models, X_train, y_train, X_valid, y_valid)
    best_name = select_best_model(comparison)
    best_metrics = metrics_by_model[best_name]

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump({
            'best_model': best_name,
            'comparison': comparison.to_dict(orient='records'),
            'models': metrics_by_model
        }, f, indent=2, default=str)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []

    logger.info("Generating model comparison plot...")
    plot_model_comparison(comparison, save_path=str(figures_dir / "eval_model_comparison.png"))
    figures.append("eval_model_comparison.png")

    logger.info("Generating confusion matrix for best model...")
    plot_confusion_matrix(
        best_metrics,
        title=f"Confusion Matrix - {best_name} (validation)",
        save_path=str(figures_dir / "eval_confusion_matrix.png")
    )
    figures.append("eval_confusion_matrix.png")

    fig = plot_feature_importances(
        models[best_name],
        save_path=str(figures_dir / "eval_feature_importances.png")
    )
    if fig is not None:
        figures.append("eval_feature_importances.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'comparison': comparison,
        'best_model': best_name,
        'best_metrics': best_metrics,
        'metrics': metrics_by_model,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Best model: {best_name}")
    logger.info(f"  Out-of-sample accuracy: {best_metrics['overall']['accuracy']:.4f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(result: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        result: Result dictionary from evaluate_models
    """
    comparison = result['comparison']
    best = result['best_metrics']['overall']

    print("\n" + "=" * 78)
    print("MODEL EVALUATION REPORT")
    print("=" * 78)
    print(f"{'Model':<24} {'CV Acc':<10} {'In-sample':<12} {'Out-of-sample':<15} {'Kappa':<10}")
    print("-" * 78)

    for _, row in comparison.iterrows():
        marker = " *" if row['model'] == result['best_model'] else ""
        print(f"{row['model']:<24} {row['cv_accuracy']:<10.4f} {row['in_sample_accuracy']:<12.4f} "
              f"{row['out_of_sample_accuracy']:<15.4f} {row['kappa']:<10.4f}{marker}")

    print("-" * 78)
    print(f"\nBest model: {result['best_model']}")
    print(f"  • Accuracy: {best['accuracy']:.4f} "
          f"({best['confidence_level'] * 100:.0f}% CI {best['accuracy_ci_lower']:.4f} - {best['accuracy_ci_upper']:.4f})")
    print(f"  • Expected out-of-sample error: {best['error_rate'] * 100:.2f}%")
    print(f"  • No information rate: {best['no_information_rate']:.4f}")
    print(f"  • Kappa: {best['kappa']:.4f}")
    print("=" * 78 + "\n")
