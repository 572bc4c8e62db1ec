"""
Report Module
=============

Renders the analysis as a Markdown document: data cleaning summary, model
comparison table, confusion matrix of the selected model and the final
prediction table.
"""

import logging
from pathlib import Path
from typing import Dict, Any, List
from datetime import datetime

import pandas as pd

logger = logging.getLogger(__name__)


def _escape_pipes(df: pd.DataFrame) -> pd.DataFrame:
    """Escape cell text that would otherwise split a Markdown table column."""
    df = df.copy()
    for col in df.select_dtypes(include=["object"]).columns:
        df[col] = df[col].map(lambda value: str(value).replace("|", "\\|"))
    return df


def _to_markdown(df: pd.DataFrame) -> str:
    return _escape_pipes(df).to_markdown(index=False, floatfmt=".4f")


def _confusion_table(metrics: Dict[str, Any]) -> pd.DataFrame:
    labels = metrics['labels']
    table = pd.DataFrame(metrics['confusion_matrix'], columns=labels)
    table.insert(0, 'reference \\ predicted', labels)
    return table


def _comparison_table(comparison: pd.DataFrame, best_model: str) -> pd.DataFrame:
    table = comparison[[
        'model', 'cv_accuracy', 'in_sample_accuracy',
        'out_of_sample_accuracy', 'out_of_sample_error', 'kappa', 'fit_seconds', 'best_params'
    ]].copy()
    table['model'] = [f"**{name}**" if name == best_model else name for name in table['model']]
    table.columns = [
        'Model', 'CV accuracy', 'In-sample accuracy',
        'Out-of-sample accuracy', 'Out-of-sample error', 'Kappa', 'Fit (s)', 'Selected parameters'
    ]
    return table


def render_report(context: Dict[str, Any]) -> str:
    """
    Render the report.

    Args:
        context: Dictionary with keys
            - train_shape, eval_shape: raw dataset shapes
            - class_counts: label -> count in the training data
            - dropped: cleaning step -> dropped column names
            - n_features: number of retained features
            - n_train, n_valid: partition sizes
            - comparison: table from evaluation.compare_models
            - best_model: selected model name
            - best_metrics: validation metrics of the selected model
            - predictions: table from prediction.predict_evaluation_set
            - figures: optional list of figure paths relative to the report
            - eda: optional EDA report dictionary
            - title, generated_at: optional

    Returns:
        Markdown text
    """
    title = context.get('title', 'Weight Lifting Exercise Classification')
    generated_at = context.get('generated_at') or datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    train_rows, train_cols = context['train_shape']
    eval_rows, eval_cols = context['eval_shape']
    best_model = context['best_model']
    overall = context['best_metrics']['overall']

    lines: List[str] = [
        f"# {title}",
        "",
        f"_Generated {generated_at}_",
        "",
        "## Data",
        "",
        f"- Training data: {train_rows} rows × {train_cols} columns",
        f"- Evaluation data: {eval_rows} rows × {eval_cols} columns",
    ]

    class_counts = context.get('class_counts') or {}
    if class_counts:
        total = sum(class_counts.values())
        counts = ", ".join(
            f"{label}: {count} ({count / total * 100:.1f}%)" for label, count in class_counts.items()
        )
        lines.append(f"- Class counts: {counts}")

    eda = context.get('eda') or {}
    chi2 = eda.get('statistics', {}).get('user_class_chi2')
    if chi2:
        lines.append(
            f"- Participant vs. class chi-square: {chi2['chi2']:.2f} "
            f"(dof={chi2['dof']}, p={chi2['p_value']:.3g})"
        )

    lines += ["", "## Cleaning", ""]
    for step, columns in context['dropped'].items():
        lines.append(f"- Dropped {len(columns)} {step.replace('_', ' ')} columns")
    lines += [
        f"- Retained {context['n_features']} standardized sensor features",
        f"- Stratified split: {context['n_train']} training rows, {context['n_valid']} validation rows",
        "",
        "## Model comparison",
        "",
        _to_markdown(_comparison_table(context['comparison'], best_model)),
        "",
        f"Selected model: **{best_model}** (highest out-of-sample accuracy).",
        "",
        "## Selected model on the validation partition",
        "",
        f"- Accuracy: {overall['accuracy']:.4f} "
        f"({overall['confidence_level'] * 100:.0f}% CI {overall['accuracy_ci_lower']:.4f} - "
        f"{overall['accuracy_ci_upper']:.4f})",
        f"- Expected out-of-sample error: {overall['error_rate'] * 100:.2f}%",
        f"- No information rate: {overall['no_information_rate']:.4f} "
        f"(p-value accuracy > NIR: {overall['p_value_acc_greater_nir']:.3g})",
        f"- Kappa: {overall['kappa']:.4f}",
        "",
        _to_markdown(_confusion_table(context['best_metrics'])),
        "",
        "## Predictions for the evaluation set",
        "",
        _to_markdown(context['predictions'].rename(columns={
            'case': 'Case',
            'user_name': 'User',
            'predicted_classe': 'Predicted classe'
        })),
    ]

    figures = context.get('figures') or []
    if figures:
        lines += ["", "## Figures", ""]
        for figure in figures:
            lines.append(f"![{Path(figure).stem}]({figure})")

    return "\n".join(lines) + "\n"


def write_report(context: Dict[str, Any], output_path: str = "reports/report.md") -> Path:
    """
    Render the report and write it to disk.

    Args:
        context: See render_report
        output_path: Destination file

    Returns:
        Path to the written report
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_report(context), encoding='utf-8')
    logger.info(f"Report written to {output_path}")
    return output_path


def relative_figure_paths(figures: List[str], figures_dir: str, report_path: str) -> List[str]:
    """Express figure file names relative to the report's directory."""
    figures_dir = Path(figures_dir).resolve()
    report_dir = Path(report_path).resolve().parent
    paths = []
    for figure in figures:
        target = figures_dir / figure
        try:
            paths.append(target.relative_to(report_dir).as_posix())
        except ValueError:
            paths.append(target.as_posix())
    return paths
