"""
Exploratory Data Analysis (EDA) Module
======================================

Provides analysis and visualization of the raw sensor dataset.

Functions:
    - plot_class_distribution: Bar chart of the label classes
    - plot_user_class_distribution: Class counts per participant
    - user_class_chi_square: Chi-square test of user vs. class
    - missing_value_profile: Per-column missing fraction
    - plot_missingness: Histogram of per-column missing fractions
    - plot_correlation_matrix: Correlation heatmap of sensor features
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .preprocessing import drop_identifier_columns

logger = logging.getLogger(__name__)

plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_class_distribution(
    df: pd.DataFrame,
    label_column: str = "classe",
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create a bar chart of observations per class.

    Args:
        df: Labelled DataFrame
        label_column: Name of the label column
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    counts = df[label_column].value_counts().sort_index()

    fig, ax = plt.subplots(figsize=figsize)
    sns.barplot(x=counts.index.astype(str), y=counts.values, ax=ax)

    for idx, value in enumerate(counts.values):
        ax.text(idx, value, f"{value}\n({value / counts.sum() * 100:.1f}%)",
                ha='center', va='bottom', fontsize=9)

    ax.set_xlabel(label_column)
    ax.set_ylabel('Observations')
    ax.set_title('Class Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class distribution plot saved to {save_path}")

    return fig


def plot_user_class_distribution(
    df: pd.DataFrame,
    label_column: str = "classe",
    user_column: str = "user_name",
    figsize: Tuple[int, int] = (12, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create a grouped bar chart of class counts per participant.
    """
    fig, ax = plt.subplots(figsize=figsize)
    sns.countplot(
        data=df.sort_values(label_column),
        x=user_column,
        hue=label_column,
        ax=ax
    )
    ax.set_xlabel('Participant')
    ax.set_ylabel('Observations')
    ax.set_title('Class Distribution by Participant', fontsize=14, fontweight='bold')
    ax.legend(title=label_column, fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Participant distribution plot saved to {save_path}")

    return fig


def user_class_chi_square(
    df: pd.DataFrame,
    label_column: str = "classe",
    user_column: str = "user_name"
) -> Dict[str, Any]:
    """
    Chi-square test of independence between participant and class.

    Args:
        df: Labelled DataFrame
        label_column: Name of the label column
        user_column: Name of the participant column

    Returns:
        Dictionary with the contingency table, statistic, dof and p-value
    """
    table = pd.crosstab(df[user_column], df[label_column])
    chi2, p_value, dof, _ = stats.chi2_contingency(table)

    return {
        'contingency_table': table,
        'chi2': float(chi2),
        'dof': int(dof),
        'p_value': float(p_value)
    }


def missing_value_profile(df: pd.DataFrame) -> pd.Series:
    """Missing fraction per column, highest first."""
    return df.isnull().mean().sort_values(ascending=False)


def plot_missingness(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histogram of per-column missing fractions.

    The sensor dataset has two populations of columns: fully populated raw
    readings and window summary statistics that are almost always empty.
    """
    profile = missing_value_profile(df)

    fig, ax = plt.subplots(figsize=figsize)
    sns.histplot(profile.values, bins=20, ax=ax)
    ax.set_xlabel('Fraction of missing values')
    ax.set_ylabel('Number of columns')
    ax.set_title(
        f'Missing Values per Column ({int((profile > 0).sum())} of {len(profile)} columns incomplete)',
        fontsize=12, fontweight='bold'
    )
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Missingness plot saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for the sensor features.

    Args:
        df: DataFrame with numerical data
        columns: Columns to include (default: all numeric)
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()

    corr_matrix = df[columns].corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.1,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        xticklabels=True,
        yticklabels=True,
        ax=ax,
        vmin=-1,
        vmax=1
    )
    ax.tick_params(labelsize=6)

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def strong_correlations(corr_matrix: pd.DataFrame, threshold: float = 0.8) -> List[Dict[str, Any]]:
    """
    List feature pairs whose absolute correlation is at least ``threshold``,
    strongest first.
    """
    pairs = []
    columns = corr_matrix.columns
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            corr_val = corr_matrix.iloc[i, j]
            if abs(corr_val) >= threshold:
                pairs.append({
                    "col1": columns[i],
                    "col2": columns[j],
                    "correlation": float(corr_val)
                })
    return sorted(pairs, key=lambda x: abs(x["correlation"]), reverse=True)


def generate_eda_report(
    df: pd.DataFrame,
    output_dir: str = "reports/figures/",
    label_column: str = "classe",
    user_column: str = "user_name",
    feature_columns: Optional[List[str]] = None,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate the exploratory analysis of the labelled dataset.

    Args:
        df: Raw labelled DataFrame
        output_dir: Directory to save figures
        label_column: Name of the label column
        user_column: Name of the participant column
        feature_columns: Features for the correlation analysis
            (default: numeric columns without missing values)
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing figure names and statistics
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "figures": [],
        "class_counts": {},
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    # 1. Class balance
    logger.info("Plotting class distribution...")
    plot_class_distribution(
        df, label_column,
        save_path=str(output_dir / "01_class_distribution.png")
    )
    report["figures"].append("01_class_distribution.png")
    report["class_counts"] = {
        str(k): int(v) for k, v in df[label_column].value_counts().sort_index().items()
    }

    # 2. Participants
    if user_column in df.columns:
        logger.info("Plotting class distribution per participant...")
        plot_user_class_distribution(
            df, label_column, user_column,
            save_path=str(output_dir / "02_user_class_distribution.png")
        )
        report["figures"].append("02_user_class_distribution.png")

        independence = user_class_chi_square(df, label_column, user_column)
        report["statistics"]["user_class_chi2"] = {
            k: v for k, v in independence.items() if k != 'contingency_table'
        }
        logger.info(
            f"User vs. class chi-square: {independence['chi2']:.2f} "
            f"(dof={independence['dof']}, p={independence['p_value']:.3g})"
        )

    # 3. Missingness
    logger.info("Profiling missing values...")
    profile = missing_value_profile(df)
    plot_missingness(df, save_path=str(output_dir / "03_missingness.png"))
    report["figures"].append("03_missingness.png")
    report["statistics"]["missing"] = {
        "complete_columns": int((profile == 0).sum()),
        "incomplete_columns": int((profile > 0).sum()),
        "mostly_missing_columns": int((profile > 0.9).sum())
    }

    # 4. Correlations
    if feature_columns is None:
        numeric = drop_identifier_columns(df).select_dtypes(include=[np.number])
        feature_columns = [col for col in numeric.columns if numeric[col].notnull().all()]
    if len(feature_columns) > 1:
        logger.info(f"Computing correlation matrix over {len(feature_columns)} features...")
        _, corr_matrix = plot_correlation_matrix(
            df, columns=feature_columns,
            save_path=str(output_dir / "04_correlation_matrix.png")
        )
        report["figures"].append("04_correlation_matrix.png")
        report["strong_correlations"] = strong_correlations(corr_matrix)

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_eda_insights(report: Dict[str, Any], max_pairs: int = 10) -> None:
    """
    Print the class balance and the most strongly correlated feature pairs.

    Args:
        report: Dictionary from generate_eda_report
        max_pairs: Maximum number of correlated pairs to list
    """
    print("\n" + "=" * 50)
    print("EDA INSIGHTS")
    print("=" * 50)

    total = sum(report["class_counts"].values())
    print("\nClass balance:")
    for label, count in report["class_counts"].items():
        print(f"  • {label}: {count} ({count / total * 100:.1f}%)")

    chi2 = report["statistics"].get("user_class_chi2")
    if chi2:
        print(f"\nParticipant vs. class: chi2={chi2['chi2']:.2f}, p={chi2['p_value']:.3g}")

    pairs = report.get("strong_correlations", [])
    if pairs:
        print(f"\nStrong correlations (|r| >= 0.8): {len(pairs)} pairs")
        for item in pairs[:max_pairs]:
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f}")
    else:
        print("\nNo strongly correlated feature pairs")

    print("=" * 50 + "\n")
