"""
Data Loader Module
==================

Handles dataset download, CSV ingestion, and basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - fetch_dataset: Download a remote CSV into the raw data directory
    - load_data: Load CSV data with the dataset's missing-value markers
    - load_datasets: Fetch (or read) and load training and evaluation sets
    - validate_data: Check data quality constraints
    - get_data_summary: Generate basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
from urllib.parse import urlparse

import pandas as pd
import numpy as np
import requests
import yaml

logger = logging.getLogger(__name__)

DEFAULT_NA_VALUES = ["NA", "#DIV/0!", ""]


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def fetch_dataset(
    url: str,
    dest_dir: str = "data/raw/",
    filename: Optional[str] = None,
    force: bool = False,
    timeout: int = 60
) -> Path:
    """
    Download a remote CSV file, reusing a previously downloaded copy.

    Args:
        url: Remote location of the CSV file
        dest_dir: Directory the file is written to
        filename: Local file name (default: last path segment of the URL)
        force: Download even if the file is already present
        timeout: Request timeout in seconds

    Returns:
        Path to the local copy

    Raises:
        requests.RequestException: If the download fails
    """
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    if filename is None:
        filename = Path(urlparse(url).path).name or "dataset.csv"

    target = dest_dir / filename
    if target.exists() and not force:
        logger.info(f"Using cached copy of {url}: {target}")
        return target

    logger.info(f"Downloading {url}")
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()

    target.write_bytes(response.content)
    logger.info(f"Saved {len(response.content) / 1024:.1f} KB to {target}")
    return target


def load_data(
    file_path: str,
    na_values: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Load CSV data, mapping the dataset's missing-value markers to NaN.

    Args:
        file_path: Path to the CSV file
        na_values: Strings treated as missing (default: NA, #DIV/0!, empty)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    if na_values is None:
        na_values = DEFAULT_NA_VALUES

    df = pd.read_csv(file_path, na_values=na_values, keep_default_na=True, low_memory=False)

    # Files written by R/pandas without a header for the index
    if len(df.columns) > 0 and str(df.columns[0]).startswith("Unnamed"):
        df = df.drop(columns=df.columns[0])

    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    return df


def load_datasets(
    config: Dict[str, Any],
    training_path: Optional[str] = None,
    testing_path: Optional[str] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the training and evaluation sets, downloading them when no local
    path is given.

    Args:
        config: Configuration dictionary
        training_path: Local training CSV (overrides data.training_url)
        testing_path: Local evaluation CSV (overrides data.testing_url)

    Returns:
        Tuple of (training DataFrame, evaluation DataFrame)
    """
    data_config = config.get('data', {})
    raw_path = data_config.get('raw_path', 'data/raw/')
    timeout = data_config.get('download_timeout', 60)
    na_values = data_config.get('na_values', DEFAULT_NA_VALUES)

    if training_path is None:
        training_path = fetch_dataset(data_config['training_url'], raw_path, timeout=timeout)
    if testing_path is None:
        testing_path = fetch_dataset(data_config['testing_url'], raw_path, timeout=timeout)

    train_df = load_data(training_path, na_values=na_values)
    eval_df = load_data(testing_path, na_values=na_values)

    return train_df, eval_df


def validate_data(
    df: pd.DataFrame,
    label_column: Optional[str] = "classe",
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for classification.

    Checks:
        - The frame is not empty
        - The label column is present and fully populated
        - No duplicate rows

    Missing sensor readings are reported but are not a failure; they are
    handled during preprocessing.

    Args:
        df: DataFrame to validate
        label_column: Name of the label column (None for unlabelled data)
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": [],
        "warnings": []
    }

    if df.empty:
        issue = "Dataset is empty"
        report["issues"].append(issue)
        logger.warning(issue)

    if label_column is not None:
        if label_column not in df.columns:
            issue = f"Label column '{label_column}' not found"
            report["issues"].append(issue)
            logger.warning(issue)
        else:
            missing_labels = int(df[label_column].isnull().sum())
            if missing_labels > 0:
                issue = f"Label column '{label_column}' has {missing_labels} missing values"
                report["issues"].append(issue)
                logger.warning(issue)
            report["classes"] = df[label_column].value_counts().sort_index().to_dict()

    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        issue = f"Duplicate rows found: {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    missing_columns = int((df.isnull().sum() > 0).sum())
    if missing_columns > 0:
        report["warnings"].append(f"{missing_columns} columns contain missing values")

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    numeric = df.select_dtypes(include=[np.number])

    return {
        "shape": df.shape,
        "n_numeric_columns": numeric.shape[1],
        "n_other_columns": df.shape[1] - numeric.shape[1],
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 / 1024,
        "missing_cells": int(df.isnull().sum().sum()),
        "missing_fraction": float(df.isnull().mean().mean()) if df.size else 0.0,
        "columns_with_missing": int((df.isnull().sum() > 0).sum())
    }


def print_data_summary(df: pd.DataFrame, name: str = "DATASET") -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        name: Heading for the summary
    """
    summary = get_data_summary(df)

    print("\n" + "=" * 60)
    print(f"{name} SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {summary['memory_usage_mb']:.2f} MB")
    print(f"Numeric columns: {summary['n_numeric_columns']}")
    print(f"Other columns: {summary['n_other_columns']}")
    print(f"Columns with missing values: {summary['columns_with_missing']}")
    print(f"Missing cells: {summary['missing_cells']} ({summary['missing_fraction'] * 100:.1f}%)")
    print("=" * 60 + "\n")
