"""
Data Preprocessing Module
=========================

Turns the raw sensor table into model-ready features.

Functions:
    - drop_identifier_columns: Remove row index, user, timestamp and window bookkeeping
    - sparse_columns: Find columns that are mostly missing
    - near_zero_variance: Flag nearly constant columns
    - stratified_split: Label-stratified train/validation split
    - preprocess_pipeline: Full cleaning, splitting and standardization
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
from sklearn.impute import SimpleImputer
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler
import joblib

logger = logging.getLogger(__name__)

ID_COLUMNS = [
    "X",
    "user_name",
    "raw_timestamp_part_1",
    "raw_timestamp_part_2",
    "cvtd_timestamp",
    "new_window",
    "num_window",
    "problem_id",
]


def drop_identifier_columns(df: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """Drop identifier columns that are present in the frame."""
    if columns is None:
        columns = ID_COLUMNS
    present = [col for col in columns if col in df.columns]
    return df.drop(columns=present)


def sparse_columns(df: pd.DataFrame, max_missing_fraction: float = 0.95) -> List[str]:
    """
    Find columns whose fraction of missing values exceeds a threshold.

    Args:
        df: Input frame
        max_missing_fraction: Columns with a missing fraction strictly above
            this value are reported

    Returns:
        Column names, in frame order
    """
    missing = df.isnull().mean()
    return missing[missing > max_missing_fraction].index.tolist()


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = 95 / 5,
    unique_cut: float = 10.0
) -> pd.DataFrame:
    """
    Diagnose near-zero-variance columns.

    A column is flagged when it has a single distinct value, or when the
    most common value is more than ``freq_cut`` times as frequent as the
    second most common one and distinct values make up at most
    ``unique_cut`` percent of the rows.

    Args:
        df: Input frame
        freq_cut: Cut-off for the most/second-most frequent value ratio
        unique_cut: Cut-off for the percentage of distinct values

    Returns:
        DataFrame indexed by column with freq_ratio, percent_unique,
        zero_var and nzv
    """
    rows = []
    n_rows = len(df)

    for col in df.columns:
        counts = df[col].value_counts(dropna=True)
        n_unique = len(counts)

        if n_unique > 1:
            freq_ratio = counts.iloc[0] / counts.iloc[1]
        else:
            freq_ratio = 0.0

        percent_unique = 100.0 * n_unique / n_rows if n_rows else 0.0
        zero_var = n_unique <= 1
        nzv = zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)

        rows.append({
            'column': col,
            'freq_ratio': float(freq_ratio),
            'percent_unique': float(percent_unique),
            'zero_var': bool(zero_var),
            'nzv': bool(nzv)
        })

    result = pd.DataFrame(rows, columns=['column', 'freq_ratio', 'percent_unique', 'zero_var', 'nzv'])
    return result.set_index('column')


class SensorPreprocessor:
    """
    Cleaning and scaling steps learned from the training data.

    ``fit`` learns which sensor columns survive and the imputation values;
    ``fit_scaler`` learns the centering/scaling on the training partition
    only. ``transform`` replays both on any frame with the same columns.
    """

    def __init__(
        self,
        label_column: str = "classe",
        id_columns: Optional[List[str]] = None,
        max_missing_fraction: float = 0.95,
        impute_strategy: str = "median",
        nzv_freq_cut: float = 95 / 5,
        nzv_unique_cut: float = 10.0,
        standardize: bool = True
    ):
        self.label_column = label_column
        self.id_columns = list(id_columns) if id_columns is not None else list(ID_COLUMNS)
        self.max_missing_fraction = max_missing_fraction
        self.impute_strategy = impute_strategy
        self.nzv_freq_cut = nzv_freq_cut
        self.nzv_unique_cut = nzv_unique_cut
        self.standardize = standardize

        self.imputer: Optional[SimpleImputer] = None
        self.scaler: Optional[StandardScaler] = None
        self.candidate_columns: Optional[List[str]] = None
        self.feature_columns: Optional[List[str]] = None
        self.dropped: Dict[str, List[str]] = {}
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'SensorPreprocessor':
        """
        Learn the surviving feature columns and the imputation values.

        Args:
            df: Labelled training frame

        Returns:
            Self for method chaining
        """
        features = df.drop(columns=[self.label_column], errors='ignore')

        id_dropped = [col for col in self.id_columns if col in features.columns]
        features = drop_identifier_columns(features, self.id_columns)

        non_numeric = features.select_dtypes(exclude=[np.number]).columns.tolist()
        features = features.drop(columns=non_numeric)

        sparse = sparse_columns(features, self.max_missing_fraction)
        features = features.drop(columns=sparse)
        logger.info(
            f"Dropped {len(id_dropped)} identifier, {len(non_numeric)} non-numeric "
            f"and {len(sparse)} sparse columns"
        )

        self.candidate_columns = features.columns.tolist()
        self.imputer = SimpleImputer(strategy=self.impute_strategy, keep_empty_features=True)
        imputed = pd.DataFrame(
            self.imputer.fit_transform(features),
            columns=self.candidate_columns,
            index=features.index
        )

        nzv_table = near_zero_variance(imputed, self.nzv_freq_cut, self.nzv_unique_cut)
        nzv = nzv_table.index[nzv_table['nzv']].tolist()
        self.feature_columns = [col for col in self.candidate_columns if col not in nzv]
        logger.info(f"Dropped {len(nzv)} near-zero-variance columns; {len(self.feature_columns)} features remain")

        self.dropped = {
            'identifier': id_dropped,
            'non_numeric': non_numeric,
            'sparse': sparse,
            'near_zero_variance': nzv
        }
        self.scaler = None
        self._is_fitted = True
        return self

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Select the learned feature columns and fill missing values.

        Args:
            df: Frame containing at least the learned feature columns

        Returns:
            Cleaned, unscaled feature frame
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")

        missing = [col for col in self.candidate_columns if col not in df.columns]
        if missing:
            raise ValueError(f"Input is missing {len(missing)} feature columns: {missing[:5]}")

        candidates = df[self.candidate_columns].apply(pd.to_numeric, errors='coerce')
        imputed = pd.DataFrame(
            self.imputer.transform(candidates),
            columns=self.candidate_columns,
            index=df.index
        )
        return imputed[self.feature_columns]

    def fit_scaler(self, X: pd.DataFrame) -> 'SensorPreprocessor':
        """
        Learn centering/scaling from cleaned training features.

        Args:
            X: Output of ``clean`` for the training partition

        Returns:
            Self for method chaining
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before fit_scaler. Call fit() first.")

        if self.standardize:
            self.scaler = StandardScaler()
            self.scaler.fit(X[self.feature_columns].values)
            logger.info(f"Fitted StandardScaler on {len(X)} training rows")
        return self

    def scale(self, X: pd.DataFrame) -> pd.DataFrame:
        """Apply the fitted scaler (identity when no scaler was fitted)."""
        if self.scaler is None:
            return X
        return pd.DataFrame(
            self.scaler.transform(X[self.feature_columns].values),
            columns=self.feature_columns,
            index=X.index
        )

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Clean and scale a raw frame.

        Args:
            df: Raw frame (training, validation or evaluation rows)

        Returns:
            Feature frame ready for the classifiers
        """
        return self.scale(self.clean(df))

    def get_feature_names(self) -> List[str]:
        if self.feature_columns is None:
            raise ValueError("Preprocessor must be fitted first.")
        return list(self.feature_columns)

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'label_column': self.label_column,
            'id_columns': self.id_columns,
            'max_missing_fraction': self.max_missing_fraction,
            'impute_strategy': self.impute_strategy,
            'nzv_freq_cut': self.nzv_freq_cut,
            'nzv_unique_cut': self.nzv_unique_cut,
            'standardize': self.standardize,
            'imputer': self.imputer,
            'scaler': self.scaler,
            'candidate_columns': self.candidate_columns,
            'feature_columns': self.feature_columns,
            'dropped': self.dropped,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'SensorPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded SensorPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            label_column=state['label_column'],
            id_columns=state['id_columns'],
            max_missing_fraction=state['max_missing_fraction'],
            impute_strategy=state['impute_strategy'],
            nzv_freq_cut=state['nzv_freq_cut'],
            nzv_unique_cut=state['nzv_unique_cut'],
            standardize=state['standardize']
        )
        preprocessor.imputer = state['imputer']
        preprocessor.scaler = state['scaler']
        preprocessor.candidate_columns = state['candidate_columns']
        preprocessor.feature_columns = state['feature_columns']
        preprocessor.dropped = state['dropped']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor


def stratified_split(
    X: pd.DataFrame,
    y: pd.Series,
    train_size: float = 0.7,
    random_state: Optional[int] = 1234
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Split rows into training and validation partitions, preserving the
    class proportions of ``y`` in both.

    Returns:
        Tuple of (X_train, X_valid, y_train, y_valid)
    """
    X_train, X_valid, y_train, y_valid = train_test_split(
        X, y,
        train_size=train_size,
        stratify=y,
        random_state=random_state
    )

    logger.info(
        f"Train/Validation split: {len(X_train)} train samples, {len(X_valid)} validation samples"
    )

    return X_train, X_valid, y_train, y_valid


def preprocess_pipeline(
    df: pd.DataFrame,
    label_column: str = "classe",
    id_columns: Optional[List[str]] = None,
    max_missing_fraction: float = 0.95,
    impute_strategy: str = "median",
    nzv_freq_cut: float = 95 / 5,
    nzv_unique_cut: float = 10.0,
    train_split: float = 0.7,
    standardize: bool = True,
    random_state: Optional[int] = 1234,
    save_preprocessor: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing pipeline for the labelled sensor data.

    Args:
        df: Raw labelled DataFrame
        label_column: Name of the class label
        id_columns: Identifier/bookkeeping columns to drop
        max_missing_fraction: Sparse column threshold
        impute_strategy: SimpleImputer strategy for remaining gaps
        nzv_freq_cut: Near-zero-variance frequency ratio cut-off
        nzv_unique_cut: Near-zero-variance percent-unique cut-off
        train_split: Fraction of rows in the training partition
        standardize: Whether to center and scale the features
        random_state: Seed for the split
        save_preprocessor: Path to save the fitted preprocessor

    Returns:
        Dictionary containing:
            - X_train, X_valid, y_train, y_valid: Split datasets
            - X_full, y_full: All cleaned rows, scaled with the training scaler
            - preprocessor: Fitted SensorPreprocessor
            - feature_names: Names of retained features
            - dropped: Column names removed at each step
    """
    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING")
    logger.info("=" * 60)

    if label_column not in df.columns:
        raise ValueError(f"Label column '{label_column}' not found")

    preprocessor = SensorPreprocessor(
        label_column=label_column,
        id_columns=id_columns,
        max_missing_fraction=max_missing_fraction,
        impute_strategy=impute_strategy,
        nzv_freq_cut=nzv_freq_cut,
        nzv_unique_cut=nzv_unique_cut,
        standardize=standardize
    )

    preprocessor.fit(df)
    X = preprocessor.clean(df)
    y = df[label_column].astype(str)

    X_train, X_valid, y_train, y_valid = stratified_split(
        X, y, train_size=train_split, random_state=random_state
    )

    preprocessor.fit_scaler(X_train)
    X_train = preprocessor.scale(X_train)
    X_valid = preprocessor.scale(X_valid)

    if save_preprocessor:
        preprocessor.save(save_preprocessor)

    result = {
        'X_train': X_train,
        'X_valid': X_valid,
        'y_train': y_train,
        'y_valid': y_valid,
        'X_full': preprocessor.scale(X),
        'y_full': y,
        'preprocessor': preprocessor,
        'feature_names': preprocessor.get_feature_names(),
        'dropped': preprocessor.dropped
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Validation samples: {len(X_valid)}")
    logger.info(f"  Features per sample: {X_train.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    preprocessor = result['preprocessor']

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    for step, columns in result['dropped'].items():
        print(f"Dropped ({step.replace('_', ' ')}): {len(columns)}")
    print(f"\nFeatures retained: {len(result['feature_names'])}")
    print(f"Training samples: {result['X_train'].shape[0]}")
    print(f"Validation samples: {result['X_valid'].shape[0]}")
    print(f"Standardized: {preprocessor.scaler is not None}")
    print("\nClass counts (train):")
    for label, count in result['y_train'].value_counts().sort_index().items():
        print(f"  {label}: {count}")
    print("=" * 50 + "\n")
