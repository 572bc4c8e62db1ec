"""
Weight Lifting Exercise Classification Report
==============================================

Classifies how a barbell lift was performed (``classe`` A-E) from
on-body accelerometer, gyroscope and magnetometer readings.

Modules:
    - data_loader: Dataset download, CSV ingestion and validation
    - eda: Exploratory Data Analysis
    - preprocessing: Column cleaning, imputation, near-zero-variance filtering,
      stratified split and standardization
    - model: Cross-validated decision tree / random forest / gradient boosting
    - evaluation: Accuracy, confusion matrices and model selection
    - prediction: Predictions for the evaluation set
    - report: Markdown report rendering
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
