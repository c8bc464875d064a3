"""
Data Transform Utilities

This module contains the input validation, label encoding, projection and
impurity helpers shared by tree growing, packing and prediction.
"""

import numpy as np
from typing import Optional, Sequence, Tuple
from sklearn.preprocessing import LabelEncoder

from .exceptions import DimensionMismatchError


def validate_input_data(X, y: Optional[np.ndarray] = None) -> tuple:
    """
    Validate features and (optionally) labels

    Non-finite feature values are kept; they are handled during split search.

    Parameters:
    -----------
    X : array-like, shape=(n_samples, n_features)
        Feature matrix
    y : array-like, shape=(n_samples,), optional
        Integer class labels

    Returns:
    --------
    X_validated : np.ndarray of float64
    y_validated : np.ndarray of int64 or None
    """
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise ValueError(f"X must be 2D array, got {X.ndim}D")

    if y is not None:
        y = np.asarray(y)
        if y.ndim == 2 and y.shape[1] == 1:
            y = y.ravel()
        if y.ndim != 1:
            raise ValueError(f"labels must be a 1D vector, got {y.ndim}D")
        if X.shape[0] != y.shape[0]:
            raise DimensionMismatchError(
                f"number of observations in X ({X.shape[0]}) is different from Y length ({y.shape[0]})."
            )
        if not np.issubdtype(y.dtype, np.integer):
            y_float = y.astype(np.float64)
            if not np.all(np.isfinite(y_float)) or np.any(y_float != np.round(y_float)):
                raise ValueError("labels must be integer class labels")
            y = y_float
        y = y.astype(np.int64)

    return X, y


def encode_labels(y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Map arbitrary integer labels onto 0..n_classes-1

    Returns:
    --------
    y_encoded : np.ndarray of int64
    classes : np.ndarray
        Original label of every encoded class
    """
    encoder = LabelEncoder()
    y_encoded = encoder.fit_transform(y).astype(np.int64)
    return y_encoded, encoder.classes_.astype(np.int64)


def class_counts(y: np.ndarray, n_classes: int) -> np.ndarray:
    return np.bincount(y, minlength=n_classes).astype(np.int64)


def project_rows(X: np.ndarray, features: Sequence[int], weights: Sequence[float]) -> np.ndarray:
    """
    Evaluate a sparse linear combination on every row of X

    Terms are accumulated one feature at a time in the given order, so the
    result for a row never depends on which other rows are evaluated with it.

    Parameters:
    -----------
    X : array-like, shape=(n_samples, n_features)
    features : sequence of int
        Feature indices of the combination
    weights : sequence of float
        Weight of every feature

    Returns:
    --------
    values : array-like, shape=(n_samples,)
    """
    values = X[:, features[0]] * weights[0]
    for feature, weight in zip(features[1:], weights[1:]):
        values = values + X[:, feature] * weight
    return values


def gini_impurity(counts: np.ndarray) -> np.ndarray:
    """
    Gini impurity of class count vectors

    Parameters:
    -----------
    counts : array-like, shape=(..., n_classes)

    Returns:
    --------
    impurity : array-like, shape=(...)
    """
    totals = counts.sum(axis=-1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        proportions = np.where(totals > 0, counts / totals, 0.0)
    return np.where(totals[..., 0] > 0, 1.0 - np.sum(proportions ** 2, axis=-1), 0.0)


def entropy_impurity(counts: np.ndarray) -> np.ndarray:
    """Shannon entropy (bits) of class count vectors."""
    totals = counts.sum(axis=-1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        proportions = np.where(totals > 0, counts / totals, 0.0)
        logs = np.where(proportions > 0, np.log2(proportions), 0.0)
    return -np.sum(proportions * logs, axis=-1)


IMPURITY_FUNCTIONS = {
    "gini": gini_impurity,
    "entropy": entropy_impurity,
}


def majority_label(counts: np.ndarray) -> int:
    # argmax breaks ties towards the smallest class index
    return int(np.argmax(counts))
