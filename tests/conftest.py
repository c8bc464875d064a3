"""Pytest configuration: puts the repository root on the import path and
provides the datasets shared by the tests."""

import os
import sys

import numpy as np
import pytest


def _add_root_to_path() -> None:
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if root not in sys.path:
        sys.path.insert(0, root)


_add_root_to_path()


@pytest.fixture(scope="session")
def iris_data():
    from sklearn.datasets import load_iris

    iris = load_iris()
    return iris.data.astype(np.float64), iris.target.astype(np.int64)


@pytest.fixture(scope="session")
def continuous_data():
    """300 x 6 samples with continuous (tie free) features and 3 classes."""
    from fprerf.utils.model_interface import generate_classification_data

    X_train, y_train, X_test, y_test = generate_classification_data(
        n_samples=400, n_features=6, n_classes=3, test_size=0.25, random_state=7
    )
    return X_train, y_train, X_test, y_test


@pytest.fixture(scope="session")
def digits_data():
    """8x8 digit images, a small subset for the structured variant."""
    from sklearn.datasets import load_digits

    digits = load_digits()
    return digits.data[:300].astype(np.float64), digits.target[:300].astype(np.int64)
