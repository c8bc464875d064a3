"""
Forest interface helpers

Utilities to generate classification data and to run a forest type through
the full grow -> pack -> predict cycle while timing every stage.
"""

import os
import tempfile
import time
from typing import Dict, List, Optional, Tuple

import numpy as np
from sklearn.datasets import make_classification
from sklearn.metrics import accuracy_score

from ..models.forest_components.config import ForestConfig
from ..models.fp_rerf import grow_forest_from_matrix, pack_forest


def generate_classification_data(n_samples: int = 1000, n_features: int = 10, n_classes: int = 3,
                                 test_size: float = 0.2, random_state: Optional[int] = None) -> Tuple:
    """
    Generate a simple multi-class dataset

    Parameters:
    -----------
    n_samples : int, default=1000
    n_features : int, default=10
    n_classes : int, default=3
    test_size : float, default=0.2
        Fraction of samples held out for testing
    random_state : int, optional

    Returns:
    --------
    X_train, y_train, X_test, y_test : np.ndarray
    """
    X, y = make_classification(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=max(2, n_features // 2),
        n_redundant=0,
        n_classes=n_classes,
        n_clusters_per_class=1,
        random_state=random_state,
    )

    n_test = int(n_samples * test_size)
    n_train = n_samples - n_test

    return X[:n_train], y[:n_train], X[n_train:], y[n_train:]


def run_forest_cycle(config: ForestConfig, X_train: np.ndarray, y_train: np.ndarray,
                     X_test: np.ndarray, y_test: np.ndarray,
                     output_path: Optional[str] = None) -> Dict:
    """
    Grow, pack and evaluate one forest

    Parameters:
    -----------
    config : ForestConfig
    X_train, y_train : training data
    X_test, y_test : held-out data
    output_path : str, optional
        Where to write the packed forest (a temporary directory by default)

    Returns:
    --------
    results : dict
        Timings, accuracies of the grown and packed forests and whether
        their predictions agree
    """
    start_time = time.time()
    forest = grow_forest_from_matrix(X_train, y_train, config)
    train_time = time.time() - start_time

    with tempfile.TemporaryDirectory() as tmp_dir:
        path = output_path if output_path is not None else os.path.join(tmp_dir, "forest.out")

        start_time = time.time()
        packed = pack_forest(forest, output_path=path)
        pack_time = time.time() - start_time
        file_size = os.path.getsize(path)

    start_time = time.time()
    y_pred_forest = forest.predict(X_test)
    predict_time = time.time() - start_time

    start_time = time.time()
    y_pred_packed = packed.predict(X_test)
    packed_predict_time = time.time() - start_time

    return {
        'forest_type': config.forest_type,
        'train_time': train_time,
        'pack_time': pack_time,
        'predict_time': predict_time,
        'packed_predict_time': packed_predict_time,
        'packed_file_bytes': file_size,
        'n_nodes': packed.n_nodes,
        'train_accuracy': float(accuracy_score(y_train, forest.predict(X_train))),
        'test_accuracy': float(accuracy_score(y_test, y_pred_forest)),
        'packed_test_accuracy': float(accuracy_score(y_test, y_pred_packed)),
        'packed_agrees': bool(np.array_equal(y_pred_forest, y_pred_packed)),
    }


def compare_forest_types(forest_types: List[str], X_train: np.ndarray, y_train: np.ndarray,
                         X_test: np.ndarray, y_test: np.ndarray, **config_params) -> Dict[str, Dict]:
    """
    Run every forest type through run_forest_cycle with shared parameters

    Returns:
    --------
    results : dict
        forest type -> results of run_forest_cycle
    """
    results = {}
    for forest_type in forest_types:
        print(f"Testing {forest_type}...")
        config = ForestConfig(forest_type=forest_type, **config_params)
        results[forest_type] = run_forest_cycle(config, X_train, y_train, X_test, y_test)
    return results
