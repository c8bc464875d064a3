"""
Forest type comparison experiment

Grows every forest type on a few datasets, packs the result, and compares
accuracy and timings with scikit-learn's RandomForestClassifier. Results are
printed as a table and saved as CSV/JSON.
"""

import argparse
import json
import os
import time
from typing import Dict, List

import numpy as np
import pandas as pd
from sklearn.datasets import load_digits, load_iris
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score

from ..models.forest_components.config import ForestType
from ..utils.model_interface import compare_forest_types, generate_classification_data


def _split(X: np.ndarray, y: np.ndarray, test_size: float, random_state: int):
    rng = np.random.default_rng(random_state)
    order = rng.permutation(X.shape[0])
    n_test = int(X.shape[0] * test_size)
    test, train = order[:n_test], order[n_test:]
    return X[train], y[train], X[test], y[test]


def load_datasets(random_state: int = 42) -> Dict[str, Dict]:
    """
    Datasets of the experiment; digits doubles as the S-RerF image dataset

    Returns:
    --------
    datasets : dict
        name -> dict(data=(X_train, y_train, X_test, y_test), image_shape)
    """
    iris = load_iris()
    digits = load_digits()
    return {
        'iris': {
            'data': _split(iris.data, iris.target, 0.3, random_state),
            'image_shape': None,
        },
        'digits': {
            'data': _split(digits.data, digits.target, 0.3, random_state),
            'image_shape': (8, 8),
        },
        'synthetic': {
            'data': generate_classification_data(n_samples=2000, n_features=20, n_classes=4,
                                                 test_size=0.3, random_state=random_state),
            'image_shape': None,
        },
    }


def run_sklearn_baseline(X_train, y_train, X_test, y_test, n_estimators: int, num_cores: int,
                         random_state: int) -> Dict:
    model = RandomForestClassifier(n_estimators=n_estimators, n_jobs=num_cores, random_state=random_state)
    start_time = time.time()
    model.fit(X_train, y_train)
    train_time = time.time() - start_time

    start_time = time.time()
    y_pred = model.predict(X_test)
    predict_time = time.time() - start_time

    return {
        'forest_type': 'sklearn-RF',
        'train_time': train_time,
        'predict_time': predict_time,
        'train_accuracy': float(accuracy_score(y_train, model.predict(X_train))),
        'test_accuracy': float(accuracy_score(y_test, y_pred)),
    }


def run_all_experiments(output_dir: str = "results", n_trees: int = 50, num_cores: int = 1,
                        random_state: int = 42) -> pd.DataFrame:
    """
    Run the comparison on every dataset

    Returns:
    --------
    summary : pd.DataFrame
        One row per (dataset, forest type)
    """
    os.makedirs(output_dir, exist_ok=True)
    rows: List[Dict] = []

    for name, dataset in load_datasets(random_state).items():
        print(f"\n=== Dataset: {name} ===")
        X_train, y_train, X_test, y_test = dataset['data']

        forest_types = [
            ForestType.RF_BASE.value,
            ForestType.BINNED_BASE_RERF.value,
            ForestType.BINNED_BASE_TERN.value,
        ]
        results = compare_forest_types(
            forest_types, X_train, y_train, X_test, y_test,
            num_trees_in_forest=n_trees, num_cores=num_cores, seed=random_state,
        )

        if dataset['image_shape'] is not None:
            height, width = dataset['image_shape']
            results.update(compare_forest_types(
                [ForestType.S_RERF.value], X_train, y_train, X_test, y_test,
                num_trees_in_forest=n_trees, num_cores=num_cores, seed=random_state,
                image_height=height, image_width=width, patch_height_max=4, patch_width_max=4,
            ))

        results['sklearn-RF'] = run_sklearn_baseline(
            X_train, y_train, X_test, y_test, n_trees, num_cores, random_state
        )

        for forest_type, result in results.items():
            rows.append({'dataset': name, **result})
            print(f"  {forest_type}: test accuracy {result['test_accuracy']:.4f}, "
                  f"train time {result['train_time']:.2f}s")

    summary = pd.DataFrame(rows)
    summary.to_csv(os.path.join(output_dir, "forest_comparison.csv"), index=False)
    with open(os.path.join(output_dir, "forest_comparison.json"), 'w') as f:
        json.dump(rows, f, indent=4)

    print("\n=== Summary ===")
    print(summary.to_string(index=False))
    return summary


def main():
    parser = argparse.ArgumentParser(description="Compare forest types on small benchmark datasets")
    parser.add_argument("--output-dir", default="results")
    parser.add_argument("--n-trees", type=int, default=50)
    parser.add_argument("--num-cores", type=int, default=1)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    run_all_experiments(args.output_dir, args.n_trees, args.num_cores, args.seed)


if __name__ == "__main__":
    main()
