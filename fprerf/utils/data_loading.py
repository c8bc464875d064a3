"""
Data Loading Utilities

Reads the headerless CSV files accepted by grow_forest_from_file.
"""

import os
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from ..models.forest_components.exceptions import InvalidConfigError


def load_csv_dataset(csv_file_name: str, column_with_y: Optional[int]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a headerless CSV file into features and labels

    Parameters:
    -----------
    csv_file_name : str
        Path of a headerless, comma separated file of numbers
    column_with_y : int
        0-based index of the column holding the class labels

    Returns:
    --------
    X : np.ndarray, shape=(n_samples, n_columns - 1)
        Every other column, in file order
    y : np.ndarray, shape=(n_samples,)
    """
    if not os.path.isfile(csv_file_name):
        raise FileNotFoundError(f"file does not exist: {csv_file_name}")
    if column_with_y is None:
        raise InvalidConfigError("columnWithY cannot be None when using CSV.")

    data = pd.read_csv(csv_file_name, header=None)
    n_columns = data.shape[1]
    if not 0 <= column_with_y < n_columns:
        raise InvalidConfigError(f"columnWithY {column_with_y} is out of bounds for a file with {n_columns} columns")
    if n_columns < 2:
        raise InvalidConfigError("the CSV file needs at least one feature column besides the labels")

    y = data.iloc[:, column_with_y].to_numpy()
    X = data.drop(columns=data.columns[column_with_y]).to_numpy(dtype=np.float64)
    return X, y
