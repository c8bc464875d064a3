"""
Forest Packing RerF - Main Interface

This module exposes the entry points of the package: growing a forest from
a matrix or a CSV file, packing it into bins, and predicting with the
packed forest. fp_rerf takes every growth option as a keyword argument.
"""

import logging
import math
from typing import Optional

import numpy as np

from .forest_components.config import ForestConfig, ForestType
from .forest_components.exceptions import InvalidConfigError
from .forest_components.forest_packer import ForestPacker
from .forest_components.packed_forest import PackedForest
from .forest_components.randomer_forest import RandomerForest
from ..utils.data_loading import load_csv_dataset

logger = logging.getLogger(__name__)

DEFAULT_PACKED_FOREST_PATH = "forest.out"


def grow_forest_from_matrix(features, labels, config: Optional[ForestConfig] = None, **kwargs) -> RandomerForest:
    """
    Grow a forest on an in-memory dataset

    Parameters:
    -----------
    features : array-like, shape=(n_samples, n_features)
    labels : array-like, shape=(n_samples,)
        Integer class labels
    config : ForestConfig, optional
    **kwargs : dict
        RandomerForest options (e.g. keep_node_samples)

    Returns:
    --------
    forest : RandomerForest

    Raises:
    -------
    InvalidConfigError
        Before any data is read, if the configuration is invalid
    DimensionMismatchError
        If features and labels have different row counts
    """
    forest = RandomerForest(config, **kwargs)
    return forest.fit(features, labels)


def grow_forest_from_file(path: str, label_column_index: Optional[int], config: Optional[ForestConfig] = None, **kwargs) -> RandomerForest:
    """
    Grow a forest on a headerless CSV file

    Parameters:
    -----------
    path : str
        CSV file with one sample per row
    label_column_index : int
        0-based index of the label column
    config : ForestConfig, optional

    Returns:
    --------
    forest : RandomerForest
    """
    forest = RandomerForest(config, **kwargs)
    forest.config.validate()
    X, y = load_csv_dataset(path, label_column_index)
    logger.info("loaded %d samples with %d features from %s", X.shape[0], X.shape[1], path)
    return forest.fit(X, y)


def pack_forest(
    forest: RandomerForest,
    num_tree_bins: Optional[int] = None,
    output_path: str = DEFAULT_PACKED_FOREST_PATH,
    features=None,
    verify: bool = True,
) -> PackedForest:
    """
    Pack a grown forest into num_tree_bins bins and save it

    Parameters:
    -----------
    forest : RandomerForest
        A fitted forest
    num_tree_bins : int, optional
        Defaults to the forest's numTreeBins (itself defaulting to numCores)
    output_path : str
        Packed forest file, "forest.out" by default
    features : array-like, optional
        Samples used to order nodes by traversal frequency (defaults to the
        training matrix)
    verify : bool
        Check that the packed layout reaches the same leaves

    Returns:
    --------
    packed : PackedForest
    """
    if num_tree_bins is None:
        num_tree_bins = forest.config.num_tree_bins
        if num_tree_bins is None:
            num_tree_bins = forest.config.num_cores
    packer = ForestPacker(num_tree_bins, output_path=output_path, verify=verify)
    return packer.pack(forest, features=features)


def load_packed_forest(path: str = DEFAULT_PACKED_FOREST_PATH) -> PackedForest:
    return PackedForest.load(path)


def predict(packed_forest: PackedForest, features) -> np.ndarray:
    """
    Classify samples with a packed forest

    Parameters:
    -----------
    packed_forest : PackedForest or str
        A packed forest, or the path of a packed forest file
    features : array-like, shape=(n_samples, n_features)
        Must have the training dimensionality

    Returns:
    --------
    labels : np.ndarray, shape=(n_samples,)
    """
    if isinstance(packed_forest, str):
        packed_forest = PackedForest.load(packed_forest)
    return packed_forest.predict(features)


def fp_rerf(
    X=None,
    Y=None,
    csv_file_name: Optional[str] = None,
    column_with_y: Optional[int] = None,
    max_depth: float = math.inf,
    min_parent: int = 1,
    num_trees_in_forest: int = 500,
    num_cores: int = 1,
    num_tree_bins: Optional[int] = None,
    forest_type: str = ForestType.BINNED_BASE_RERF.value,
    node_size_to_bin: Optional[int] = None,
    node_size_bin: Optional[int] = None,
    mtry: Optional[int] = None,
    mtry_mult: Optional[float] = None,
    seed: Optional[int] = None,
    image_height: Optional[int] = None,
    image_width: Optional[int] = None,
    patch_height_max: Optional[int] = None,
    patch_height_min: int = 1,
    patch_width_max: Optional[int] = None,
    patch_width_min: int = 1,
) -> RandomerForest:
    """
    Grow a forest from a matrix or a CSV file in a single call

    Either X and Y, or csv_file_name and column_with_y, must be given.
    Patch maxima default to the image dimensions.

    Returns:
    --------
    forest : RandomerForest
        Pass it to pack_forest to produce forest.out
    """
    config = ForestConfig(
        forest_type=forest_type,
        num_trees_in_forest=num_trees_in_forest,
        max_depth=max_depth,
        min_parent=min_parent,
        num_cores=num_cores,
        num_tree_bins=num_tree_bins if num_tree_bins is not None else num_cores,
        node_size_to_bin=node_size_to_bin,
        node_size_bin=node_size_bin,
        mtry=mtry,
        mtry_mult=mtry_mult,
        seed=seed,
        image_height=image_height,
        image_width=image_width,
        patch_height_min=patch_height_min,
        patch_height_max=patch_height_max,
        patch_width_min=patch_width_min,
        patch_width_max=patch_width_max,
    )

    if (X is None) != (Y is None):
        raise InvalidConfigError("X and Y must be set or both must be None.")
    if X is not None:
        return grow_forest_from_matrix(X, Y, config)
    if csv_file_name is not None:
        return grow_forest_from_file(csv_file_name, column_with_y, config)
    raise InvalidConfigError("no input provided.")
