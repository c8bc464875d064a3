"""
Randomer Forest Module

This module contains the RandomerForest class: an ensemble of independently
grown classification trees (Random Forest, RerF or Structured RerF,
depending on the configured forest type) combined by majority vote.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from joblib import Parallel, delayed

from ..base import ForestClassifierBase
from .candidate_sampler import make_sampler
from .config import ForestConfig
from .data_transforms import encode_labels, validate_input_data
from .node_subsampler import StratifiedNodeSubsampler
from .tree_builder import TreeBuilder
from .tree_node import Tree

logger = logging.getLogger(__name__)


class RandomerForest(ForestClassifierBase):
    """
    Randomized decision forest classifier

    Trees are grown in parallel on num_cores threads. Tree i draws from its
    own random stream spawned from the global seed, so a fitted forest does
    not depend on num_cores or on scheduling order.
    """

    def __init__(self, config: Optional[ForestConfig] = None, keep_node_samples: bool = False, **kwargs):
        """
        Initialize RandomerForest

        Parameters:
        -----------
        config : ForestConfig, optional
            Forest configuration
        keep_node_samples : bool
            Keep the bootstrap rows of every tree and the sample positions
            of every node (memory heavy, meant for inspection)
        **kwargs : dict
            ForestConfig field overrides
        """
        super().__init__(config, **kwargs)
        self.keep_node_samples = keep_node_samples

        self.trees: List[Tree] = []
        self.tree_rows: List[np.ndarray] = []
        self.training_features: Optional[np.ndarray] = None

    @property
    def is_fitted(self) -> bool:
        return len(self.trees) > 0

    @property
    def n_classes(self) -> int:
        return 0 if self.classes is None else len(self.classes)

    def fit(self, X: np.ndarray, y: np.ndarray, **kwargs) -> 'RandomerForest':
        """
        Grow the forest

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            Training features; non-finite values are allowed
        y : array-like, shape=(n_samples,)
            Integer class labels

        Returns:
        --------
        self : RandomerForest
        """
        # Configuration errors surface before any data is read
        config = self._base_config.validate()

        # The fitted state is only replaced once the new trees exist
        X, y = validate_input_data(X, y)
        if X.shape[0] == 0:
            raise ValueError("at least one observation is required")

        n_samples, n_features = X.shape
        config = config.resolve(n_features)
        y_encoded, classes = encode_labels(y)

        builder = TreeBuilder(
            sampler=make_sampler(config, n_features),
            n_classes=len(classes),
            max_depth=config.max_depth,
            min_parent=config.min_parent,
            subsampler=StratifiedNodeSubsampler(config.node_size_to_bin, config.node_size_bin),
            criterion=config.criterion,
            keep_samples=self.keep_node_samples,
        )

        n_trees = config.num_trees_in_forest
        seeds = np.random.SeedSequence(config.seed).spawn(n_trees)
        logger.info(
            "growing %d %s trees on %d samples x %d features with %d cores (seed=%d)",
            n_trees, config.variant.value, n_samples, n_features, config.num_cores, config.seed,
        )

        results = Parallel(n_jobs=config.num_cores, prefer="threads")(
            delayed(self._grow_tree)(builder, X, y_encoded, seed, config.bootstrap) for seed in seeds
        )

        self.config = config
        self.classes = classes
        self.n_features = n_features
        self.trees = [tree for tree, _ in results]
        self.tree_rows = [rows for _, rows in results] if self.keep_node_samples else []
        self.training_features = X

        logger.info("grew %d trees, %d nodes in total", len(self.trees), sum(len(tree) for tree in self.trees))
        return self

    def _grow_tree(
        self,
        builder: TreeBuilder,
        X: np.ndarray,
        y: np.ndarray,
        seed: np.random.SeedSequence,
        bootstrap: bool,
    ) -> Tuple[Tree, np.ndarray]:
        rng = np.random.default_rng(seed)
        n_samples = X.shape[0]
        if bootstrap:
            rows = rng.integers(0, n_samples, size=n_samples)
        else:
            rows = np.arange(n_samples)
        return builder.build_tree(X, y, rows, rng), rows

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise ValueError("Model has not been fitted yet")

    def apply(self, X: np.ndarray) -> np.ndarray:
        """
        Leaf reached in every tree

        Returns:
        --------
        leaf_ids : array-like, shape=(n_samples, n_trees)
        """
        self._check_fitted()
        X, _ = self._validate_input(X)
        return np.column_stack([tree.apply(X) for tree in self.trees])

    def vote_counts(self, X: np.ndarray) -> np.ndarray:
        """
        Number of trees voting for every class

        Returns:
        --------
        votes : array-like, shape=(n_samples, n_classes)
        """
        self._check_fitted()
        X, _ = self._validate_input(X)
        votes = np.zeros((X.shape[0], self.n_classes), dtype=np.int64)
        rows = np.arange(X.shape[0])
        for tree in self.trees:
            np.add.at(votes, (rows, tree.predict(X)), 1)
        return votes

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Majority vote of the trees (ties go to the smallest class)

        Returns:
        --------
        labels : array-like, shape=(n_samples,)
            Predicted labels in the original label space
        """
        return self.classes[np.argmax(self.vote_counts(X), axis=1)]

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        Fraction of trees voting for every class

        Returns:
        --------
        probabilities : array-like, shape=(n_samples, n_classes)
        """
        return self.vote_counts(X) / len(self.trees)

    def get_feature_importance(self) -> np.ndarray:
        """
        Get feature importance scores

        Returns:
        --------
        feature_importance : array-like, shape=(n_features,)
            Normalized total impurity decrease credited to every feature
        """
        self._check_fitted()
        importance = np.sum([tree.feature_importance() for tree in self.trees], axis=0)
        total = np.sum(importance)
        if total > 0:
            importance = importance / total
        return importance

    def get_node_logs(self) -> List[Dict]:
        all_logs = []
        for i, tree in enumerate(self.trees):
            for node in tree:
                log = node.to_log()
                log['tree_index'] = i
                all_logs.append(log)
        return all_logs

    def save_logs_to_json(self, file_path: str) -> None:
        """
        Save node logs to JSON file

        Parameters:
        -----------
        file_path : str
            Path to save the JSON file
        """
        all_logs = self.get_node_logs()
        timestamp = datetime.now().isoformat()
        for log in all_logs:
            log['timestamp'] = timestamp

        with open(file_path, 'w') as f:
            json.dump(all_logs, f, ensure_ascii=False, indent=4)

        logger.info("node logs saved to %s", file_path)

    def get_info(self) -> Dict[str, Any]:
        info = {
            "forest_type": self.config.forest_type,
            "num_trees_in_forest": self.config.num_trees_in_forest,
            "max_depth": self.config.max_depth,
            "min_parent": self.config.min_parent,
            "seed": self.config.seed,
            "is_fitted": self.is_fitted,
        }
        if self.is_fitted:
            info.update({
                "n_features": self.n_features,
                "classes": self.classes.tolist(),
                "n_nodes": sum(tree.count_nodes() for tree in self.trees),
                "actual_depth": max(tree.get_depth() for tree in self.trees),
            })
        return info

    def print_training_summary(self) -> None:
        """
        Print training summary
        """
        print(f"\n=== RandomerForest Training Summary ===")
        print(f"Forest type: {self.config.forest_type}")
        print(f"Trees: {len(self.trees)}")
        print(f"Max depth: {self.config.max_depth if self.config.max_depth is not None else 'unlimited'}")
        print(f"Min parent: {self.config.min_parent}")
        print(f"mtry: {self.config.mtry}, mtryMult: {self.config.mtry_mult}")
        print(f"Seed: {self.config.seed}")

        if self.trees:
            node_counts = [tree.count_nodes() for tree in self.trees]
            depths = [tree.get_depth() for tree in self.trees]
            print(f"Nodes per tree - Avg: {np.mean(node_counts):.1f}, Min: {min(node_counts)}, Max: {max(node_counts)}")
            print(f"Tree depth - Avg: {np.mean(depths):.1f}, Max: {max(depths)}")
            importance = self.get_feature_importance()
            print(f"Top 5 features: {np.argsort(importance)[-5:][::-1]}")

    def __str__(self) -> str:
        if not self.is_fitted:
            return f"RandomerForest(not fitted, forest_type={self.config.forest_type})"
        return f"RandomerForest(forest_type={self.config.forest_type}, trees={len(self.trees)})"

    def __repr__(self) -> str:
        return self.__str__()
