"""
Decision Tree Node Implementation

This module contains the TreeNode record and the Tree that owns its nodes
in an index-addressed arena.
"""

from typing import Dict, List, Optional

import numpy as np

from .split_functions import SplitFunction, SplitKind


class TreeNode:
    """
    Node of a classification tree

    Attributes:
    -----------
    node_id : int
        Index of the node in its tree's arena
    depth : int
        Depth of the node (root = 0)
    split : SplitFunction or None
        Split applied at this node (None for leaves)
    threshold : float or None
        Samples whose projection is <= threshold go left
    left, right : int or None
        Arena indices of the children
    is_leaf : bool
    class_counts : np.ndarray
        Number of samples of each class reaching this node
    label : int
        Majority class index of the node
    n_samples : int
        Number of (in-bag) samples reaching this node
    n_evaluated : int
        Number of samples the split search was run on
    impurity_decrease : float
        Impurity reduction of the chosen split
    sample_positions : np.ndarray or None
        Bootstrap positions of the node's samples (only kept on request)
    """

    __slots__ = (
        "node_id", "depth", "split", "threshold", "left", "right", "is_leaf",
        "class_counts", "label", "n_samples", "n_evaluated", "impurity_decrease",
        "sample_positions",
    )

    def __init__(self, node_id: int = 0, depth: int = 0):
        self.node_id = node_id
        self.depth = depth
        self.split: Optional[SplitFunction] = None
        self.threshold: Optional[float] = None
        self.left: Optional[int] = None
        self.right: Optional[int] = None
        self.is_leaf = False
        self.class_counts: Optional[np.ndarray] = None
        self.label = 0
        self.n_samples = 0
        self.n_evaluated = 0
        self.impurity_decrease = 0.0
        self.sample_positions: Optional[np.ndarray] = None

    @property
    def kind(self) -> SplitKind:
        return SplitKind.LEAF if self.is_leaf else self.split.kind

    def to_log(self) -> Dict:
        log = {
            "node_id": self.node_id,
            "depth": self.depth,
            "is_leaf": self.is_leaf,
            "n_samples": self.n_samples,
            "n_evaluated": self.n_evaluated,
            "label": self.label,
            "class_counts": self.class_counts.tolist() if self.class_counts is not None else None,
        }
        if not self.is_leaf:
            log.update({
                "kind": self.split.kind.name,
                "features": list(self.split.features),
                "weights": list(self.split.weights),
                "threshold": self.threshold,
                "left": self.left,
                "right": self.right,
                "impurity_decrease": self.impurity_decrease,
            })
        return log

    def __str__(self) -> str:
        if self.is_leaf:
            return f"Leaf(id={self.node_id}, depth={self.depth}, samples={self.n_samples}, label={self.label})"
        else:
            return (
                f"Node(id={self.node_id}, depth={self.depth}, samples={self.n_samples}, "
                f"kind={self.split.kind.name}, features={list(self.split.features)}, threshold={self.threshold:.4f})"
            )

    def __repr__(self) -> str:
        return self.__str__()


class Tree:
    """
    A grown tree; nodes live in a list and reference children by index

    Node 0 is the root.
    """

    def __init__(self, n_classes: int, n_features: int):
        self.n_classes = n_classes
        self.n_features = n_features
        self.nodes: List[TreeNode] = []

    def add_node(self, depth: int) -> TreeNode:
        node = TreeNode(node_id=len(self.nodes), depth=depth)
        self.nodes.append(node)
        return node

    @property
    def root(self) -> TreeNode:
        return self.nodes[0]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def __getitem__(self, node_id: int) -> TreeNode:
        return self.nodes[node_id]

    def leaves(self) -> List[TreeNode]:
        return [node for node in self.nodes if node.is_leaf]

    def parents(self) -> np.ndarray:
        """Parent index of every node (-1 for the root)."""
        parent = np.full(len(self.nodes), -1, dtype=np.int64)
        for node in self.nodes:
            if not node.is_leaf:
                parent[node.left] = node.node_id
                parent[node.right] = node.node_id
        return parent

    def apply(self, X: np.ndarray) -> np.ndarray:
        """
        Leaf reached by every sample

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)

        Returns:
        --------
        leaf_ids : array-like, shape=(n_samples,)
        """
        leaf_ids = np.zeros(X.shape[0], dtype=np.int64)
        stack = [(0, np.arange(X.shape[0]))]
        while stack:
            node_id, rows = stack.pop()
            node = self.nodes[node_id]
            if node.is_leaf:
                leaf_ids[rows] = node_id
                continue
            go_left = node.split.project(X[rows]) <= node.threshold
            if np.any(go_left):
                stack.append((node.left, rows[go_left]))
            if not np.all(go_left):
                stack.append((node.right, rows[~go_left]))
        return leaf_ids

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Majority class index of the leaf reached by every sample."""
        leaf_labels = np.array([node.label for node in self.nodes], dtype=np.int64)
        return leaf_labels[self.apply(X)]

    def get_depth(self) -> int:
        return max(node.depth for node in self.nodes)

    def count_nodes(self) -> int:
        return len(self.nodes)

    def feature_importance(self) -> np.ndarray:
        """
        Impurity decrease of every split, spread over its features by |weight|

        Returns:
        --------
        importance : array-like, shape=(n_features,)
            Unnormalized importance
        """
        importance = np.zeros(self.n_features)
        for node in self.nodes:
            if node.is_leaf:
                continue
            weights = np.abs(np.asarray(node.split.weights))
            gain = node.impurity_decrease * node.n_samples
            np.add.at(importance, list(node.split.features), gain * weights / weights.sum())
        return importance

    def __str__(self) -> str:
        return f"Tree(nodes={len(self.nodes)}, depth={self.get_depth() if self.nodes else 0})"

    def __repr__(self) -> str:
        return self.__str__()
