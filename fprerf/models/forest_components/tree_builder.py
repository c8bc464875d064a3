"""
Tree Builder

This module handles the construction of a single classification tree:
stopping rules, candidate evaluation, threshold search and partitioning.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .candidate_sampler import CandidateSampler
from .data_transforms import IMPURITY_FUNCTIONS, class_counts, majority_label
from .node_subsampler import StratifiedNodeSubsampler
from .split_functions import SplitFunction
from .tree_node import Tree, TreeNode

logger = logging.getLogger(__name__)

# Gains at or below this are treated as no improvement
MIN_IMPURITY_DECREASE = 1e-12


class TreeBuilder:
    """
    Grows one tree

    Attributes:
    -----------
    sampler : CandidateSampler
        Source of candidate split functions
    n_classes : int
        Number of encoded classes
    max_depth : int or None
        Maximum depth (None for unlimited)
    min_parent : int
        Nodes with at most this many samples become leaves
    subsampler : StratifiedNodeSubsampler
        Optional stratified subsampling of large nodes
    criterion : str
        "gini" or "entropy"
    keep_samples : bool
        Store the sample positions on every node
    """

    def __init__(
        self,
        sampler: CandidateSampler,
        n_classes: int,
        max_depth: Optional[int] = None,
        min_parent: int = 1,
        subsampler: Optional[StratifiedNodeSubsampler] = None,
        criterion: str = "gini",
        keep_samples: bool = False,
    ):
        self.sampler = sampler
        self.n_classes = n_classes
        self.max_depth = max_depth
        self.min_parent = min_parent
        self.subsampler = subsampler if subsampler is not None else StratifiedNodeSubsampler()
        self.criterion = criterion
        self.impurity = IMPURITY_FUNCTIONS[criterion]
        self.keep_samples = keep_samples

    def build_tree(
        self,
        X: np.ndarray,
        y: np.ndarray,
        rows: np.ndarray,
        rng: np.random.Generator,
    ) -> Tree:
        """
        Grow a tree on the given rows

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            Full training matrix (read only)
        y : array-like, shape=(n_samples,)
            Encoded class labels
        rows : array-like, shape=(n_rows,)
            Training rows of this tree (a bootstrap sample may repeat rows)
        rng : np.random.Generator
            Random stream owned by this tree

        Returns:
        --------
        tree : Tree
        """
        tree = Tree(n_classes=self.n_classes, n_features=X.shape[1])
        root = tree.add_node(depth=0)

        # Nodes refer to positions in rows, so repeated rows stay distinct
        stack: List[Tuple[TreeNode, np.ndarray]] = [(root, np.arange(rows.shape[0]))]
        while stack:
            node, positions = stack.pop()
            children = self._grow_node(tree, node, X, y, rows, positions, rng)
            if children is not None:
                (left, left_positions), (right, right_positions) = children
                stack.append((right, right_positions))
                stack.append((left, left_positions))

        logger.debug("grew tree with %d nodes, depth %d", len(tree), tree.get_depth())
        return tree

    def _grow_node(self, tree, node, X, y, rows, positions, rng):
        """
        Turn an active node into a leaf or an internal node

        Returns:
        --------
        children : tuple or None
            ((left_node, left_positions), (right_node, right_positions)) for
            an internal node, None for a leaf
        """
        node_labels = y[rows[positions]]
        counts = class_counts(node_labels, self.n_classes)
        node.n_samples = positions.shape[0]
        node.class_counts = counts
        node.label = majority_label(counts)
        if self.keep_samples:
            node.sample_positions = positions

        if self._should_stop_splitting(node.n_samples, node.depth, counts):
            node.is_leaf = True
            return None

        evaluation_positions = self.subsampler.subsample(positions, node_labels, rng)
        node.n_evaluated = evaluation_positions.shape[0]
        best_split = self._search_best_split(
            X[rows[evaluation_positions]], y[rows[evaluation_positions]], rng
        )

        if best_split is None:
            # Degenerate node: no candidate reduces impurity
            node.is_leaf = True
            return None

        split, threshold, gain = best_split
        node.split = split
        node.threshold = threshold
        node.impurity_decrease = gain

        go_left = split.project(X[rows[positions]]) <= threshold
        left = tree.add_node(depth=node.depth + 1)
        right = tree.add_node(depth=node.depth + 1)
        node.left = left.node_id
        node.right = right.node_id
        return (left, positions[go_left]), (right, positions[~go_left])

    def _should_stop_splitting(self, n_samples: int, depth: int, counts: np.ndarray) -> bool:
        return (
            n_samples <= self.min_parent
            or (self.max_depth is not None and depth >= self.max_depth)
            or np.count_nonzero(counts) <= 1
        )

    def _search_best_split(
        self,
        X_eval: np.ndarray,
        y_eval: np.ndarray,
        rng: np.random.Generator,
    ) -> Optional[Tuple[SplitFunction, float, float]]:
        """
        Evaluate every candidate of a freshly sampled pool

        The earliest candidate wins ties, and within a candidate the lowest
        cut point wins ties. Further pools are drawn only while no candidate
        has reduced impurity.

        Returns:
        --------
        best_split : tuple or None
            (split function, threshold, impurity decrease)
        """
        best = None
        best_gain = MIN_IMPURITY_DECREASE
        for pool in self.sampler.pools(rng):
            for candidate in pool:
                result = self._best_threshold(candidate.project(X_eval), y_eval)
                if result is None:
                    continue
                threshold, gain = result
                if gain > best_gain:
                    best_gain = gain
                    best = (candidate, threshold, gain)
            if best is not None:
                break
        return best

    def _best_threshold(self, values: np.ndarray, labels: np.ndarray) -> Optional[Tuple[float, float]]:
        """
        Best cut point of one projection

        Samples with a non-finite projection take no part in the search.

        Returns:
        --------
        result : tuple or None
            (threshold, impurity decrease), None when no cut point exists
        """
        finite = np.isfinite(values)
        values = values[finite]
        labels = labels[finite]
        n = values.shape[0]
        if n < 2:
            return None

        order = np.argsort(values, kind="stable")
        values = values[order]
        labels = labels[order]

        distinct = values[1:] > values[:-1]
        if not np.any(distinct):
            return None

        one_hot = np.zeros((n, self.n_classes))
        one_hot[np.arange(n), labels] = 1.0
        left_counts = np.cumsum(one_hot, axis=0)[:-1]
        totals = left_counts[-1] + one_hot[-1]
        right_counts = totals - left_counts

        n_left = np.arange(1, n)
        n_right = n - n_left
        child_impurity = (n_left * self.impurity(left_counts) + n_right * self.impurity(right_counts)) / n
        gains = self.impurity(totals) - child_impurity
        gains[~distinct] = -np.inf

        cut = int(np.argmax(gains))
        low, high = values[cut], values[cut + 1]
        threshold = low / 2.0 + high / 2.0
        if not low <= threshold < high:
            threshold = low
        return float(threshold), float(gains[cut])
