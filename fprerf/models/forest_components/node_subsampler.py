"""
Stratified Node Subsampler

Large nodes search for their split on a class-stratified subsample of
fixed size. The chosen split is still applied to every sample of the node.
"""

import numpy as np
from typing import Optional


class StratifiedNodeSubsampler:
    """
    Attributes:
    -----------
    node_size_to_bin : int or None
        Nodes with more samples than this are subsampled
    node_size_bin : int or None
        Size of the subsample
    """

    def __init__(self, node_size_to_bin: Optional[int] = None, node_size_bin: Optional[int] = None):
        self.node_size_to_bin = node_size_to_bin
        self.node_size_bin = node_size_bin

    @property
    def active(self) -> bool:
        return self.node_size_to_bin is not None and self.node_size_bin is not None

    def class_quotas(self, counts: np.ndarray) -> np.ndarray:
        """
        Proportional number of samples to keep per class

        Quotas are floored shares of node_size_bin; the remaining slots go to
        the classes with the largest fractional remainders (smallest class
        index first on ties). No quota exceeds its class size.
        """
        total = counts.sum()
        exact = counts * (self.node_size_bin / total)
        quotas = np.minimum(np.floor(exact).astype(np.int64), counts)
        remaining = self.node_size_bin - quotas.sum()
        if remaining > 0:
            remainders = np.where(quotas < counts, exact - quotas, -np.inf)
            order = np.argsort(-remainders, kind="stable")
            for class_idx in order:
                if remaining == 0:
                    break
                if quotas[class_idx] < counts[class_idx]:
                    quotas[class_idx] += 1
                    remaining -= 1
        return quotas

    def subsample(self, positions: np.ndarray, labels: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """
        Draw the split-search sample of a node

        Parameters:
        -----------
        positions : array-like, shape=(n_node,)
            Sample positions of the node
        labels : array-like, shape=(n_node,)
            Encoded class label of every position
        rng : np.random.Generator

        Returns:
        --------
        evaluation_positions : array-like
            Sorted subsample of positions, or positions itself when the node
            does not exceed node_size_to_bin
        """
        if not self.active or positions.shape[0] <= self.node_size_to_bin:
            return positions

        classes, counts = np.unique(labels, return_counts=True)
        quotas = self.class_quotas(counts)

        chosen = []
        for class_label, quota in zip(classes, quotas):
            members = positions[labels == class_label]
            if quota >= members.shape[0]:
                chosen.append(members)
            elif quota > 0:
                chosen.append(rng.choice(members, size=int(quota), replace=False))
        return np.sort(np.concatenate(chosen))
