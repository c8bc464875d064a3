"""
Forest Packer

This module turns a grown RandomerForest into a PackedForest file.

Packing streams through two transient files written next to the output:
per-node pack records (proportional to the number of nodes) and per-sample
traversal records (the leaf every training sample reaches in every tree,
proportional to the number of samples). Traversal frequencies decide the
node order: each tree is laid out depth first with the more frequently
visited child stored right after its parent. Both transient files are
removed whether packing succeeds or fails, and the output file only appears
once it is complete.
"""

import logging
import os
import tempfile
from typing import List, Optional, Tuple

import numpy as np

from .exceptions import InvalidConfigError, PackingError
from .packed_forest import NODE_DTYPE, PackedBin, PackedForest
from .split_functions import SplitKind

logger = logging.getLogger(__name__)

NODE_TEMP_PREFIX = "forestPackTempFile"
TRAVERSAL_TEMP_PREFIX = "traversalPackTempFile"

RECORD_DTYPE = np.dtype([
    ("tree", "<i4"),
    ("node", "<i4"),
    ("kind", "<i1"),
    ("left", "<i4"),
    ("right", "<i4"),
    ("threshold", "<f8"),
    ("proj_offset", "<i8"),
    ("proj_len", "<i4"),
    ("label", "<i4"),
    ("n_samples", "<i8"),
])


class ForestPacker:
    """
    Attributes:
    -----------
    num_tree_bins : int
        Number of bins the trees are split into
    output_path : str
        Location of the packed forest file
    verify : bool
        Re-traverse the training samples through the packed layout and
        check every sample reaches the same leaf as in the grown forest
    """

    def __init__(self, num_tree_bins: int, output_path: str = "forest.out", verify: bool = True):
        if num_tree_bins is None or num_tree_bins < 1:
            raise InvalidConfigError("at least one tree bin must be used.")
        self.num_tree_bins = int(num_tree_bins)
        self.output_path = output_path
        self.verify = verify

    def pack(self, forest, features: Optional[np.ndarray] = None) -> PackedForest:
        """
        Pack a grown forest and write it to output_path

        Parameters:
        -----------
        forest : RandomerForest
            A fitted forest
        features : array-like, optional
            Samples used to measure traversal frequencies (defaults to the
            forest's training matrix)

        Returns:
        --------
        packed : PackedForest
        """
        if not forest.is_fitted:
            raise ValueError("Model has not been fitted yet")

        n_trees = len(forest.trees)
        if self.num_tree_bins > n_trees:
            logger.warning("%d bins for %d trees: %d bins stay empty",
                           self.num_tree_bins, n_trees, self.num_tree_bins - n_trees)
        if features is None:
            features = forest.training_features

        out_dir = os.path.dirname(os.path.abspath(self.output_path))
        os.makedirs(out_dir, exist_ok=True)
        logger.info("packing %d trees into %d bins at %s", n_trees, self.num_tree_bins, self.output_path)

        temp_paths: List[str] = []
        try:
            node_path = _make_temp_file(out_dir, NODE_TEMP_PREFIX, ".npz", temp_paths)
            self._write_node_records(forest, node_path)

            traversal_path = _make_temp_file(out_dir, TRAVERSAL_TEMP_PREFIX, ".npy", temp_paths)
            self._write_traversal_records(forest, features, traversal_path)

            packed, leaf_maps = self._fold(forest, node_path, traversal_path)
            if self.verify and features is not None:
                self._verify(packed, leaf_maps, features, traversal_path)

            partial_path = _make_temp_file(out_dir, os.path.basename(self.output_path) + ".", ".partial", temp_paths)
            packed.save(partial_path)
            os.replace(partial_path, self.output_path)
        finally:
            for path in temp_paths:
                _remove_if_exists(path)

        logger.info("packed forest written to %s (%d nodes)", self.output_path, packed.n_nodes)
        return packed

    def _write_node_records(self, forest, path: str) -> None:
        """
        Dump every node of every tree as one fixed-size record

        Projection terms and class counts go into side arrays of the same
        file, referenced by record index or projection offset.
        """
        columns = {name: [] for name in RECORD_DTYPE.names}
        proj_features, proj_weights, counts = [], [], []
        offset = 0
        for tree_index, tree in enumerate(forest.trees):
            for node in tree:
                columns["tree"].append(tree_index)
                columns["node"].append(node.node_id)
                columns["kind"].append(int(node.kind))
                columns["label"].append(node.label)
                columns["n_samples"].append(node.n_samples)
                counts.append(node.class_counts)
                if node.is_leaf:
                    columns["left"].append(-1)
                    columns["right"].append(-1)
                    columns["threshold"].append(0.0)
                    columns["proj_offset"].append(offset)
                    columns["proj_len"].append(0)
                else:
                    columns["left"].append(node.left)
                    columns["right"].append(node.right)
                    columns["threshold"].append(node.threshold)
                    columns["proj_offset"].append(offset)
                    columns["proj_len"].append(len(node.split))
                    proj_features.extend(node.split.features)
                    proj_weights.extend(node.split.weights)
                    offset += len(node.split)

        records = np.zeros(len(columns["tree"]), dtype=RECORD_DTYPE)
        for name, values in columns.items():
            records[name] = values

        with open(path, "wb") as f:
            np.savez(
                f,
                records=records,
                proj_features=np.asarray(proj_features, dtype=np.int32),
                proj_weights=np.asarray(proj_weights, dtype=np.float64),
                class_counts=np.asarray(counts, dtype=np.int32).reshape(len(counts), forest.n_classes),
            )
        logger.debug("wrote %d node records to %s", records.shape[0], path)

    def _write_traversal_records(self, forest, features: Optional[np.ndarray], path: str) -> None:
        if features is None:
            leaf_ids = np.empty((0, len(forest.trees)), dtype=np.int32)
        else:
            leaf_ids = forest.apply(features).astype(np.int32)
        with open(path, "wb") as f:
            np.save(f, leaf_ids)
        logger.debug("wrote traversal records of %d samples to %s", leaf_ids.shape[0], path)

    def _fold(self, forest, node_path: str, traversal_path: str) -> Tuple[PackedForest, List[np.ndarray]]:
        """
        Build the bins from the two transient files

        Returns:
        --------
        packed : PackedForest
        leaf_maps : list of np.ndarray
            For every tree, the bin position of each grown node id
        """
        with np.load(node_path) as data:
            records = data["records"]
            proj_features = data["proj_features"]
            proj_weights = data["proj_weights"]
            class_counts = data["class_counts"]
        leaf_ids = np.load(traversal_path)

        n_trees = len(forest.trees)
        starts = np.searchsorted(records["tree"], np.arange(n_trees + 1))

        bins, leaf_maps = [], []
        for tree_indices in np.array_split(np.arange(n_trees), self.num_tree_bins):
            builder = _BinBuilder()
            for tree_index in tree_indices:
                start, stop = starts[tree_index], starts[tree_index + 1]
                tree_records = records[start:stop]
                visits = leaf_ids[:, tree_index] if leaf_ids.shape[0] else None
                frequencies = _node_frequencies(tree_records, visits)
                order = _hot_first_order(tree_records, frequencies)
                leaf_maps.append(builder.add_tree(
                    tree_records, order, proj_features, proj_weights, class_counts[start:stop]
                ))
            bins.append(builder.finish(forest.n_classes))

        return PackedForest(bins, forest.classes, forest.n_features), leaf_maps

    def _verify(self, packed: PackedForest, leaf_maps: List[np.ndarray], features: np.ndarray, traversal_path: str) -> None:
        leaf_ids = np.load(traversal_path)
        positions = packed.apply(features)
        for tree_index, leaf_map in enumerate(leaf_maps):
            if not np.array_equal(positions[:, tree_index], leaf_map[leaf_ids[:, tree_index]]):
                raise PackingError(f"packed tree {tree_index} does not reach the leaves of the grown tree")


class _BinBuilder:
    """Accumulates the arrays of one bin tree by tree."""

    def __init__(self):
        self.roots: List[int] = []
        self.nodes: List[np.ndarray] = []
        self.proj_features: List[np.ndarray] = []
        self.proj_weights: List[np.ndarray] = []
        self.leaf_counts: List[np.ndarray] = []
        self.n_nodes = 0
        self.n_terms = 0
        self.n_leaves = 0

    def add_tree(self, records, order, proj_features, proj_weights, class_counts) -> np.ndarray:
        """
        Append one tree in the given node order

        Returns:
        --------
        positions : np.ndarray
            Bin position of every grown node id
        """
        n = records.shape[0]
        positions = np.empty(n, dtype=np.int64)
        positions[order] = self.n_nodes + np.arange(n)

        ordered = records[order]
        internal = ordered["kind"] != SplitKind.LEAF
        leaf = ~internal

        nodes = np.zeros(n, dtype=NODE_DTYPE)
        nodes["kind"] = ordered["kind"]
        nodes["label"] = ordered["label"]
        nodes["threshold"] = np.where(internal, ordered["threshold"], 0.0)
        nodes["left"] = np.where(internal, positions[np.maximum(ordered["left"], 0)], -1)
        nodes["right"] = np.where(internal, positions[np.maximum(ordered["right"], 0)], -1)

        lengths = np.where(internal, ordered["proj_len"], 0)
        nodes["proj_len"] = lengths
        nodes["proj_offset"] = self.n_terms + np.cumsum(lengths) - lengths
        for offset, length in zip(ordered["proj_offset"][internal], lengths[internal]):
            self.proj_features.append(proj_features[offset:offset + length])
            self.proj_weights.append(proj_weights[offset:offset + length])

        nodes["leaf"] = np.where(leaf, self.n_leaves + np.cumsum(leaf) - 1, -1)
        self.leaf_counts.append(class_counts[order[leaf]])

        self.roots.append(int(positions[0]))
        self.nodes.append(nodes)
        self.n_nodes += n
        self.n_terms += int(lengths.sum())
        self.n_leaves += int(leaf.sum())
        return positions

    def finish(self, n_classes: int) -> PackedBin:
        return PackedBin(
            roots=np.asarray(self.roots, dtype=np.int32),
            nodes=np.concatenate(self.nodes) if self.nodes else np.zeros(0, dtype=NODE_DTYPE),
            proj_features=np.concatenate(self.proj_features).astype(np.int32) if self.proj_features else np.zeros(0, dtype=np.int32),
            proj_weights=np.concatenate(self.proj_weights).astype(np.float64) if self.proj_weights else np.zeros(0),
            leaf_counts=np.concatenate(self.leaf_counts).astype(np.int32) if self.leaf_counts else np.zeros((0, n_classes), dtype=np.int32),
        )


def _node_frequencies(records: np.ndarray, visits: Optional[np.ndarray]) -> np.ndarray:
    """
    Number of samples passing through every node of one tree

    Without traversal records the in-bag sample counts are used.
    """
    if visits is None:
        return records["n_samples"].astype(np.int64)

    n = records.shape[0]
    frequencies = np.bincount(visits, minlength=n).astype(np.int64)
    parents = np.full(n, -1, dtype=np.int64)
    internal = np.flatnonzero(records["kind"] != SplitKind.LEAF)
    parents[records["left"][internal]] = internal
    parents[records["right"][internal]] = internal
    # Children always have larger ids than their parent
    for node in range(n - 1, 0, -1):
        frequencies[parents[node]] += frequencies[node]
    return frequencies


def _hot_first_order(records: np.ndarray, frequencies: np.ndarray) -> np.ndarray:
    """Depth-first node order visiting the more frequent child first (left on ties)."""
    order = []
    stack = [0]
    while stack:
        node = stack.pop()
        order.append(node)
        if records["kind"][node] == SplitKind.LEAF:
            continue
        left, right = int(records["left"][node]), int(records["right"][node])
        if frequencies[right] > frequencies[left]:
            stack.extend((left, right))
        else:
            stack.extend((right, left))
    return np.asarray(order, dtype=np.int64)


def _make_temp_file(directory: str, prefix: str, suffix: str, registry: List[str]) -> str:
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=directory)
    os.close(fd)
    registry.append(path)
    return path


def _remove_if_exists(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
