"""
Packed Forest

This module contains the bin-partitioned, array-based forest layout written
by the forest packer, its binary file format and the reference traversal
used to predict with it.

File layout (little-endian):
    header      magic b"FPRF", version, n_bins, n_features, n_classes (u32)
    classes     int64[n_classes]
    per bin:
        header          tree_count, node_count, weight_count, leaf_count (u32)
        roots           int32[tree_count]
        nodes           NODE_DTYPE[node_count]
        proj_features   int32[weight_count]
        proj_weights    float64[weight_count]
        leaf_counts     int32[leaf_count, n_classes]
"""

import struct
from dataclasses import dataclass
from typing import List

import numpy as np

from .data_transforms import project_rows
from .exceptions import DimensionMismatchError, PackingError
from .split_functions import SplitKind

MAGIC = b"FPRF"
FORMAT_VERSION = 1
FILE_HEADER = struct.Struct("<4sIIII")
BIN_HEADER = struct.Struct("<IIII")

# Fixed-size node record. Internal nodes use threshold, left, right and the
# projection slice; leaves use leaf (row of leaf_counts) and label.
NODE_DTYPE = np.dtype([
    ("threshold", "<f8"),
    ("left", "<i4"),
    ("right", "<i4"),
    ("proj_offset", "<i4"),
    ("proj_len", "<i4"),
    ("leaf", "<i4"),
    ("label", "<i4"),
    ("kind", "<i1"),
    ("pad", "V7"),
])


@dataclass
class PackedBin:
    """
    Trees of one bin stored as flat arrays

    Attributes:
    -----------
    roots : np.ndarray of int32
        Node position of every tree root, in tree order
    nodes : np.ndarray of NODE_DTYPE
        Node records; child references are positions in this array
    proj_features, proj_weights : np.ndarray
        Projection terms referenced by the internal nodes
    leaf_counts : np.ndarray of int32, shape=(n_leaves, n_classes)
        Class counts of every leaf
    """

    roots: np.ndarray
    nodes: np.ndarray
    proj_features: np.ndarray
    proj_weights: np.ndarray
    leaf_counts: np.ndarray

    @property
    def n_trees(self) -> int:
        return int(self.roots.shape[0])

    @property
    def n_nodes(self) -> int:
        return int(self.nodes.shape[0])

    def traverse(self, root: int, X: np.ndarray) -> np.ndarray:
        """
        Node position of the leaf reached by every sample in one tree

        Parameters:
        -----------
        root : int
            Position of the tree root
        X : array-like, shape=(n_samples, n_features)

        Returns:
        --------
        positions : array-like, shape=(n_samples,)
        """
        positions = np.empty(X.shape[0], dtype=np.int64)
        pending = [(int(root), np.arange(X.shape[0]))]
        while pending:
            position, rows = pending.pop()
            record = self.nodes[position]
            if record["kind"] == SplitKind.LEAF:
                positions[rows] = position
                continue
            start = int(record["proj_offset"])
            stop = start + int(record["proj_len"])
            values = project_rows(X[rows], self.proj_features[start:stop], self.proj_weights[start:stop])
            go_left = values <= record["threshold"]
            if np.any(go_left):
                pending.append((int(record["left"]), rows[go_left]))
            if not np.all(go_left):
                pending.append((int(record["right"]), rows[~go_left]))
        return positions


class PackedForest:
    """
    Forest packed into bins of contiguous node arrays

    Attributes:
    -----------
    bins : list of PackedBin
    classes : np.ndarray
        Original class labels, indexed by encoded class
    n_features : int
        Feature dimensionality expected by predict
    """

    def __init__(self, bins: List[PackedBin], classes: np.ndarray, n_features: int):
        self.bins = bins
        self.classes = np.asarray(classes, dtype=np.int64)
        self.n_features = int(n_features)

    @property
    def n_bins(self) -> int:
        return len(self.bins)

    @property
    def n_classes(self) -> int:
        return int(self.classes.shape[0])

    @property
    def tree_counts(self) -> List[int]:
        return [packed_bin.n_trees for packed_bin in self.bins]

    @property
    def n_trees(self) -> int:
        return sum(self.tree_counts)

    @property
    def n_nodes(self) -> int:
        return sum(packed_bin.n_nodes for packed_bin in self.bins)

    def _check_features(self, X) -> np.ndarray:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if X.ndim != 2 or X.shape[1] != self.n_features:
            raise DimensionMismatchError(
                f"X has shape {X.shape}, but the forest was trained with {self.n_features} features"
            )
        return X

    def apply(self, X) -> np.ndarray:
        """
        Bin-local node position of the leaf reached in every tree

        Returns:
        --------
        positions : array-like, shape=(n_samples, n_trees)
            Columns follow the tree order of the grown forest
        """
        X = self._check_features(X)
        columns = [
            packed_bin.traverse(root, X)
            for packed_bin in self.bins
            for root in packed_bin.roots
        ]
        if not columns:
            return np.empty((X.shape[0], 0), dtype=np.int64)
        return np.column_stack(columns)

    def vote_counts(self, X) -> np.ndarray:
        X = self._check_features(X)
        votes = np.zeros((X.shape[0], self.n_classes), dtype=np.int64)
        rows = np.arange(X.shape[0])
        for packed_bin in self.bins:
            for root in packed_bin.roots:
                labels = packed_bin.nodes["label"][packed_bin.traverse(root, X)]
                np.add.at(votes, (rows, labels), 1)
        return votes

    def predict(self, X) -> np.ndarray:
        """
        Majority vote over every tree of every bin

        Returns:
        --------
        labels : array-like, shape=(n_samples,)
        """
        return self.classes[np.argmax(self.vote_counts(X), axis=1)]

    def predict_proba(self, X) -> np.ndarray:
        return self.vote_counts(X) / self.n_trees

    def save(self, file_path: str) -> None:
        with open(file_path, "wb") as f:
            f.write(FILE_HEADER.pack(MAGIC, FORMAT_VERSION, self.n_bins, self.n_features, self.n_classes))
            f.write(self.classes.astype("<i8").tobytes())
            for packed_bin in self.bins:
                f.write(BIN_HEADER.pack(
                    packed_bin.n_trees,
                    packed_bin.n_nodes,
                    int(packed_bin.proj_features.shape[0]),
                    int(packed_bin.leaf_counts.shape[0]),
                ))
                f.write(packed_bin.roots.astype("<i4").tobytes())
                f.write(packed_bin.nodes.astype(NODE_DTYPE).tobytes())
                f.write(packed_bin.proj_features.astype("<i4").tobytes())
                f.write(packed_bin.proj_weights.astype("<f8").tobytes())
                f.write(packed_bin.leaf_counts.astype("<i4").tobytes())

    @classmethod
    def load(cls, file_path: str) -> "PackedForest":
        """
        Read a packed forest file

        Raises:
        -------
        PackingError
            If the file is not a packed forest or is truncated
        """
        with open(file_path, "rb") as f:
            buffer = f.read()

        if len(buffer) < FILE_HEADER.size:
            raise PackingError(f"{file_path} is not a packed forest file")
        magic, version, n_bins, n_features, n_classes = FILE_HEADER.unpack_from(buffer, 0)
        if magic != MAGIC:
            raise PackingError(f"{file_path} is not a packed forest file")
        if version != FORMAT_VERSION:
            raise PackingError(f"unsupported packed forest version {version}")

        reader = _BufferReader(buffer, FILE_HEADER.size)
        classes = reader.array("<i8", n_classes)
        bins = []
        for _ in range(n_bins):
            tree_count, node_count, weight_count, leaf_count = reader.struct(BIN_HEADER)
            bins.append(PackedBin(
                roots=reader.array("<i4", tree_count),
                nodes=reader.array(NODE_DTYPE, node_count),
                proj_features=reader.array("<i4", weight_count),
                proj_weights=reader.array("<f8", weight_count),
                leaf_counts=reader.array("<i4", leaf_count * n_classes).reshape(leaf_count, n_classes),
            ))
        if reader.offset != len(buffer):
            raise PackingError(f"{file_path} has {len(buffer) - reader.offset} trailing bytes")
        return cls(bins, classes, n_features)

    def __str__(self) -> str:
        return f"PackedForest(bins={self.n_bins}, trees={self.n_trees}, nodes={self.n_nodes})"

    def __repr__(self) -> str:
        return self.__str__()


class _BufferReader:
    """Sequential reader over the bytes of a packed forest file."""

    def __init__(self, buffer: bytes, offset: int = 0):
        self.buffer = buffer
        self.offset = offset

    def struct(self, layout: struct.Struct) -> tuple:
        self._require(layout.size)
        values = layout.unpack_from(self.buffer, self.offset)
        self.offset += layout.size
        return values

    def array(self, dtype, count: int) -> np.ndarray:
        dtype = np.dtype(dtype)
        if count == 0:
            return np.empty(0, dtype=dtype)
        self._require(dtype.itemsize * count)
        values = np.frombuffer(self.buffer, dtype=dtype, count=count, offset=self.offset).copy()
        self.offset += dtype.itemsize * count
        return values

    def _require(self, n_bytes: int) -> None:
        if self.offset + n_bytes > len(self.buffer):
            raise PackingError("packed forest file is truncated")
