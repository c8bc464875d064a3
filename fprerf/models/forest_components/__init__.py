"""
Forest Components Package

This package contains the building blocks of the forest implementation:
configuration, candidate sampling, tree growing and forest packing.
"""

from .exceptions import (
    FPRerFError,
    InvalidConfigError,
    MissingConfigError,
    DimensionMismatchError,
    PackingError
)
from .config import ForestConfig, ForestType, ConfigStore
from .split_functions import SplitKind, SplitFunction, AxisAlignedSplit, ObliqueSplit, PatchSplit
from .tree_node import TreeNode, Tree
from .candidate_sampler import (
    CandidateSampler,
    AxisAlignedSampler,
    SparseProjectionSampler,
    PatchSampler,
    make_sampler
)
from .node_subsampler import StratifiedNodeSubsampler
from .tree_builder import TreeBuilder
from .packed_forest import PackedBin, PackedForest
from .forest_packer import ForestPacker

__all__ = [
    'FPRerFError',
    'InvalidConfigError',
    'MissingConfigError',
    'DimensionMismatchError',
    'PackingError',
    'ForestConfig',
    'ForestType',
    'ConfigStore',
    'SplitKind',
    'SplitFunction',
    'AxisAlignedSplit',
    'ObliqueSplit',
    'PatchSplit',
    'TreeNode',
    'Tree',
    'CandidateSampler',
    'AxisAlignedSampler',
    'SparseProjectionSampler',
    'PatchSampler',
    'make_sampler',
    'StratifiedNodeSubsampler',
    'TreeBuilder',
    'PackedBin',
    'PackedForest',
    'ForestPacker'
]
