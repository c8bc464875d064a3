"""
Split Functions

A split function maps a sample to a scalar; the sample goes to the left
child when that scalar is <= the node threshold. Three kinds exist: a single
raw feature, a sparse weighted combination of features, and a rectangular
patch of pixels over an image grid.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Tuple

import numpy as np

from .data_transforms import project_rows


class SplitKind(IntEnum):
    LEAF = 0
    AXIS = 1
    OBLIQUE = 2
    PATCH = 3


@dataclass(frozen=True)
class SplitFunction:
    """
    Sparse linear projection shared by every split kind

    Attributes:
    -----------
    features : tuple of int
        Feature indices taking part in the projection
    weights : tuple of float
        Weight of each feature (same length as features)
    """

    features: Tuple[int, ...]
    weights: Tuple[float, ...]
    kind: SplitKind = field(default=SplitKind.OBLIQUE, init=False)

    def __post_init__(self):
        if len(self.features) == 0:
            raise ValueError("a split function needs at least one feature")
        if len(self.features) != len(self.weights):
            raise ValueError("features and weights must have the same length")

    def project(self, X: np.ndarray) -> np.ndarray:
        return project_rows(X, self.features, self.weights)

    def __len__(self) -> int:
        return len(self.features)


@dataclass(frozen=True)
class AxisAlignedSplit(SplitFunction):
    kind: SplitKind = field(default=SplitKind.AXIS, init=False)

    @classmethod
    def on_feature(cls, feature: int) -> "AxisAlignedSplit":
        return cls(features=(int(feature),), weights=(1.0,))

    @property
    def feature(self) -> int:
        return self.features[0]

    def project(self, X: np.ndarray) -> np.ndarray:
        return X[:, self.features[0]]


@dataclass(frozen=True)
class ObliqueSplit(SplitFunction):
    kind: SplitKind = field(default=SplitKind.OBLIQUE, init=False)


@dataclass(frozen=True)
class PatchSplit(SplitFunction):
    """
    Uniform-weight combination over a rectangle of a row-major image

    Attributes:
    -----------
    top, left : int
        Row and column of the patch origin
    height, width : int
        Patch size in pixels
    """

    top: int = 0
    left: int = 0
    height: int = 1
    width: int = 1
    kind: SplitKind = field(default=SplitKind.PATCH, init=False)

    @classmethod
    def from_rectangle(cls, top: int, left: int, height: int, width: int, image_width: int) -> "PatchSplit":
        rows = np.arange(top, top + height)
        cols = np.arange(left, left + width)
        pixels = (rows[:, None] * image_width + cols[None, :]).ravel()
        return cls(
            features=tuple(int(p) for p in pixels),
            weights=(1.0,) * len(pixels),
            top=int(top),
            left=int(left),
            height=int(height),
            width=int(width),
        )
