"""
Candidate Split Samplers

Every forest variant draws its per-node pool of candidate split functions
through one of the samplers below. Samplers keep no state between calls
except the random generator handed in.
"""

import numpy as np
from typing import Iterator, List

from .config import ForestConfig
from .exceptions import InvalidConfigError
from .split_functions import AxisAlignedSplit, ObliqueSplit, PatchSplit, SplitFunction


class CandidateSampler:
    """
    Base class of the candidate samplers

    Attributes:
    -----------
    n_features : int
        Number of feature columns
    mtry : int
        Number of candidates drawn per node
    """

    def __init__(self, n_features: int, mtry: int):
        if n_features < 1:
            raise InvalidConfigError("at least one feature is required")
        self.n_features = n_features
        self.mtry = mtry

    def sample(self, rng: np.random.Generator) -> List[SplitFunction]:
        raise NotImplementedError

    def pools(self, rng: np.random.Generator) -> Iterator[List[SplitFunction]]:
        """
        Successive candidate pools of one node

        The first pool is the regular mtry draw; the tree builder only asks
        for more when no candidate of the earlier pools could split the node.
        At most ceil(n_features / mtry) pools are produced.
        """
        for _ in range(-(-self.n_features // self.mtry)):
            yield self.sample(rng)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_features={self.n_features}, mtry={self.mtry})"


class AxisAlignedSampler(CandidateSampler):
    """Random Forest candidates: distinct raw features."""

    def sample(self, rng: np.random.Generator) -> List[SplitFunction]:
        return next(self.pools(rng))

    def pools(self, rng: np.random.Generator) -> Iterator[List[SplitFunction]]:
        # Features are visited in one random order, mtry at a time
        order = rng.permutation(self.n_features)
        for start in range(0, self.n_features, self.mtry):
            yield [AxisAlignedSplit.on_feature(feature) for feature in order[start:start + self.mtry]]


class SparseProjectionSampler(CandidateSampler):
    """
    RerF candidates: sparse random combinations of features

    Each of the mtry candidates gets one feature, and round(mtry * mtry_mult)
    - mtry further features are spread uniformly over the candidates, so a
    candidate combines mtry_mult features on average. Selected features get
    weight +1, or a random sign when ternary is set.
    """

    def __init__(self, n_features: int, mtry: int, mtry_mult: float = 1.0, ternary: bool = False):
        super().__init__(n_features, mtry)
        self.mtry_mult = mtry_mult
        self.ternary = ternary

    def sample(self, rng: np.random.Generator) -> List[SplitFunction]:
        n_extra = max(0, int(round(self.mtry * self.mtry_mult)) - self.mtry)
        sizes = 1 + rng.multinomial(n_extra, np.full(self.mtry, 1.0 / self.mtry))
        sizes = np.minimum(sizes, self.n_features)

        candidates = []
        for size in sizes:
            features = np.sort(rng.choice(self.n_features, size=int(size), replace=False))
            if self.ternary:
                weights = rng.choice(np.array([-1.0, 1.0]), size=features.shape[0])
            else:
                weights = np.ones(features.shape[0])
            candidates.append(ObliqueSplit(
                features=tuple(int(f) for f in features),
                weights=tuple(float(w) for w in weights),
            ))
        return candidates


class PatchSampler(CandidateSampler):
    """
    Structured RerF candidates: rectangular pixel patches of an image

    Patch height and width are uniform within their bounds and the origin is
    uniform over the positions that keep the patch inside the image.
    """

    def __init__(
        self,
        n_features: int,
        mtry: int,
        image_height: int,
        image_width: int,
        patch_height_min: int,
        patch_height_max: int,
        patch_width_min: int,
        patch_width_max: int,
    ):
        super().__init__(n_features, mtry)
        if image_height is None or image_width is None:
            raise InvalidConfigError("S-RerF requires imageHeight and imageWidth.")
        if image_height * image_width != n_features:
            raise InvalidConfigError(
                f"image of {image_height}x{image_width} pixels does not match {n_features} features"
            )
        self.image_height = image_height
        self.image_width = image_width
        self.patch_height_min = patch_height_min
        self.patch_height_max = patch_height_max
        self.patch_width_min = patch_width_min
        self.patch_width_max = patch_width_max

    def sample(self, rng: np.random.Generator) -> List[SplitFunction]:
        candidates = []
        for _ in range(self.mtry):
            height = int(rng.integers(self.patch_height_min, self.patch_height_max + 1))
            width = int(rng.integers(self.patch_width_min, self.patch_width_max + 1))
            top = int(rng.integers(0, self.image_height - height + 1))
            left = int(rng.integers(0, self.image_width - width + 1))
            candidates.append(PatchSplit.from_rectangle(top, left, height, width, self.image_width))
        return candidates


def make_sampler(config: ForestConfig, n_features: int) -> CandidateSampler:
    """
    Create the sampler of the configured forest variant

    Parameters:
    -----------
    config : ForestConfig
        A resolved configuration (mtry and patch bounds set)
    n_features : int
        Number of feature columns

    Returns:
    --------
    sampler : CandidateSampler
    """
    variant = config.variant
    mtry = config.mtry if config.mtry is not None else max(1, int(np.sqrt(n_features)))

    if variant.is_axis_aligned:
        return AxisAlignedSampler(n_features, mtry)
    if variant.is_structured:
        return PatchSampler(
            n_features,
            mtry,
            image_height=config.image_height,
            image_width=config.image_width,
            patch_height_min=config.patch_height_min,
            patch_height_max=config.patch_height_max if config.patch_height_max is not None else config.image_height,
            patch_width_min=config.patch_width_min,
            patch_width_max=config.patch_width_max if config.patch_width_max is not None else config.image_width,
        )
    mtry_mult = config.mtry_mult if config.mtry_mult is not None else 1.0
    return SparseProjectionSampler(n_features, mtry, mtry_mult=mtry_mult, ternary=variant.is_ternary)
