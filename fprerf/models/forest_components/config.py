"""
Forest Configuration

This module contains the typed forest configuration, the forest type
enumeration and the flat string-keyed parameter store that accepts the
camelCase option names (numTreesInForest, nodeSizeBin, ...).
"""

import math
import warnings
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Union

import numpy as np

from .exceptions import InvalidConfigError, MissingConfigError


class ForestType(str, Enum):
    """Recognized forest algorithm variants."""

    RF_BASE = "rfBase"
    RERF = "rerf"
    BINNED_BASE = "binnedBase"
    BINNED_BASE_RERF = "binnedBaseRerF"
    BINNED_BASE_TERN = "binnedBaseTern"
    S_RERF = "S-RerF"

    @property
    def is_axis_aligned(self) -> bool:
        return self in (ForestType.RF_BASE, ForestType.BINNED_BASE)

    @property
    def is_ternary(self) -> bool:
        return self is ForestType.BINNED_BASE_TERN

    @property
    def is_structured(self) -> bool:
        return self is ForestType.S_RERF

    @classmethod
    def parse(cls, name: str) -> Optional["ForestType"]:
        """Return the matching variant, or None for a non-standard name."""
        for member in cls:
            if member.value == name:
                return member
        return None


DEFAULT_FOREST_TYPE = ForestType.BINNED_BASE_RERF
CRITERIA = ("gini", "entropy")


@dataclass(frozen=True)
class ForestConfig:
    """
    Hyper-parameters of a forest growing run

    Parameters:
    -----------
    forest_type : str
        One of the ForestType values. Any other string is accepted with a
        warning and grown as the default variant (binnedBaseRerF).
    num_trees_in_forest : int
        Number of trees to grow
    max_depth : int or None
        Maximum node depth; None, non-finite or non-positive means unlimited
    min_parent : int
        Nodes with this many samples or fewer are not split
    num_cores : int
        Number of worker threads used to grow trees
    num_tree_bins : int or None
        Number of bins of the packed forest (defaults to num_cores)
    node_size_to_bin : int or None
        Node size above which the split search uses a stratified subsample
    node_size_bin : int or None
        Size of that stratified subsample
    mtry : int or None
        Number of candidate splits per node (defaults to sqrt(n_features))
    mtry_mult : float or None
        Average number of features combined per RerF candidate (defaults to 1)
    seed : int or None
        Global random seed (drawn at random when None)
    image_height, image_width : int or None
        Image grid for S-RerF; features are pixels in row-major order
    patch_height_min, patch_height_max, patch_width_min, patch_width_max : int
        Patch size bounds for S-RerF (max defaults to the image dimension)
    bootstrap : bool
        Grow every tree from a bootstrap sample instead of the full sample
    criterion : str
        Impurity criterion, "gini" or "entropy"
    """

    forest_type: str = DEFAULT_FOREST_TYPE.value
    num_trees_in_forest: int = 500
    max_depth: Optional[int] = None
    min_parent: int = 1
    num_cores: int = 1
    num_tree_bins: Optional[int] = None
    node_size_to_bin: Optional[int] = None
    node_size_bin: Optional[int] = None
    mtry: Optional[int] = None
    mtry_mult: Optional[float] = None
    seed: Optional[int] = None
    image_height: Optional[int] = None
    image_width: Optional[int] = None
    patch_height_min: int = 1
    patch_height_max: Optional[int] = None
    patch_width_min: int = 1
    patch_width_max: Optional[int] = None
    bootstrap: bool = True
    criterion: str = "gini"

    def __post_init__(self):
        # Inf or <= 0 leaves the depth unbounded
        depth = self.max_depth
        if depth is not None and (not math.isfinite(depth) or depth <= 0):
            object.__setattr__(self, "max_depth", None)
        elif depth is not None:
            object.__setattr__(self, "max_depth", int(depth))

    @property
    def variant(self) -> ForestType:
        parsed = ForestType.parse(self.forest_type)
        return parsed if parsed is not None else DEFAULT_FOREST_TYPE

    @property
    def is_standard_forest_type(self) -> bool:
        return ForestType.parse(self.forest_type) is not None

    @property
    def uses_stratified_subsampling(self) -> bool:
        return self.node_size_to_bin is not None and self.node_size_bin is not None

    def validate(self) -> "ForestConfig":
        """
        Check every parameter invariant

        Raises:
        -------
        InvalidConfigError
            If any invariant is violated
        """
        if self.num_cores < 1:
            raise InvalidConfigError("at least one core must be used.")
        if self.min_parent < 1:
            raise InvalidConfigError("at least one observation must be used in each node.")
        if self.num_trees_in_forest < 1:
            raise InvalidConfigError("at least one tree must be used.")
        if self.num_tree_bins is not None and self.num_tree_bins < 1:
            raise InvalidConfigError("at least one tree bin must be used.")
        if self.mtry is not None and self.mtry < 1:
            raise InvalidConfigError(f"mtry must be at least 1, got {self.mtry}")
        if self.mtry_mult is not None and not self.mtry_mult > 0:
            raise InvalidConfigError(f"mtryMult must be positive, got {self.mtry_mult}")
        if self.criterion not in CRITERIA:
            raise InvalidConfigError(f"Unknown criterion: {self.criterion}")

        if (self.node_size_to_bin is None) != (self.node_size_bin is None):
            raise InvalidConfigError("nodeSizeToBin and nodeSizeBin must be set together.")
        if self.uses_stratified_subsampling:
            if self.node_size_bin < 1:
                raise InvalidConfigError("nodeSizeBin must be at least 1.")
            if self.node_size_bin > self.node_size_to_bin:
                raise InvalidConfigError("nodeSizeBin must be less than or equal to nodeSizeToBin.")

        if not self.is_standard_forest_type:
            warnings.warn(f"Using non-standard forestType {self.forest_type}.", UserWarning, stacklevel=2)

        if self.variant.is_structured:
            self._validate_image_parameters()

        return self

    def _validate_image_parameters(self) -> None:
        if self.image_height is None or self.image_width is None:
            raise InvalidConfigError("S-RerF requires imageHeight and imageWidth.")
        if self.image_height < 1 or self.image_width < 1:
            raise InvalidConfigError("imageHeight and imageWidth must be positive.")

        height_max = self.patch_height_max if self.patch_height_max is not None else self.image_height
        width_max = self.patch_width_max if self.patch_width_max is not None else self.image_width
        if not 1 <= self.patch_height_min <= height_max <= self.image_height:
            raise InvalidConfigError(
                f"patch height bounds [{self.patch_height_min}, {height_max}] "
                f"must lie within [1, {self.image_height}]"
            )
        if not 1 <= self.patch_width_min <= width_max <= self.image_width:
            raise InvalidConfigError(
                f"patch width bounds [{self.patch_width_min}, {width_max}] "
                f"must lie within [1, {self.image_width}]"
            )

    def resolve(self, n_features: int) -> "ForestConfig":
        """
        Fill in every data dependent default

        Parameters:
        -----------
        n_features : int
            Number of feature columns of the training data

        Returns:
        --------
        config : ForestConfig
            A copy with mtry, mtry_mult, seed, num_tree_bins and patch bounds set
        """
        updates: Dict[str, Any] = {}
        if self.mtry is None:
            updates["mtry"] = max(1, int(np.sqrt(n_features)))
        if self.mtry_mult is None:
            updates["mtry_mult"] = 1.0
        if self.seed is None:
            updates["seed"] = int(np.random.default_rng().integers(1, 1_000_001))
        if self.num_tree_bins is None:
            updates["num_tree_bins"] = self.num_cores

        if self.variant.is_structured:
            if self.image_height * self.image_width != n_features:
                raise InvalidConfigError(
                    f"imageHeight * imageWidth ({self.image_height} * {self.image_width}) "
                    f"does not match the number of features ({n_features})"
                )
            if self.patch_height_max is None:
                updates["patch_height_max"] = self.image_height
            if self.patch_width_max is None:
                updates["patch_width_max"] = self.image_width

        return replace(self, **updates)

    @classmethod
    def from_store(cls, store: "ConfigStore") -> "ForestConfig":
        """Build a typed configuration from the explicitly set keys of a store."""
        kwargs = {}
        for key, value in store.items():
            if key in STORE_KEYS:
                kwargs[STORE_KEYS[key]] = value
        if "bootstrap" in kwargs:
            kwargs["bootstrap"] = bool(kwargs["bootstrap"])
        return cls(**kwargs)

    def to_store(self) -> "ConfigStore":
        """Export every explicitly known value into a string-keyed store."""
        store = ConfigStore()
        for key, field_name in STORE_KEYS.items():
            value = getattr(self, field_name)
            if value is None:
                continue
            if isinstance(value, bool):
                value = int(value)
            store.set(key, value)
        return store


# Store key -> ForestConfig field
STORE_KEYS = {
    "forestType": "forest_type",
    "numTreesInForest": "num_trees_in_forest",
    "maxDepth": "max_depth",
    "minParent": "min_parent",
    "numCores": "num_cores",
    "numTreeBins": "num_tree_bins",
    "nodeSizeToBin": "node_size_to_bin",
    "nodeSizeBin": "node_size_bin",
    "mtry": "mtry",
    "mtryMult": "mtry_mult",
    "seed": "seed",
    "imageHeight": "image_height",
    "imageWidth": "image_width",
    "patchHeightMin": "patch_height_min",
    "patchHeightMax": "patch_height_max",
    "patchWidthMin": "patch_width_min",
    "patchWidthMax": "patch_width_max",
    "bootstrap": "bootstrap",
    "criterion": "criterion",
}

_STRING_KEYS = {"forestType", "criterion"}
_FLOAT_KEYS = {"mtryMult"}

STORE_DEFAULTS = {
    "forestType": DEFAULT_FOREST_TYPE.value,
    "numTreesInForest": 500,
    "minParent": 1,
    "numCores": 1,
    "mtryMult": 1.0,
    "patchHeightMin": 1,
    "patchWidthMin": 1,
    "bootstrap": 1,
    "criterion": "gini",
}

ConfigValue = Union[str, int, float]


def _expected_type(key: str) -> type:
    if key in _STRING_KEYS:
        return str
    if key in _FLOAT_KEYS:
        return float
    return int


class ConfigStore:
    """
    Flat parameter store keyed by camelCase option names

    Values are strings, integers or floats. Known keys are type checked;
    unknown keys are kept with a warning.
    """

    def __init__(self):
        self._values: Dict[str, ConfigValue] = {}

    def set(self, name: str, value: ConfigValue) -> None:
        if isinstance(value, bool) or not isinstance(value, (str, int, float, np.integer, np.floating)):
            raise InvalidConfigError(f"Parameter {name} must be a string, integer or float, got {type(value).__name__}")

        if name not in STORE_KEYS:
            warnings.warn(f"Unknown parameter {name}; storing it as given.", UserWarning, stacklevel=2)
            self._values[name] = value
            return

        # Same as ForestConfig: inf or <= 0 leaves the depth unbounded
        if name == "maxDepth" and not isinstance(value, str) and (not math.isfinite(value) or value <= 0):
            self._values.pop(name, None)
            return

        expected = _expected_type(name)
        if expected is str and not isinstance(value, str):
            raise InvalidConfigError(f"Parameter {name} expects a string, got {value!r}")
        if expected is int:
            integral = isinstance(value, (int, np.integer)) or (
                isinstance(value, (float, np.floating)) and float(value).is_integer()
            )
            if not integral:
                raise InvalidConfigError(f"Parameter {name} expects an integer, got {value!r}")
            value = int(value)
        if expected is float:
            if isinstance(value, str):
                raise InvalidConfigError(f"Parameter {name} expects a number, got {value!r}")
            value = float(value)
        self._values[name] = value

    def get(self, name: str) -> ConfigValue:
        if name in self._values:
            return self._values[name]
        if name in STORE_DEFAULTS:
            return STORE_DEFAULTS[name]
        raise MissingConfigError(f"Parameter {name} is not set and has no default")

    def __contains__(self, name: str) -> bool:
        return name in self._values or name in STORE_DEFAULTS

    def items(self):
        return dict(self._values).items()

    def print_parameters(self) -> None:
        print("=== Forest Parameters ===")
        for name in sorted(set(self._values) | set(STORE_DEFAULTS)):
            source = "" if name in self._values else " (default)"
            print(f"{name}: {self.get(name)}{source}")
