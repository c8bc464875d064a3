"""
fprerf - Randomer Forests with forest packing

Grows Random Forest, Randomer Forest (RerF) and Structured RerF ensembles
and packs them into a bin-partitioned array layout for fast prediction.
"""

from .models import (
    RandomerForest,
    grow_forest_from_matrix,
    grow_forest_from_file,
    pack_forest,
    load_packed_forest,
    predict,
    fp_rerf
)
from .models.forest_components import (
    ConfigStore,
    ForestConfig,
    ForestType,
    PackedForest,
    FPRerFError,
    InvalidConfigError,
    MissingConfigError,
    DimensionMismatchError,
    PackingError
)

__version__ = "0.1.0"

__all__ = [
    'RandomerForest',
    'grow_forest_from_matrix',
    'grow_forest_from_file',
    'pack_forest',
    'load_packed_forest',
    'predict',
    'fp_rerf',
    'ConfigStore',
    'ForestConfig',
    'ForestType',
    'PackedForest',
    'FPRerFError',
    'InvalidConfigError',
    'MissingConfigError',
    'DimensionMismatchError',
    'PackingError'
]
