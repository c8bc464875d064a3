"""
Forest models

RandomerForest grows the trees; the forest_components package holds the
building blocks and fp_rerf the package entry points.
"""

from .base import ForestClassifierBase
from .forest_components.randomer_forest import RandomerForest
from .fp_rerf import (
    grow_forest_from_matrix,
    grow_forest_from_file,
    pack_forest,
    load_packed_forest,
    predict,
    fp_rerf
)

__all__ = [
    'ForestClassifierBase',
    'RandomerForest',
    'grow_forest_from_matrix',
    'grow_forest_from_file',
    'pack_forest',
    'load_packed_forest',
    'predict',
    'fp_rerf'
]
