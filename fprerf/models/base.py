"""
Forest Base Class Module

This module provides the abstract base class shared by the forest
classifiers. Every forest implementation inherits from it.
"""

from abc import ABC, abstractmethod
from dataclasses import fields
import numpy as np
from typing import Dict, List, Tuple, Optional, Any
from sklearn.metrics import accuracy_score

from .forest_components.config import ForestConfig
from .forest_components.data_transforms import validate_input_data
from .forest_components.exceptions import DimensionMismatchError

CONFIG_FIELDS = frozenset(f.name for f in fields(ForestConfig))


class ForestClassifierBase(ABC):
    """
    Abstract base class of the forest classifiers

    Attributes:
    -----------
    config : ForestConfig
        Hyper-parameters of the forest
    n_features : int or None
        Number of feature columns seen during fit
    classes : np.ndarray or None
        Original class labels, indexed by encoded class
    """

    def __init__(self, config: Optional[ForestConfig] = None, **kwargs):
        """
        Parameters:
        -----------
        config : ForestConfig, optional
            Forest configuration (defaults to ForestConfig())
        **kwargs : dict
            Field overrides applied on top of config
        """
        config = config if config is not None else ForestConfig()
        self.config = ForestConfig(**{**config.__dict__, **kwargs}) if kwargs else config
        # As given by the caller; fit resolves data dependent defaults from it
        self._base_config = self.config
        self.n_features: Optional[int] = None
        self.classes: Optional[np.ndarray] = None

    @abstractmethod
    def fit(self, X: np.ndarray, y: np.ndarray, **kwargs) -> 'ForestClassifierBase':
        """
        Grow the forest

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            Training features
        y : array-like, shape=(n_samples,)
            Integer class labels

        Returns:
        --------
        self : ForestClassifierBase
        """
        pass

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Predict class labels

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)

        Returns:
        --------
        y_pred : array-like, shape=(n_samples,)
        """
        pass

    def _validate_input(self, X: np.ndarray, y: Optional[np.ndarray] = None) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        Validate inputs, and check the feature count once fitted
        """
        X, y = validate_input_data(X, y)
        if self.n_features is not None and X.shape[1] != self.n_features:
            raise DimensionMismatchError(
                f"X has {X.shape[1]} features, but the forest was trained with {self.n_features} features"
            )
        return X, y

    def evaluate(self, X: np.ndarray, y: np.ndarray, metrics: List[str] = ['accuracy']) -> Dict[str, float]:
        """
        Evaluate the forest

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
        y : array-like, shape=(n_samples,)
            True class labels
        metrics : list of str, default=['accuracy']
            Any of 'accuracy' and 'error'

        Returns:
        --------
        results : dict
        """
        X, y = self._validate_input(X, y)
        y_pred = self.predict(X)

        results = {}
        for metric in metrics:
            if metric.lower() == 'accuracy':
                results['accuracy'] = float(accuracy_score(y, y_pred))
            elif metric.lower() == 'error':
                results['error'] = 1.0 - float(accuracy_score(y, y_pred))
            else:
                raise ValueError(f"Unknown metric: {metric}")
        return results

    def get_params(self) -> Dict[str, Any]:
        return dict(self.config.__dict__)

    def set_params(self, **params) -> 'ForestClassifierBase':
        """
        Replace configuration fields

        Raises:
        -------
        ValueError
            If a parameter is not a configuration field
        """
        for key in params:
            if key not in CONFIG_FIELDS:
                raise ValueError(f"Invalid parameter: {key}")
        self._base_config = ForestConfig(**{**self._base_config.__dict__, **params})
        self.config = self._base_config
        return self
