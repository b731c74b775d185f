# -*- coding: utf-8 -*-
"""
Base Class for Flux Regressors
==============================

Abstract estimator interface shared by the forest facade and any future
regressor plugged into the pipeline.
"""

from abc import ABC, abstractmethod

import numpy as np


class BaseForecaster(ABC):
    """
    Abstract base class for flux regressors.

    Subclasses implement:
    - fit(): Train the model on a feature matrix and target
    - predict(): Predict the target for new rows
    - get_feature_importance(): Importance score per input column
    """

    @abstractmethod
    def fit(self, X: np.ndarray, y: np.ndarray) -> 'BaseForecaster':
        """
        Fit the model to training data.

        Args:
            X: Feature matrix of shape (n_samples, n_features)
            y: Target values of shape (n_samples,)

        Returns:
            Self for method chaining
        """

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """Predictions of shape (n_samples,)."""

    @abstractmethod
    def get_feature_importance(self) -> np.ndarray:
        """Array of shape (n_features,) with importance scores."""

    def fit_predict(self, X_train: np.ndarray, y_train: np.ndarray,
                    X_test: np.ndarray) -> np.ndarray:
        """Fit on the training rows and predict the test rows."""
        self.fit(X_train, y_train)
        return self.predict(X_test)
