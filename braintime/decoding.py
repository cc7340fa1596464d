"""
Default time generalization classifier.

Any callable ``classifier(X, y) -> TGM`` can be used by the statistics
functions; this module provides one built on ``mne.decoding`` and
scikit-learn so that empirical and permuted TGMs are produced identically.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np
from mne.decoding import GeneralizingEstimator, cross_val_multiscore
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import StratifiedKFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from .utils.config_loader import BrainTimeConfig, default_config

logger = logging.getLogger(__name__)


def _make_estimator(random_state: int = 42) -> Pipeline:
    return Pipeline([
        ("scale", StandardScaler(with_mean=True, copy=True)),
        ("clf", LogisticRegression(solver="liblinear", class_weight="balanced", random_state=int(random_state))),
    ])


def make_tgm_classifier(
    n_splits: int = 5, scoring: str = "roc_auc", seed: int = 42
) -> Callable[[np.ndarray, np.ndarray], np.ndarray]:
    """Return ``classifier(X, y) -> TGM`` using stratified cross-validation.

    ``X`` is trials x channels x samples; the returned TGM is
    train time x test time, averaged over folds.
    """

    def classify(X: np.ndarray, y: np.ndarray) -> np.ndarray:
        y = np.asarray(y)
        if np.unique(y).size < 2:
            raise ValueError("Time generalization needs at least two classes in the labels.")
        splits = min(int(n_splits), int(np.min(np.unique(y, return_counts=True)[1])))
        if splits < 2:
            raise ValueError("Every class needs at least two trials for cross-validation.")
        cv = StratifiedKFold(n_splits=splits, shuffle=True, random_state=int(seed))
        logger.debug(f"Time generalization on {len(y)} trials with {splits}-fold CV ({scoring})")
        gen = GeneralizingEstimator(_make_estimator(seed), scoring=scoring, n_jobs=1, verbose=False)
        scores = cross_val_multiscore(gen, np.asarray(X), y, cv=cv, n_jobs=1, verbose=False)
        return np.mean(scores, axis=0)

    return classify


def classifier_from_config(config: Optional[BrainTimeConfig] = None) -> Callable[[np.ndarray, np.ndarray], np.ndarray]:
    """Build the default classifier from the ``decoding`` and ``statistics.seed`` config entries."""
    config = config or default_config()
    return make_tgm_classifier(
        n_splits=int(config.get("decoding.n_splits", 5)),
        scoring=str(config.get("decoding.scoring", "roc_auc")),
        seed=int(config.get("statistics.seed", 42)),
    )


__all__ = ["make_tgm_classifier", "classifier_from_config"]
