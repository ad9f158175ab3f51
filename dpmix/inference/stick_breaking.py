"""Stick-breaking (GEM) prior on populated Dirichlet process mixing weights."""
from __future__ import annotations

import numpy as np
from scipy import stats


def stick_proportions(weights: np.ndarray) -> np.ndarray:
    """Map weights w_k to stick fractions v_k = w_k / (1 - sum_{j<k} w_j)."""
    w = np.asarray(weights, dtype=float).reshape(-1)
    if np.any(w < 0):
        raise ValueError("weights must be non-negative")
    used = np.concatenate([[0.0], np.cumsum(w)[:-1]])
    remaining = 1.0 - used
    if np.any(remaining <= 0):
        raise ValueError("weights exhaust the stick before the last component")
    return w / remaining


def log_stick_breaking_prior(weights: np.ndarray, concentration: float) -> float:
    """Log density of the populated weights under GEM(concentration).

    v_k ~ Beta(1, alpha) independently; the change of variables from v to w
    contributes -sum_k log(1 - sum_{j<k} w_j).
    """
    if concentration <= 0:
        raise ValueError("concentration must be > 0")
    w = np.asarray(weights, dtype=float).reshape(-1)
    if w.size == 0:
        return 0.0
    v = stick_proportions(w)
    used = np.concatenate([[0.0], np.cumsum(w)[:-1]])
    log_jacobian = -np.sum(np.log1p(-used))
    return float(np.sum(stats.beta.logpdf(v, 1.0, concentration)) + log_jacobian)
