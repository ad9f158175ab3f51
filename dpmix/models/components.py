"""Mixture components for Dirichlet process mixtures.

A component owns a set of data indices into a global data array shared with
the model (membership is by identity, the data values are never copied), its
current parameters, and the index of the slot it occupies in the model.
"""
from __future__ import annotations

import abc
import copy
import math
from dataclasses import dataclass, field
from typing import Iterable, Set, Tuple

import numpy as np
from numpy.random import Generator
from scipy import stats


def _sample_invgamma(alpha: float, beta: float, rng: Generator) -> float:
    """
    InvGamma(alpha, beta) with shape-scale parameterization:
        p(x) ∝ beta^alpha x^{-alpha-1} exp(-beta/x),  x > 0
    Sampling: if Z ~ Gamma(alpha, scale=1/beta), then X = 1/Z ~ InvGamma(alpha, beta).
    """
    if alpha <= 0 or beta <= 0:
        raise ValueError("InvGamma requires alpha,beta > 0")
    z = rng.gamma(shape=alpha, scale=1.0 / beta)
    return 1.0 / z


@dataclass(eq=False)
class MixtureComponent(abc.ABC):
    """Base class: membership bookkeeping plus the parameter contract."""

    data: np.ndarray = field(repr=False)
    mixture_component_index: int = -1
    _members: Set[int] = field(default_factory=set, init=False, repr=False)

    # ----------
    # Membership
    # ----------
    def add_data(self, data_index: int) -> None:
        self._members.add(int(data_index))

    def remove_data(self, data_index: int) -> None:
        try:
            self._members.remove(int(data_index))
        except KeyError:
            raise KeyError(
                f"Data point {data_index} is not assigned to component {self.mixture_component_index}"
            ) from None

    def clear_data(self) -> None:
        self._members.clear()

    def has_data(self, data_index: int) -> bool:
        return int(data_index) in self._members

    @property
    def data_indices(self) -> Tuple[int, ...]:
        """Member indices in ascending order."""
        return tuple(sorted(self._members))

    @property
    def num_observations(self) -> int:
        return len(self._members)

    def values(self, indices: Iterable[int] | None = None) -> np.ndarray:
        idx = self.data_indices if indices is None else tuple(indices)
        return np.asarray(self.data[list(idx)], dtype=float)

    def clone(self) -> "MixtureComponent":
        """Copy parameters and membership; the data array itself is shared."""
        other = copy.copy(self)
        other._members = set(self._members)
        return other

    # ----------
    # Densities
    # ----------
    def pdf(self, y):
        return np.exp(self.logpdf(y))

    def log_likelihood(self) -> float:
        if not self._members:
            return 0.0
        return float(np.sum(self.logpdf(self.values())))

    @abc.abstractmethod
    def logpdf(self, y):
        """Log density of ``y`` (scalar or array) under the current parameters."""

    @abc.abstractmethod
    def log_prior_density(self) -> float:
        """Log prior density of the current parameters."""

    @abc.abstractmethod
    def log_posterior_density(self) -> float:
        """Log posterior density of the current parameters given the assigned data."""

    @abc.abstractmethod
    def sample_posterior(self, rng: Generator) -> None:
        """Advance the parameters by one Markov-chain step targeting their posterior."""

    @property
    @abc.abstractmethod
    def parameters(self) -> np.ndarray:
        ...

    @parameters.setter
    @abc.abstractmethod
    def parameters(self, value) -> None:
        ...


@dataclass(eq=False)
class GaussianComponent(MixtureComponent):
    """Univariate Gaussian with a conjugate Normal-Inverse-Gamma prior.

    y | mu, sigma2 ~ N(mu, sigma2)
    mu | sigma2    ~ N(m0, sigma2 / kappa0)
    sigma2         ~ InvGamma(a0, b0)

    ``sample_posterior`` is one Gibbs sweep (sigma2 | mu, then mu | sigma2), so
    repeated calls form a Markov chain started from the current parameters.
    """

    mu: float = 0.0
    sigma2: float = 1.0
    m0: float = 0.0
    kappa0: float = 1.0
    a0: float = 2.0
    b0: float = 1.0

    def __post_init__(self):
        if self.kappa0 <= 0:
            raise ValueError("kappa0 must be > 0")
        if self.a0 <= 0 or self.b0 <= 0:
            raise ValueError("a0 and b0 must be > 0")
        if self.sigma2 <= 0:
            raise ValueError("sigma2 must be > 0")

    @property
    def parameters(self) -> np.ndarray:
        return np.array([self.mu, self.sigma2], dtype=float)

    @parameters.setter
    def parameters(self, value) -> None:
        mu, sigma2 = np.asarray(value, dtype=float).reshape(2)
        if sigma2 <= 0:
            raise ValueError("sigma2 must be > 0")
        self.mu = float(mu)
        self.sigma2 = float(sigma2)

    def logpdf(self, y):
        return stats.norm.logpdf(y, loc=self.mu, scale=math.sqrt(self.sigma2))

    def posterior_hyperparameters(self) -> Tuple[float, float, float, float]:
        """Return (m_n, kappa_n, a_n, b_n) given the assigned data."""
        y = self.values()
        n = y.size
        if n == 0:
            return self.m0, self.kappa0, self.a0, self.b0
        ybar = float(y.mean())
        kappa_n = self.kappa0 + n
        m_n = (self.kappa0 * self.m0 + n * ybar) / kappa_n
        a_n = self.a0 + 0.5 * n
        ss = float(np.sum((y - ybar) ** 2))
        b_n = self.b0 + 0.5 * ss + self.kappa0 * n * (ybar - self.m0) ** 2 / (2.0 * kappa_n)
        return m_n, kappa_n, a_n, b_n

    def _log_nig_density(self, m: float, kappa: float, a: float, b: float) -> float:
        lp = stats.norm.logpdf(self.mu, loc=m, scale=math.sqrt(self.sigma2 / kappa))
        lp += stats.invgamma.logpdf(self.sigma2, a, scale=b)
        return float(lp)

    def log_prior_density(self) -> float:
        return self._log_nig_density(self.m0, self.kappa0, self.a0, self.b0)

    def log_posterior_density(self) -> float:
        return self._log_nig_density(*self.posterior_hyperparameters())

    def sample_posterior(self, rng: Generator) -> None:
        m_n, kappa_n, a_n, b_n = self.posterior_hyperparameters()
        # sigma2 | mu picks up the extra half degree of freedom from the mu term
        self.sigma2 = _sample_invgamma(
            alpha=a_n + 0.5,
            beta=b_n + 0.5 * kappa_n * (self.mu - m_n) ** 2,
            rng=rng,
        )
        self.mu = float(rng.normal(m_n, math.sqrt(self.sigma2 / kappa_n)))


@dataclass(eq=False)
class PoissonComponent(MixtureComponent):
    """Poisson counts with a Gamma(a0, rate=b0) prior on the rate."""

    lam: float = 1.0
    a0: float = 1.0
    b0: float = 1.0

    def __post_init__(self):
        if self.a0 <= 0 or self.b0 <= 0:
            raise ValueError("a0 and b0 must be > 0")
        if self.lam <= 0:
            raise ValueError("lam must be > 0")

    @property
    def parameters(self) -> np.ndarray:
        return np.array([self.lam], dtype=float)

    @parameters.setter
    def parameters(self, value) -> None:
        lam = float(np.asarray(value, dtype=float).reshape(-1)[0])
        if lam <= 0:
            raise ValueError("lam must be > 0")
        self.lam = lam

    def logpdf(self, y):
        return stats.poisson.logpmf(y, self.lam)

    def posterior_hyperparameters(self) -> Tuple[float, float]:
        y = self.values()
        return self.a0 + float(y.sum()), self.b0 + y.size

    def log_prior_density(self) -> float:
        return float(stats.gamma.logpdf(self.lam, self.a0, scale=1.0 / self.b0))

    def log_posterior_density(self) -> float:
        a_n, b_n = self.posterior_hyperparameters()
        return float(stats.gamma.logpdf(self.lam, a_n, scale=1.0 / b_n))

    def sample_posterior(self, rng: Generator) -> None:
        # conjugate: an exact draw, independent of the current rate
        a_n, b_n = self.posterior_hyperparameters()
        self.lam = float(rng.gamma(shape=a_n, scale=1.0 / b_n))
