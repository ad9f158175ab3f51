from __future__ import annotations

import math

import numpy as np
import numpy.testing as npt
import pytest
from scipy import stats

from dpmix.models.components import GaussianComponent, PoissonComponent, _sample_invgamma


def test_gaussian_posterior_hyperparameters_match_closed_form():
    data = np.array([1.0, 2.0, 4.0, -3.0])
    comp = GaussianComponent(data, mu=0.0, sigma2=1.0, m0=1.0, kappa0=2.0, a0=3.0, b0=1.5)
    for i in (0, 1, 2):
        comp.add_data(i)

    m_n, kappa_n, a_n, b_n = comp.posterior_hyperparameters()

    y = data[:3]
    ybar = y.mean()
    assert kappa_n == pytest.approx(5.0)
    assert m_n == pytest.approx((2.0 * 1.0 + 3 * ybar) / 5.0)
    assert a_n == pytest.approx(4.5)
    expected_b = 1.5 + 0.5 * np.sum((y - ybar) ** 2) + 2.0 * 3 * (ybar - 1.0) ** 2 / (2.0 * 5.0)
    assert b_n == pytest.approx(expected_b)


def test_gaussian_densities_use_current_parameters():
    data = np.array([0.5])
    comp = GaussianComponent(data, mu=0.2, sigma2=0.7, m0=0.0, kappa0=1.0, a0=2.0, b0=1.0)
    npt.assert_allclose(comp.logpdf(0.5), stats.norm.logpdf(0.5, 0.2, math.sqrt(0.7)))
    npt.assert_allclose(comp.pdf(np.array([0.5, 1.0])), stats.norm.pdf([0.5, 1.0], 0.2, math.sqrt(0.7)))

    expected_prior = stats.norm.logpdf(0.2, 0.0, math.sqrt(0.7)) + stats.invgamma.logpdf(0.7, 2.0, scale=1.0)
    assert comp.log_prior_density() == pytest.approx(expected_prior)
    # no data: posterior equals prior
    assert comp.log_posterior_density() == pytest.approx(expected_prior)
    assert comp.log_likelihood() == 0.0

    comp.add_data(0)
    assert comp.log_likelihood() == pytest.approx(stats.norm.logpdf(0.5, 0.2, math.sqrt(0.7)))


def test_gaussian_gibbs_chain_targets_posterior():
    rng = np.random.default_rng(17)
    data = rng.normal(3.0, 0.5, size=40)
    comp = GaussianComponent(data, mu=-10.0, sigma2=5.0)
    for i in range(data.size):
        comp.add_data(i)

    draws = []
    for _ in range(3000):
        comp.sample_posterior(rng)
        draws.append(comp.parameters)
    draws = np.asarray(draws)[500:]

    m_n, kappa_n, a_n, b_n = comp.posterior_hyperparameters()
    assert draws[:, 0].mean() == pytest.approx(m_n, abs=0.05)
    assert draws[:, 1].mean() == pytest.approx(b_n / (a_n - 1.0), rel=0.1)


def test_clone_shares_data_but_not_membership():
    data = np.array([1.0, 2.0, 3.0])
    comp = GaussianComponent(data, mixture_component_index=4, mu=1.0)
    comp.add_data(0)
    twin = comp.clone()
    twin.add_data(2)
    twin.mu = 9.0

    assert twin.data is comp.data
    assert comp.data_indices == (0,)
    assert twin.data_indices == (0, 2)
    assert comp.mu == 1.0
    assert twin.mixture_component_index == 4


def test_membership_operations():
    comp = GaussianComponent(np.arange(5.0))
    comp.add_data(3)
    comp.add_data(1)
    assert comp.data_indices == (1, 3)
    npt.assert_array_equal(comp.values(), [1.0, 3.0])
    comp.remove_data(3)
    assert not comp.has_data(3)
    with pytest.raises(KeyError):
        comp.remove_data(3)
    comp.clear_data()
    assert comp.num_observations == 0


def test_invalid_hyperparameters_raise():
    with pytest.raises(ValueError):
        GaussianComponent(np.zeros(1), kappa0=0.0)
    with pytest.raises(ValueError):
        GaussianComponent(np.zeros(1), sigma2=-1.0)
    with pytest.raises(ValueError):
        PoissonComponent(np.zeros(1), a0=-1.0)
    comp = GaussianComponent(np.zeros(1))
    with pytest.raises(ValueError):
        comp.parameters = [0.0, 0.0]


def test_poisson_posterior_is_gamma():
    data = np.array([2.0, 3.0, 7.0])
    comp = PoissonComponent(data, lam=2.5, a0=2.0, b0=0.5)
    for i in range(3):
        comp.add_data(i)

    a_n, b_n = comp.posterior_hyperparameters()
    assert a_n == pytest.approx(14.0)
    assert b_n == pytest.approx(3.5)
    assert comp.log_posterior_density() == pytest.approx(stats.gamma.logpdf(2.5, 14.0, scale=1.0 / 3.5))
    npt.assert_allclose(comp.logpdf(data), stats.poisson.logpmf(data, 2.5))

    comp.sample_posterior(np.random.default_rng(0))
    expected = np.random.default_rng(0).gamma(shape=14.0, scale=1.0 / 3.5)
    assert comp.lam == pytest.approx(expected)


def test_sample_invgamma_rejects_bad_parameters():
    rng = np.random.default_rng(0)
    assert _sample_invgamma(2.0, 1.0, rng) > 0.0
    with pytest.raises(ValueError):
        _sample_invgamma(0.0, 1.0, rng)
