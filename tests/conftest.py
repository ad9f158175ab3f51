from __future__ import annotations

import numpy as np
import pytest

from dpmix.models.components import GaussianComponent
from dpmix.models.dp_mixture import DirichletProcessMixtureModel


class DeterministicStream:
    """Noise-free stand-in for a numpy Generator.

    Uniform draws return the midpoint, normal draws the mean and gamma draws
    the mean, so posterior chains collapse onto fixed points.
    """

    def uniform(self, low=0.0, high=1.0, size=None):
        return 0.5 * (low + high)

    def normal(self, loc=0.0, scale=1.0, size=None):
        return loc

    def gamma(self, shape, scale=1.0, size=None):
        return shape * scale


@pytest.fixture
def stream() -> DeterministicStream:
    return DeterministicStream()


def gaussian(model: DirichletProcessMixtureModel, mu: float, sigma2: float = 0.25) -> GaussianComponent:
    return GaussianComponent(model.data, mu=mu, sigma2=sigma2, m0=0.0, kappa0=1.0, a0=2.0, b0=0.5)


@pytest.fixture
def two_cluster_model() -> DirichletProcessMixtureModel:
    """Points {-2, -1, 1, 2} held by components {-2, -1} and {1, 2}."""
    model = DirichletProcessMixtureModel(np.array([-2.0, -1.0, 1.0, 2.0]), concentration=1.0)
    model.add_component(gaussian(model, -1.5), 0.4, [0, 1])
    model.add_component(gaussian(model, 1.5), 0.4, [2, 3])
    return model


@pytest.fixture
def one_cluster_model() -> DirichletProcessMixtureModel:
    model = DirichletProcessMixtureModel(np.array([-2.0, -1.0, 1.0, 2.0]), concentration=1.0)
    model.add_component(gaussian(model, -1.5), 0.8, [0, 1, 2, 3])
    return model
