"""Proposal strategies for the split-merge Metropolis-Hastings move.

Two data points are chosen at random to seed the move.  If they belong to the
same mixture component a split of that component is proposed; otherwise the
two components holding them are proposed to merge.  A strategy only builds the
:class:`Proposal`; scoring and committing it is the sampler's job.
"""
from __future__ import annotations

import abc
import logging
import math
from typing import Set

import numpy as np
from numpy.random import Generator

from dpmix.models.components import MixtureComponent
from dpmix.models.dp_mixture import DirichletProcessMixtureModel
from dpmix.splitmerge.errors import InvalidArgument, NumericalDegeneracy, PreconditionViolation
from dpmix.splitmerge.proposal import Proposal, ProposalType

logger = logging.getLogger(__name__)


class ProposalStrategy(abc.ABC):
    """The only way a sampler obtains split and merge proposals."""

    @abc.abstractmethod
    def propose_split(self, data_index_1: int, data_index_2: int, rng: Generator) -> Proposal:
        """Split the component holding both seeds.  Seeds must share a component."""

    @abc.abstractmethod
    def propose_merge(self, data_index_1: int, data_index_2: int, rng: Generator) -> Proposal:
        """Merge the components holding each seed.  Seeds must be in different components."""


class SingleObservationSplitStrategy(ProposalStrategy):
    """Seed a new component from one observation and reallocate the rest.

    On a split, the component holding seed 1 keeps the parent's parameters and
    slot.  The component holding seed 2 gets parameters from a short posterior
    chain conditioned on seed 2 alone, started at the parent's parameters.  The
    remaining observations go to either side with probability proportional to
    ``f(y) ** annealing_factor``.  The parent's mixing weight is shared in
    proportion to the realised counts.

    On a merge, all data moves into the component holding seed 1, which keeps
    its parameters.

    The annealing factor balances the two moves: values near 1 separate the
    data sharply and favour splits, values near 0 allocate almost uniformly and
    favour merges.
    """

    def __init__(
        self,
        model: DirichletProcessMixtureModel,
        annealing_factor: float = 1.0,
        num_parameter_draws: int = 10,
    ) -> None:
        if not (0.0 < annealing_factor <= 1.0):
            raise InvalidArgument(f"annealing_factor must lie in (0, 1], got {annealing_factor!r}")
        if int(num_parameter_draws) < 1:
            raise InvalidArgument("num_parameter_draws must be >= 1")
        self.model = model
        self.annealing_factor = float(annealing_factor)
        self.num_parameter_draws = int(num_parameter_draws)

    # ------------------------------
    # Split
    # ------------------------------
    def propose_split(self, data_index_1: int, data_index_2: int, rng: Generator) -> Proposal:
        if data_index_1 == data_index_2:
            raise PreconditionViolation("A split needs two distinct seed observations.")
        original = self.model.component_of(data_index_1)
        if self.model.component_of(data_index_2) is not original:
            raise PreconditionViolation(
                f"propose_split requires data points {data_index_1} and {data_index_2} "
                "to belong to the same component."
            )

        K = self.model.number_of_components
        c = original.mixture_component_index
        remaining = set(original.data_indices)

        split1 = self.initialize_split_proposal(original, remaining, data_index_1, False, rng)
        split2 = self.initialize_split_proposal(original, remaining, data_index_2, True, rng)
        split1.mixture_component_index = c
        split2.mixture_component_index = K

        log_allocation = self.allocate_data_between_split_components(split1, split2, remaining, rng)

        weights = self.model.populated_mixing_weights
        total = float(weights[c])
        n1 = split1.num_observations
        n2 = split2.num_observations
        split_weights = weights.copy()
        split_weights[c] = total * n1 / (n1 + n2)
        split_weights = np.append(split_weights, total * n2 / (n1 + n2))
        merged_weights = np.append(weights, 0.0)

        empty = original.clone()
        empty.clear_data()
        empty.mixture_component_index = K

        proposal = Proposal(ProposalType.SPLIT, data_index_1, data_index_2, [self.model.handle(c)])
        proposal.set_components(original, empty, split1, split2)
        proposal.set_mixing_weights(merged_weights, split_weights)
        proposal.set_log_proposal_density_ratio(
            self.split_log_proposal_density_ratio(proposal, log_allocation, data_index_2)
        )
        proposal.check()
        logger.debug(
            "Split proposal for component %d: sizes (%d, %d), log ratio %.4f",
            c, n1, n2, proposal.log_split_to_merge_probability_ratio,
        )
        return proposal

    # ------------------------------
    # Merge
    # ------------------------------
    def propose_merge(self, data_index_1: int, data_index_2: int, rng: Generator) -> Proposal:
        split1 = self.model.component_of(data_index_1)
        split2 = self.model.component_of(data_index_2)
        if split1 is split2:
            raise PreconditionViolation(
                f"propose_merge requires data points {data_index_1} and {data_index_2} "
                "to belong to different components."
            )

        log_partition = self.compute_log_partition_probability(
            split1, split2, data_index_1, data_index_2
        )

        K = self.model.number_of_components
        a = split1.mixture_component_index
        b = split2.mixture_component_index

        merged = split1.clone()
        for i in split2.data_indices:
            merged.add_data(i)
        merged.mixture_component_index = a if a < b else a - 1

        empty = split2.clone()
        empty.clear_data()
        empty.mixture_component_index = K - 1

        weights = self.model.populated_mixing_weights
        merged_weights = weights.copy()
        merged_weights[a] = weights[a] + weights[b]
        merged_weights = np.append(np.delete(merged_weights, b), 0.0)

        proposal = Proposal(
            ProposalType.MERGE, data_index_1, data_index_2, [self.model.handle(a), self.model.handle(b)]
        )
        proposal.set_components(merged, empty, split1, split2)
        proposal.set_mixing_weights(merged_weights, weights)
        proposal.set_log_proposal_density_ratio(
            -self.split_log_proposal_density_ratio(proposal, log_partition, data_index_2)
        )
        proposal.check()
        logger.debug(
            "Merge proposal for components (%d, %d): log ratio %.4f",
            a, b, proposal.log_split_to_merge_probability_ratio,
        )
        return proposal

    # ------------------------------
    # Helpers
    # ------------------------------
    def split_log_proposal_density_ratio(
        self,
        proposal: Proposal,
        log_allocation_probability: float,
        data_index_2: int,
    ) -> float:
        """Log of q(merged -> split) / q(split -> merged).

        Merging is deterministic, so this is the log probability of generating
        the split: the density of split2's parameters under the single-seed
        posterior they were drawn from, plus the probability of the allocation.
        Seed 1 always labels the component that keeps the parent's parameters,
        so no labelling factor enters.
        """
        seeded = proposal.split2.clone()
        seeded.clear_data()
        seeded.add_data(data_index_2)
        return float(log_allocation_probability + seeded.log_posterior_density())

    def initialize_split_proposal(
        self,
        original_component: MixtureComponent,
        original_component_data_set: Set[int],
        data_index: int,
        initialize_parameters: bool,
        rng: Generator,
    ) -> MixtureComponent:
        """Build a split component holding only ``data_index``.

        ``data_index`` is removed from ``original_component_data_set`` (a copy
        of the original membership, never the live one).  With
        ``initialize_parameters`` the parameters are redrawn from the posterior
        given the seed; otherwise they match the original component.
        """
        component = original_component.clone()
        component.clear_data()
        component.add_data(data_index)
        original_component_data_set.discard(int(data_index))
        if initialize_parameters:
            self.sample_parameters(component, rng)
        return component

    def sample_parameters(self, component: MixtureComponent, rng: Generator) -> None:
        """Run a short posterior chain from the component's current parameters."""
        for _ in range(self.num_parameter_draws):
            component.sample_posterior(rng)

    def allocate_data_between_split_components(
        self,
        split1: MixtureComponent,
        split2: MixtureComponent,
        data_set: Set[int],
        rng: Generator,
    ) -> float:
        """Assign each point in ``data_set`` to split1 or split2 at random.

        Points are visited in ascending index order.  ``data_set`` itself is not
        modified.  Returns the log probability of the realised assignment.
        """
        indices = sorted(data_set)
        if not indices:
            return 0.0
        log_p1, log_p2 = self._allocation_log_probabilities(
            split1, split2, self.model.data[indices], indices
        )
        log_probability = 0.0
        for i, lp1, lp2 in zip(indices, log_p1, log_p2):
            if rng.uniform() < math.exp(lp1):
                split1.add_data(i)
                log_probability += lp1
            else:
                split2.add_data(i)
                log_probability += lp2
        return float(log_probability)

    def compute_log_partition_probability(
        self,
        split1: MixtureComponent,
        split2: MixtureComponent,
        data_index_1: int,
        data_index_2: int,
    ) -> float:
        """Log probability that split1 and split2 would be allocated as observed.

        The two seed observations do not contribute.
        """
        return self.log_allocation_probability(split1, split2, data_index_1) + \
            self.log_allocation_probability(split2, split1, data_index_2)

    def log_allocation_probability(
        self,
        component: MixtureComponent,
        other_component: MixtureComponent,
        data_index: int,
    ) -> float:
        """Log probability that ``component``'s data (minus its seed) stays with it.

        The competition is an equally weighted two-component mixture with
        densities raised to the annealing factor.
        """
        indices = [i for i in component.data_indices if i != data_index]
        if not indices:
            return 0.0
        log_p, _ = self._allocation_log_probabilities(
            component, other_component, self.model.data[indices], indices
        )
        return float(np.sum(log_p))

    def _allocation_log_probabilities(self, first, second, y, indices):
        log_w1 = self.annealing_factor * np.asarray(first.logpdf(y), dtype=float)
        log_w2 = self.annealing_factor * np.asarray(second.logpdf(y), dtype=float)
        with np.errstate(invalid="ignore", divide="ignore"):
            log_total = np.logaddexp(log_w1, log_w2)
            bad = ~np.isfinite(log_total) | np.isnan(log_w1) | np.isnan(log_w2)
            if np.any(bad):
                where = [indices[j] for j in np.flatnonzero(bad)]
                raise NumericalDegeneracy(
                    f"Allocation weights vanish or are non-finite for data points {where}"
                )
            return log_w1 - log_total, log_w2 - log_total
