"""Split-merge Metropolis-Hastings driver for Dirichlet process mixtures."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from numpy.random import Generator, default_rng

from dpmix.inference.stick_breaking import log_stick_breaking_prior
from dpmix.models.components import MixtureComponent
from dpmix.models.dp_mixture import DirichletProcessMixtureModel
from dpmix.splitmerge.errors import InvalidArgument, NumericalDegeneracy
from dpmix.splitmerge.proposal import Proposal
from dpmix.splitmerge.strategy import ProposalStrategy, SingleObservationSplitStrategy
from dpmix.utils.config_parser import SplitMergeConfig
from dpmix.utils.logging_utils import Timer, log_config, progress

logger = logging.getLogger(__name__)

_TRACE_COLUMNS = [
    "iteration",
    "move",
    "data_index_1",
    "data_index_2",
    "accepted",
    "skipped",
    "log_ratio",
    "log_alpha",
    "num_components",
]


def _log_component_posterior(component: MixtureComponent, weight: float) -> float:
    """Likelihood, parameter prior and allocation prior n * log(w) of one component."""
    n = component.num_observations
    val = component.log_likelihood() + component.log_prior_density()
    if n > 0:
        val += n * math.log(weight) if weight > 0 else -math.inf
    return float(val)


def log_split_minus_merged_posterior(proposal: Proposal, concentration: float) -> float:
    """log p(split state) - log p(merged state), restricted to the affected slots."""
    split_side = _log_component_posterior(proposal.split1, proposal.split1_mixing_weight)
    split_side += _log_component_posterior(proposal.split2, proposal.split2_mixing_weight)
    split_side += log_stick_breaking_prior(proposal.split_mixing_weights, concentration)

    merged_side = _log_component_posterior(proposal.merged, proposal.merged_mixing_weight)
    merged_side += log_stick_breaking_prior(proposal.merged_mixing_weights[:-1], concentration)
    return split_side - merged_side


@dataclass
class SplitMergeRun:
    """Per-iteration trace of a split-merge run."""

    trace: pd.DataFrame

    def acceptance_rate(self, move: Optional[str] = None) -> float:
        rows = self.trace[~self.trace["skipped"].astype(bool)]
        if move is not None:
            rows = rows[rows["move"] == move]
        if rows.empty:
            return float("nan")
        return float(rows["accepted"].astype(float).mean())

    def summary(self) -> Dict[str, Any]:
        return {
            "iterations": int(len(self.trace)),
            "skipped": int(self.trace["skipped"].astype(bool).sum()),
            "split_acceptance": self.acceptance_rate("split"),
            "merge_acceptance": self.acceptance_rate("merge"),
            "final_components": int(self.trace["num_components"].iloc[-1]) if len(self.trace) else 0,
        }


@dataclass
class SplitMergeSampler:
    """Draws seed pairs, builds proposals with ``strategy`` and accepts or rejects them.

    ``NumericalDegeneracy`` from the strategy skips the move; every other error
    propagates to the caller.
    """

    model: DirichletProcessMixtureModel
    strategy: ProposalStrategy
    iters: int = 100
    seed: int = 42

    rng: Generator = field(init=False)

    def __post_init__(self):
        if self.iters < 0:
            raise InvalidArgument("iters must be >= 0")
        self.rng = default_rng(self.seed)

    @classmethod
    def from_config(
        cls, model: DirichletProcessMixtureModel, config: SplitMergeConfig
    ) -> "SplitMergeSampler":
        log_config(logger, {"split_merge": config.to_dict()}, title="Split-merge sampler config")
        strategy = SingleObservationSplitStrategy(
            model,
            annealing_factor=config.annealing_factor,
            num_parameter_draws=config.num_parameter_draws,
        )
        return cls(model=model, strategy=strategy, iters=config.iterations, seed=config.seed)

    def log_acceptance_ratio(self, proposal: Proposal) -> float:
        diff = log_split_minus_merged_posterior(proposal, self.model.concentration)
        if proposal.is_merge():
            diff = -diff
        return diff - proposal.log_split_to_merge_probability_ratio

    def step(self, iteration: int = 0, rng: Optional[Generator] = None) -> Dict[str, Any]:
        rng = rng or self.rng
        assigned = np.flatnonzero(self.model.cluster_indicators >= 0)
        if assigned.size < 2:
            raise InvalidArgument("Split-merge moves need at least two assigned observations.")
        i, j = (int(v) for v in rng.choice(assigned, size=2, replace=False))
        same = self.model.component_of(i) is self.model.component_of(j)
        record: Dict[str, Any] = {
            "iteration": iteration,
            "move": "split" if same else "merge",
            "data_index_1": i,
            "data_index_2": j,
            "accepted": False,
            "skipped": False,
            "log_ratio": float("nan"),
            "log_alpha": float("nan"),
        }
        try:
            if same:
                proposal = self.strategy.propose_split(i, j, rng)
            else:
                proposal = self.strategy.propose_merge(i, j, rng)
        except NumericalDegeneracy as exc:
            logger.warning("Skipping %s move at iteration %d: %s", record["move"], iteration, exc)
            record["skipped"] = True
            record["num_components"] = self.model.number_of_components
            return record

        log_alpha = self.log_acceptance_ratio(proposal)
        record["log_ratio"] = proposal.log_split_to_merge_probability_ratio
        record["log_alpha"] = log_alpha
        if np.log(rng.uniform()) < log_alpha:
            self.model.accept_split_merge_proposal(proposal)
            record["accepted"] = True
        record["num_components"] = self.model.number_of_components
        return record

    def run(self, iters: Optional[int] = None) -> SplitMergeRun:
        iters = self.iters if iters is None else int(iters)
        records: List[Dict[str, Any]] = []
        with Timer("split-merge", logger):
            for it in progress(range(iters), total=iters, desc="Split-merge sampling"):
                records.append(self.step(it))
        trace = pd.DataFrame.from_records(records, columns=_TRACE_COLUMNS)
        run = SplitMergeRun(trace=trace)
        logger.info("Split-merge run finished: %s", run.summary())
        return run
