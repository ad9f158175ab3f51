"""Dirichlet process mixture state used by the split-merge sampler."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from dpmix.models.components import MixtureComponent
from dpmix.splitmerge.errors import InvalidArgument, StaleProposal

logger = logging.getLogger(__name__)


class ComponentHandle(NamedTuple):
    """Lightweight reference to an arena slot, valid for a single model generation."""

    index: int
    generation: int


@dataclass(eq=False)
class DirichletProcessMixtureModel:
    """Populated DPM components stored as an indexable arena.

    ``components[k].mixture_component_index == k`` at all times.  Only the
    populated mixing weights are stored; the remaining stick mass is derived.
    Every committed split or merge bumps ``generation``; proposals reference
    live slots through :class:`ComponentHandle` so that ones built against an
    older layout are rejected on commit.
    """

    data: np.ndarray
    concentration: float = 1.0

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=float).reshape(-1)
        if self.concentration <= 0:
            raise ValueError("concentration must be > 0")
        self.components: List[MixtureComponent] = []
        self._weights = np.zeros(0, dtype=float)
        self._assignment = np.full(self.data.shape[0], -1, dtype=int)
        self.generation = 0

    # ----------
    # Construction
    # ----------
    def add_component(
        self,
        component: MixtureComponent,
        mixing_weight: float,
        data_indices: Optional[Sequence[int]] = None,
    ) -> ComponentHandle:
        """Append a populated component and assign ``data_indices`` to it."""
        if component.data is not self.data:
            raise InvalidArgument("Component must share the model's data array.")
        if mixing_weight < 0:
            raise InvalidArgument("Mixing weights must be non-negative.")
        if self._weights.sum() + mixing_weight > 1.0 + 1e-12:
            raise InvalidArgument("Populated mixing weights cannot exceed 1.")
        indices = [] if data_indices is None else [int(i) for i in data_indices]
        taken = [i for i in indices if self._assignment[i] >= 0]
        if taken:
            raise InvalidArgument(f"Data points already assigned: {taken}")

        k = len(self.components)
        component.mixture_component_index = k
        component.clear_data()
        for i in indices:
            component.add_data(i)
            self._assignment[i] = k
        self.components.append(component)
        self._weights = np.append(self._weights, float(mixing_weight))
        self.generation += 1
        return ComponentHandle(k, self.generation)

    # ----------
    # Lookup
    # ----------
    @property
    def number_of_components(self) -> int:
        return len(self.components)

    @property
    def mixing_weights(self) -> np.ndarray:
        """Populated weights followed by the remaining stick mass (read-only)."""
        remainder = max(0.0, 1.0 - float(self._weights.sum()))
        out = np.append(self._weights, remainder)
        out.setflags(write=False)
        return out

    @property
    def populated_mixing_weights(self) -> np.ndarray:
        return self._weights.copy()

    @property
    def cluster_indicators(self) -> np.ndarray:
        return self._assignment.copy()

    def component(self, index: int) -> MixtureComponent:
        return self.components[index]

    def data_point(self, data_index: int) -> float:
        return float(self.data[data_index])

    def component_of(self, data_index: int) -> MixtureComponent:
        if not 0 <= data_index < self._assignment.shape[0]:
            raise InvalidArgument(
                f"Data index {data_index} is outside [0, {self._assignment.shape[0]})."
            )
        k = int(self._assignment[data_index])
        if k < 0:
            raise InvalidArgument(f"Data point {data_index} is not assigned to any component.")
        return self.components[k]

    def handle(self, index: int) -> ComponentHandle:
        if not 0 <= index < len(self.components):
            raise IndexError(f"No component at index {index}")
        return ComponentHandle(index, self.generation)

    def resolve(self, handle: ComponentHandle) -> MixtureComponent:
        if handle.generation != self.generation:
            raise StaleProposal(
                f"Handle from generation {handle.generation} used at generation {self.generation}"
            )
        return self.components[handle.index]

    # ----------
    # Commit
    # ----------
    def accept_split_merge_proposal(self, proposal) -> None:
        """Replace the live components by those described in ``proposal``.

        The proposal's live handles are resolved first, so a proposal built
        against an older generation raises :class:`StaleProposal`.  All checks
        run before anything is modified, so a failed commit leaves the model
        untouched.
        """
        proposal.check()
        if not proposal.live_handles:
            raise InvalidArgument("Proposal carries no handles to the model's live components.")
        live = [self.resolve(h) for h in proposal.live_handles]

        if proposal.is_merge():
            new_components = self._merged_layout(proposal, live)
            new_weights = np.asarray(proposal.merged_mixing_weights[:-1], dtype=float)
        else:
            new_components = self._split_layout(proposal, live)
            new_weights = np.asarray(proposal.split_mixing_weights, dtype=float)

        if new_weights.shape[0] != len(new_components):
            raise InvalidArgument(
                f"Proposal carries {new_weights.shape[0]} weights for {len(new_components)} components"
            )
        new_assignment = np.full_like(self._assignment, -1)
        for k, comp in enumerate(new_components):
            idx = list(comp.data_indices)
            if np.any(new_assignment[idx] >= 0):
                raise InvalidArgument("Proposal assigns a data point to two components.")
            new_assignment[idx] = k
        if not np.array_equal(new_assignment >= 0, self._assignment >= 0):
            raise InvalidArgument("Proposal does not cover exactly the currently assigned data.")

        for k, comp in enumerate(new_components):
            comp.mixture_component_index = k
        self.components = new_components
        self._weights = new_weights
        self._assignment = new_assignment
        self.generation += 1
        logger.debug(
            "Committed %s proposal; model now has %d components (generation %d).",
            proposal.type.value,
            len(self.components),
            self.generation,
        )

    def _merged_layout(self, proposal, live: List[MixtureComponent]) -> List[MixtureComponent]:
        if live[0] is not proposal.split1 or live[1] is not proposal.split2:
            raise StaleProposal("Merge proposal does not refer to the model's live components.")
        a, b = (h.index for h in proposal.live_handles)
        target = a if a < b else a - 1
        if proposal.merged.mixture_component_index != target:
            raise InvalidArgument(
                f"Merged component should occupy slot {target}, "
                f"found {proposal.merged.mixture_component_index}"
            )
        kept = [c for k, c in enumerate(self.components) if k != b]
        kept[target] = proposal.merged
        return kept

    def _split_layout(self, proposal, live: List[MixtureComponent]) -> List[MixtureComponent]:
        if live[0] is not proposal.merged:
            raise StaleProposal("Split proposal does not refer to the model's live component.")
        c = proposal.live_handles[0].index
        K = len(self.components)
        if proposal.split1.mixture_component_index != c or proposal.split2.mixture_component_index != K:
            raise InvalidArgument("Split components must occupy the parent slot and the first empty slot.")
        out = list(self.components)
        out[c] = proposal.split1
        out.append(proposal.split2)
        return out
