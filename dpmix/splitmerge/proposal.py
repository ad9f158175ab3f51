"""Split-merge proposal value object.

A proposal describes a transformation between two pairs of mixture components,

    (split1, split2)  <-->  (merged, empty)

``merged``/``split1`` denote the same slot before and after the move, as do
``empty``/``split2``.  In a merge move (merged, empty) is the proposed state and
(split1, split2) the current one; in a split move the roles are reversed.

Mixing-weight convention
------------------------
Neither weight vector carries the model's "all remaining" tail.
``split_mixing_weights`` has one entry per populated component of the split
state.  ``merged_mixing_weights`` has one entry per populated component of the
merged state plus a terminal entry for the single empty component, so both
vectors have the same length and the same sum.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from dpmix.models.components import MixtureComponent
from dpmix.models.dp_mixture import ComponentHandle
from dpmix.splitmerge.errors import IncompleteProposal, InvalidArgument

_WEIGHT_RTOL = 1e-8


class ProposalType(Enum):
    SPLIT = "split"
    MERGE = "merge"


class Proposal:
    """Candidate split or merge produced by a :class:`ProposalStrategy`.

    The constructor is intentionally small.  Callers must use
    :meth:`set_components`, :meth:`set_mixing_weights` and
    :meth:`set_log_proposal_density_ratio` before reading anything, and should
    call :meth:`check` once construction is finished.

    ``live_handles`` reference the model slots the move consumes: the parent
    of a split, or the two components (split1, split2) of a merge.  They are
    resolved against the model at commit time.
    """

    def __init__(
        self,
        proposal_type: ProposalType,
        data_index_1: int,
        data_index_2: int,
        live_handles: Sequence[ComponentHandle] = (),
    ) -> None:
        self.type = ProposalType(proposal_type)
        self.data_index_1 = int(data_index_1)
        self.data_index_2 = int(data_index_2)
        self.live_handles: Tuple[ComponentHandle, ...] = tuple(live_handles)
        expected = 2 if self.type is ProposalType.MERGE else 1
        if self.live_handles and len(self.live_handles) != expected:
            raise InvalidArgument(
                f"A {self.type.value} proposal takes {expected} live handle(s), "
                f"got {len(self.live_handles)}."
            )

        self._merged: Optional[MixtureComponent] = None
        self._empty: Optional[MixtureComponent] = None
        self._split1: Optional[MixtureComponent] = None
        self._split2: Optional[MixtureComponent] = None

        self._merged_mixing_weights: Optional[np.ndarray] = None
        self._split_mixing_weights: Optional[np.ndarray] = None
        self._log_ratio: Optional[float] = None

    # ----------
    # Setters
    # ----------
    def set_components(
        self,
        merged: MixtureComponent,
        empty: MixtureComponent,
        split1: MixtureComponent,
        split2: MixtureComponent,
    ) -> None:
        self._merged = merged
        self._empty = empty
        self._split1 = split1
        self._split2 = split2

    def set_mixing_weights(
        self,
        merged_mixing_weights: Sequence[float],
        split_mixing_weights: Sequence[float],
    ) -> None:
        merged_w = np.asarray(merged_mixing_weights, dtype=float).reshape(-1)
        split_w = np.asarray(split_mixing_weights, dtype=float).reshape(-1)
        if merged_w.shape != split_w.shape:
            raise InvalidArgument(
                f"Mixing weight vectors differ in length: merged has {merged_w.size}, "
                f"split has {split_w.size}."
            )
        merged_total = float(merged_w.sum())
        split_total = float(split_w.sum())
        scale = max(abs(merged_total), abs(split_total), 1.0)
        if abs(merged_total - split_total) > _WEIGHT_RTOL * scale:
            raise InvalidArgument(
                f"Mixing weight vectors differ in sum: merged={merged_total!r}, split={split_total!r}."
            )
        self._merged_mixing_weights = merged_w
        self._split_mixing_weights = split_w

    def set_log_proposal_density_ratio(self, log_ratio: float) -> None:
        self._log_ratio = float(log_ratio)

    # ----------
    # Accessors
    # ----------
    @property
    def merged(self) -> MixtureComponent:
        return self._require(self._merged, "merged")

    @property
    def empty(self) -> MixtureComponent:
        return self._require(self._empty, "empty")

    @property
    def split1(self) -> MixtureComponent:
        return self._require(self._split1, "split1")

    @property
    def split2(self) -> MixtureComponent:
        return self._require(self._split2, "split2")

    @property
    def merged_mixing_weights(self) -> np.ndarray:
        return self._require(self._merged_mixing_weights, "merged_mixing_weights")

    @property
    def split_mixing_weights(self) -> np.ndarray:
        return self._require(self._split_mixing_weights, "split_mixing_weights")

    @property
    def log_split_to_merge_probability_ratio(self) -> float:
        return self._require(self._log_ratio, "log_split_to_merge_probability_ratio")

    @property
    def merged_mixing_weight(self) -> float:
        return float(self.merged_mixing_weights[self.merged.mixture_component_index])

    @property
    def empty_mixing_weight(self) -> float:
        # terminal slot is reserved for the empty component
        return float(self.merged_mixing_weights[-1])

    @property
    def split1_mixing_weight(self) -> float:
        return float(self.split_mixing_weights[self.split1.mixture_component_index])

    @property
    def split2_mixing_weight(self) -> float:
        return float(self.split_mixing_weights[self.split2.mixture_component_index])

    @property
    def model_generation(self) -> Optional[int]:
        """Model generation the proposal was built against, if it carries handles."""
        return self.live_handles[0].generation if self.live_handles else None

    def is_merge(self) -> bool:
        return self.type is ProposalType.MERGE

    def is_split(self) -> bool:
        return self.type is ProposalType.SPLIT

    def check(self) -> None:
        """Raise :class:`IncompleteProposal` unless every field has been populated."""
        missing = [
            name
            for name, value in (
                ("merged", self._merged),
                ("empty", self._empty),
                ("split1", self._split1),
                ("split2", self._split2),
            )
            if value is None
        ]
        for name, weights in (
            ("merged_mixing_weights", self._merged_mixing_weights),
            ("split_mixing_weights", self._split_mixing_weights),
        ):
            if weights is None or weights.size == 0:
                missing.append(name)
        if self._log_ratio is None or not math.isfinite(self._log_ratio):
            missing.append("log_split_to_merge_probability_ratio")
        if missing:
            raise IncompleteProposal(
                f"{self.type.value} proposal is missing: {', '.join(missing)}"
            )

    def _require(self, value, name: str):
        if value is None:
            raise IncompleteProposal(f"Proposal field '{name}' has not been set.")
        return value

    def __repr__(self) -> str:
        return (
            f"Proposal(type={self.type.value}, data_index_1={self.data_index_1}, "
            f"data_index_2={self.data_index_2}, log_ratio={self._log_ratio!r})"
        )
