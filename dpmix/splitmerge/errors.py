"""Exceptions raised while building and committing split-merge proposals."""
from __future__ import annotations


class SplitMergeError(RuntimeError):
    """Base class for split-merge failures."""


class InvalidArgument(SplitMergeError, ValueError):
    """Raised when a setter or constructor receives inconsistent values."""


class PreconditionViolation(SplitMergeError, ValueError):
    """Raised when seed observations do not satisfy the move's membership requirement."""


class IncompleteProposal(SplitMergeError):
    """Raised by :meth:`Proposal.check` when a required field was never populated."""


class NumericalDegeneracy(SplitMergeError, ArithmeticError):
    """Raised when both candidate components assign zero (or non-finite) weight to a point.

    Samplers treat this as "no proposal this iteration" rather than a fatal error.
    """


class StaleProposal(SplitMergeError):
    """Raised when a proposal or handle refers to an outdated model generation."""
