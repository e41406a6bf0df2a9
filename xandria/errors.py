"""
Xandria Error Taxonomy

Registration-time errors (bad descriptors, broken dependency graphs, bad
configuration) are raised to the caller. Errors raised while running a single
operator are recovered by the registry into a failed OperatorResult; their
messages end up in OperatorResult.errors.
"""

from __future__ import annotations


class XandriaError(Exception):
    """Base class for all engine errors."""


class ValidationError(XandriaError, ValueError):
    """Descriptor, request or configuration failed validation."""


class ParameterError(XandriaError, ValueError):
    """Diffusion parameters out of their admissible range."""


class NotFoundError(XandriaError, LookupError):
    """Requested operator is not registered."""


class StrategyNotFoundError(NotFoundError):
    """Requested evolution strategy is not in the catalog."""


class DependencyError(XandriaError):
    """Base class for dependency problems."""


class UnresolvedDependencyError(DependencyError):
    """A declared dependency id is not registered."""


class CyclicDependencyError(DependencyError):
    """The declared dependency graph contains a cycle."""

    def __init__(self, message: str, cycle=None):
        super().__init__(message)
        self.cycle = list(cycle or [])


class DependencyUnsatisfiedError(DependencyError):
    """A dependency has not produced a successful result in this context."""


class ExecutionTimeout(XandriaError, TimeoutError):
    """Operator did not complete before its deadline."""


class OperatorFailure(XandriaError):
    """An operator raised while executing. The original error is __cause__."""

    def __init__(self, operator_id: str, message: str):
        super().__init__(message)
        self.operator_id = operator_id
