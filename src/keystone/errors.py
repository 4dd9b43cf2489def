"""
Error taxonomy for keystone.

Registration and resolution errors surface wiring bugs and are never retried.
Plan errors are raised before any loader unit runs. ``BootstrapFailure`` is the
only run-time error of the orchestrator.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .model import Token


class KeystoneError(Exception):
    """Base class for all keystone errors."""


class RegistrationError(KeystoneError):
    """Raised when a provider cannot be registered."""


class DuplicateTokenError(RegistrationError):
    """Raised when a token is registered twice without an explicit override."""

    def __init__(self, token: Token):
        self.token = token
        super().__init__(f"Provider already registered for {token} (pass override=True to replace it)")


class ResolutionError(KeystoneError):
    """Raised when a token cannot be turned into an instance."""


class UnknownTokenError(ResolutionError):
    """Raised when no provider is registered for a token."""

    def __init__(self, token: Token, required_by: Token | None = None):
        self.token = token
        self.required_by = required_by
        msg = f"No provider registered for {token}"
        if required_by:
            msg += f" (required by {required_by})"
        super().__init__(msg)


class CyclicDependencyError(ResolutionError):
    """Raised when providers depend on each other in a cycle."""

    def __init__(self, cycle: Sequence[Token]):
        self.cycle = list(cycle)
        cycle_str = " -> ".join(str(token) for token in self.cycle)
        super().__init__(f"Circular dependency detected: {cycle_str}")


class ProviderConstructionError(ResolutionError):
    """Raised when a provider's recipe fails; wraps the original exception."""

    def __init__(self, token: Token, chain: Sequence[Token], cause: BaseException):
        self.token = token
        self.chain = list(chain)
        self.cause = cause
        chain_str = " -> ".join(str(t) for t in self.chain)
        super().__init__(f"Failed to construct {token} (via {chain_str}): {type(cause).__name__}: {cause}")


class ScopeViolationError(ResolutionError):
    """Raised when a singleton would capture an instance with a shorter lifetime."""

    def __init__(self, token: Token, dependency: Token):
        self.token = token
        self.dependency = dependency
        super().__init__(f"Singleton {token} cannot depend on scoped {dependency}")


class ScopeClosedError(ResolutionError):
    """Raised when resolving through a scope that has already been closed."""


class PlanError(KeystoneError):
    """Raised when loader units cannot be arranged into a bootstrap plan."""


class DuplicateUnitError(PlanError):
    """Raised when two loader units share a name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Loader unit declared more than once: {name}")


class UnresolvedDependencyError(PlanError):
    """Raised when a loader unit depends on a unit that was never declared."""

    def __init__(self, unit: str, missing: str):
        self.unit = unit
        self.missing = missing
        super().__init__(f"Loader unit {unit} depends on unknown unit {missing}")


class CyclicLoaderDependencyError(PlanError):
    """Raised when loader units depend on each other in a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular loader dependency detected: {' -> '.join(self.cycle)}")


class PlanOrderError(PlanError):
    """Raised when a plan lists a loader unit before one of its predecessors."""

    def __init__(self, unit: str, dependency: str):
        self.unit = unit
        self.dependency = dependency
        super().__init__(f"Loader unit {unit} is planned before its dependency {dependency}")


class UnitTimeoutError(KeystoneError, TimeoutError):
    """Raised when a loader unit exceeds its deadline."""

    def __init__(self, unit: str, timeout: float):
        self.unit = unit
        self.timeout = timeout
        super().__init__(f"Loader unit {unit} timed out after {timeout}s")


class BootstrapFailure(KeystoneError):
    """
    Raised when a loader unit fails during a bootstrap run.

    Carries the failing unit's name, the underlying cause and the names of the
    units that had already succeeded, in the order they ran, along with the
    handles they returned. Releasing their resources is left to the embedding
    process.
    """

    def __init__(
        self,
        unit: str,
        cause: BaseException,
        succeeded: Sequence[str],
        handles: Mapping[str, Any] | None = None,
    ):
        self.unit = unit
        self.cause = cause
        self.succeeded = list(succeeded)
        self.handles = dict(handles or {})
        super().__init__(f"Bootstrap failed in unit {unit}: {type(cause).__name__}: {cause}")
