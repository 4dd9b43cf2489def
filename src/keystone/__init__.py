"""
keystone - dependency injection with a staged asynchronous bootstrap.

This library provides:
- Explicit provider registration by token, with ordered dependencies
- Singleton, scoped and transient lifetimes with cycle detection
- Declarative modules as an alternative to per-binding calls
- Loader units ordered into a deterministic bootstrap plan
- A fail-fast orchestrator reporting which units already succeeded
"""

from .bootstrap import (
    CONTAINER_VALIDATION,
    Application,
    Bootstrap,
    BootstrapOrchestrator,
    BootstrapPlan,
    compute_plan,
    release_units,
    run,
)
from .config import Config, KeystoneSettings
from .container import Container, UnitOfWork
from .errors import (
    BootstrapFailure,
    CyclicDependencyError,
    CyclicLoaderDependencyError,
    DuplicateTokenError,
    DuplicateUnitError,
    KeystoneError,
    PlanError,
    PlanOrderError,
    ProviderConstructionError,
    RegistrationError,
    ResolutionError,
    ScopeClosedError,
    ScopeViolationError,
    UnitTimeoutError,
    UnknownTokenError,
    UnresolvedDependencyError,
)
from .loader import LoaderUnit, UnitState
from .model import Provider, ProviderKind, Scope, Token
from .module import Module
from .registry import Registry
from .resolver import ResolutionContext, Resolver
from .tasks import TaskTracker, TrackedTask

__all__ = [
    # Model
    "Token",
    "Scope",
    "Provider",
    "ProviderKind",
    # Container
    "Registry",
    "Resolver",
    "ResolutionContext",
    "Container",
    "UnitOfWork",
    "Module",
    "Config",
    "KeystoneSettings",
    # Bootstrap
    "LoaderUnit",
    "UnitState",
    "BootstrapPlan",
    "BootstrapOrchestrator",
    "Bootstrap",
    "Application",
    "CONTAINER_VALIDATION",
    "compute_plan",
    "run",
    "release_units",
    "TaskTracker",
    "TrackedTask",
    # Errors
    "KeystoneError",
    "RegistrationError",
    "DuplicateTokenError",
    "ResolutionError",
    "UnknownTokenError",
    "CyclicDependencyError",
    "ProviderConstructionError",
    "ScopeViolationError",
    "ScopeClosedError",
    "PlanError",
    "DuplicateUnitError",
    "UnresolvedDependencyError",
    "CyclicLoaderDependencyError",
    "PlanOrderError",
    "UnitTimeoutError",
    "BootstrapFailure",
]
