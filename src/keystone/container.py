"""
Container facade combining the registry and the resolver.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar, overload

from .errors import ScopeClosedError
from .model import Provider, Scope, Token, TokenLike
from .registry import Registry
from .resolver import ResolutionContext, Resolver

if TYPE_CHECKING:
    from .module import Module

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Stack of active units of work in the current thread or asyncio task.
_active_units: contextvars.ContextVar[tuple[UnitOfWork, ...]] = contextvars.ContextVar(
    "keystone_active_units", default=()
)


class Container:
    """
    Public dependency injection API.

    Bindings go through the ``Registry``; ``get`` delegates to the ``Resolver``
    using the innermost active unit of work opened by ``scope()``, or a fresh
    context when none is active. The container is meant to be passed around
    explicitly, never imported as a global.
    """

    def __init__(self, registry: Registry | None = None):
        self._registry = registry if registry is not None else Registry()
        self._resolver = Resolver(self._registry)

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    def register(self, provider: Provider, *, override: bool = False) -> None:
        """Register a provider. An override also evicts the token's cached singleton."""
        self._registry.register(provider, override=override)
        if override and self._resolver.evict(provider.token):
            logger.debug("Evicted cached singleton for overridden %s", provider.token)

    def bind(
        self,
        token: TokenLike,
        recipe: type | Callable[..., Any],
        scope: Scope = Scope.SINGLETON,
        *,
        dependencies: Iterable[TokenLike] = (),
        override: bool = False,
    ) -> Provider:
        """
        Bind a token to a class or a factory function.

        Args:
            token: The token to bind
            recipe: A class to instantiate or a callable to invoke
            scope: Lifetime of the produced instances
            dependencies: Tokens resolved and passed positionally to the recipe
            override: Replace an existing binding instead of failing

        Returns:
            The registered Provider
        """
        if isinstance(recipe, type):
            provider = Provider.for_class(token, recipe, dependencies, scope)
        elif callable(recipe):
            provider = Provider.for_factory(token, recipe, dependencies, scope)
        else:
            raise TypeError(f"Cannot bind {Token.of(token)} to non-callable {recipe!r}; use bind_value()")
        self.register(provider, override=override)
        return provider

    def bind_value(self, token: TokenLike, value: Any, *, override: bool = False) -> Provider:
        """Bind a token to a ready-made value."""
        provider = Provider.for_value(token, value)
        self.register(provider, override=override)
        return provider

    def install(self, module: Module, *, override: bool = False) -> None:
        """Register every provider of a module, in declaration order."""
        for provider in module.providers:
            self.register(provider, override=override)

    @overload
    def get(self, token: type[T]) -> T: ...

    @overload
    def get(self, token: Token | str) -> Any: ...

    def get(self, token: TokenLike) -> Any:
        """
        Get an instance for the given token.

        Raises:
            UnknownTokenError: If no provider is registered for the token
            CyclicDependencyError: If the token's dependencies form a cycle
            ProviderConstructionError: If a recipe raised while constructing
        """
        unit = self.current_scope()
        context = unit.context if unit is not None else ResolutionContext()
        return self._resolver.resolve(token, context)

    def find(self, token: TokenLike) -> Any | None:
        """Get an instance, or None if the token itself is not registered."""
        if token not in self._registry:
            return None
        return self.get(token)

    def has(self, token: TokenLike) -> bool:
        """Check if a provider is registered for the token."""
        return token in self._registry

    def validate(self) -> None:
        """Check every binding for missing dependencies, cycles and scope violations."""
        self._resolver.validate()

    def scope(self, name: str | None = None) -> UnitOfWork:
        """Open a unit of work that owns the cache of scoped instances."""
        return UnitOfWork(self, name)

    def current_scope(self) -> UnitOfWork | None:
        """Get the innermost active unit of work opened on this container."""
        for unit in reversed(_active_units.get()):
            if unit.container is self:
                return unit
        return None

    def __repr__(self) -> str:
        return f"Container({len(self._registry)} providers, {self._resolver.get_instance_count()} singletons)"


class UnitOfWork:
    """
    A logical unit of work, typically one inbound request.

    Scoped instances resolved through it are cached until it is closed. Used
    as a (sync or async) context manager it also becomes the active unit for
    ``Container.get`` in the current thread or task.
    """

    def __init__(self, container: Container, name: str | None = None):
        self.container = container
        self.context = ResolutionContext(name)
        self._reset_tokens: list[contextvars.Token[tuple[UnitOfWork, ...]]] = []

    @property
    def closed(self) -> bool:
        return self.context.closed

    @overload
    def get(self, token: type[T]) -> T: ...

    @overload
    def get(self, token: Token | str) -> Any: ...

    def get(self, token: TokenLike) -> Any:
        """Resolve a token within this unit of work."""
        return self.container.resolver.resolve(token, self.context)

    def close(self) -> None:
        """Drop scoped instances. Further resolution raises ScopeClosedError."""
        self.context.close()

    def __enter__(self) -> UnitOfWork:
        if self.closed:
            raise ScopeClosedError(f"Cannot re-enter closed {self.context!r}")
        self._reset_tokens.append(_active_units.set(_active_units.get() + (self,)))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        _active_units.reset(self._reset_tokens.pop())
        self.close()

    async def __aenter__(self) -> UnitOfWork:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc, tb)
