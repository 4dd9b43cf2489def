"""
Declarative modules: ordered manifests of providers built with a fluent DSL.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from typing import Any

from .model import Provider, Scope, Token, TokenLike


class Module:
    """
    An ordered collection of providers.

    Modules are installed into a Container with ``Container.install``. They
    replace decorator-based registration with an explicit manifest built at
    startup.

    Example:
        ```python
        module = Module()
        module.make(Config).from_value(config)
        module.make(Database).from_class(Database, Config)
        module.make(UserService).from_class(UserService, Database).scoped()
        ```
    """

    def __init__(self) -> None:
        self._providers: list[Provider] = []

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    def add(self, provider: Provider) -> int:
        """Append a provider and return its position."""
        self._providers.append(provider)
        return len(self._providers) - 1

    def make(self, target: TokenLike, tag: str | None = None) -> ProviderBuilder:
        """Start declaring a provider for the given token."""
        return ProviderBuilder(Token.of(target, tag), self)

    def __add__(self, other: Module) -> Module:
        combined = Module()
        combined._providers = self._providers + other._providers
        return combined

    def __len__(self) -> int:
        return len(self._providers)


class ProviderBuilder:
    """Builder choosing the recipe of a provider."""

    def __init__(self, token: Token, module: Module):
        self._token = token
        self._module = module

    def from_class(self, impl: type, *dependencies: TokenLike) -> LifetimeBuilder:
        """Instantiate ``impl`` with the given dependencies, in order."""
        index = self._module.add(Provider.for_class(self._token, impl, dependencies))
        return LifetimeBuilder(self._module, index)

    def from_factory(self, factory: Callable[..., Any], *dependencies: TokenLike) -> LifetimeBuilder:
        """Call ``factory`` with the given dependencies, in order."""
        index = self._module.add(Provider.for_factory(self._token, factory, dependencies))
        return LifetimeBuilder(self._module, index)

    def from_value(self, value: Any) -> None:
        """Bind to a ready-made value."""
        self._module.add(Provider.for_value(self._token, value))


class LifetimeBuilder:
    """Adjusts the scope of the provider just declared. Singleton by default."""

    def __init__(self, module: Module, index: int):
        self._module = module
        self._index = index

    def _with_scope(self, scope: Scope) -> None:
        provider = self._module._providers[self._index]
        self._module._providers[self._index] = dataclasses.replace(provider, scope=scope)

    def singleton(self) -> None:
        self._with_scope(Scope.SINGLETON)

    def scoped(self) -> None:
        self._with_scope(Scope.SCOPED)

    def transient(self) -> None:
        self._with_scope(Scope.TRANSIENT)
