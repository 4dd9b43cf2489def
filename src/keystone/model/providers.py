"""
Provider definitions and scopes for keystone.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .keys import Token, TokenLike


class Scope(Enum):
    """Lifetime policies for resolved instances."""

    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"


class ProviderKind(Enum):
    """Kinds of recipes a provider can carry."""

    CLASS = "class"
    FACTORY = "factory"
    VALUE = "value"


def _tokens(dependencies: Iterable[TokenLike]) -> tuple[Token, ...]:
    return tuple(Token.of(dep) for dep in dependencies)


@dataclass(frozen=True)
class Provider:
    """Binds a Token to a construction recipe, its ordered dependencies and a scope."""

    token: Token
    kind: ProviderKind
    recipe: type | Callable[..., Any] | Any
    dependencies: tuple[Token, ...] = ()
    scope: Scope = Scope.SINGLETON

    def __post_init__(self) -> None:
        if self.kind == ProviderKind.VALUE and (self.dependencies or self.scope != Scope.SINGLETON):
            raise ValueError(f"Value provider for {self.token} cannot declare dependencies or a non-singleton scope")
        if self.kind != ProviderKind.VALUE and not callable(self.recipe):
            raise TypeError(f"Recipe for {self.token} is not callable: {self.recipe!r}")

    @classmethod
    def for_class(
        cls,
        token: TokenLike,
        impl: type,
        dependencies: Iterable[TokenLike] = (),
        scope: Scope = Scope.SINGLETON,
    ) -> Provider:
        """Provider that instantiates ``impl`` with its dependencies as positional arguments."""
        return cls(Token.of(token), ProviderKind.CLASS, impl, _tokens(dependencies), scope)

    @classmethod
    def for_factory(
        cls,
        token: TokenLike,
        factory: Callable[..., Any],
        dependencies: Iterable[TokenLike] = (),
        scope: Scope = Scope.SINGLETON,
    ) -> Provider:
        """Provider that calls ``factory`` with its dependencies as positional arguments."""
        return cls(Token.of(token), ProviderKind.FACTORY, factory, _tokens(dependencies), scope)

    @classmethod
    def for_value(cls, token: TokenLike, value: Any) -> Provider:
        """Provider for a ready-made value. Always a singleton."""
        return cls(Token.of(token), ProviderKind.VALUE, value)

    def construct(self, args: list[Any]) -> Any:
        """Run the recipe with already-resolved dependencies."""
        if self.kind == ProviderKind.VALUE:
            return self.recipe
        return self.recipe(*args)

    def __str__(self) -> str:
        impl_name = getattr(self.recipe, "__name__", type(self.recipe).__name__)
        deps_str = f" <- [{', '.join(str(dep) for dep in self.dependencies)}]" if self.dependencies else ""
        return f"{self.token} -> {impl_name}{deps_str} ({self.kind.value}, {self.scope.value})"
