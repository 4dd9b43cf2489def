"""
Provider registry: token to provider bookkeeping.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from .errors import DuplicateTokenError, UnknownTokenError
from .model import Provider, Token, TokenLike

logger = logging.getLogger(__name__)


class Registry:
    """
    Stores provider bindings keyed by token.

    The registry is populated during the registration phase and is not
    thread-safe; concurrent writers must be serialized by the caller.
    """

    def __init__(self) -> None:
        self._providers: dict[Token, Provider] = {}
        self._generation = 0

    def register(self, provider: Provider, *, override: bool = False) -> None:
        """Add a provider, replacing an existing one only when ``override`` is set."""
        if provider.token in self._providers:
            if not override:
                raise DuplicateTokenError(provider.token)
            logger.debug("Overriding provider for %s with %s", provider.token, provider)
        self._providers[provider.token] = provider
        self._generation += 1

    @property
    def generation(self) -> int:
        """Incremented on every registration."""
        return self._generation

    def lookup(self, token: TokenLike) -> Provider:
        """Get the provider for a token."""
        key = Token.of(token)
        try:
            return self._providers[key]
        except KeyError:
            raise UnknownTokenError(key) from None

    def providers(self) -> list[Provider]:
        """Get all providers in registration order."""
        return list(self._providers.values())

    def __contains__(self, token: object) -> bool:
        if not isinstance(token, Token | type | str):
            return False
        return Token.of(token) in self._providers

    def __iter__(self) -> Iterator[Token]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)
