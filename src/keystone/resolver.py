"""
Dependency resolution engine.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections import defaultdict
from typing import Any

from .errors import (
    CyclicDependencyError,
    ProviderConstructionError,
    ScopeClosedError,
    ScopeViolationError,
    UnknownTokenError,
)
from .model import Provider, Scope, Token, TokenLike
from .registry import Registry

logger = logging.getLogger(__name__)

_MISSING = object()

_WHITE = 0  # Not visited
_GRAY = 1  # On the current path
_BLACK = 2  # Completely processed


class ResolutionContext:
    """
    Instance cache for one logical unit of work.

    Scoped providers are cached here. A context is never shared between
    units of work, so it needs no locking.
    """

    def __init__(self, name: str | None = None):
        self.name = name
        self._instances: dict[Token, Any] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def lookup(self, token: Token) -> Any:
        return self._instances.get(token, _MISSING)

    def store(self, token: Token, instance: Any) -> None:
        self._instances[token] = instance

    def close(self) -> None:
        """Drop every cached instance and refuse further resolution."""
        self._instances.clear()
        self._closed = True

    def __contains__(self, token: object) -> bool:
        return token in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._instances)} instances"
        return f"ResolutionContext({self.name or 'anonymous'}, {state})"


class _ResolutionPath:
    """Tokens currently being constructed by one top-level resolve call, in order."""

    def __init__(self) -> None:
        self._tokens: list[Token] = []
        self._members: set[Token] = set()

    def push(self, token: Token) -> None:
        self._tokens.append(token)
        self._members.add(token)

    def pop(self) -> None:
        self._members.discard(self._tokens.pop())

    def cycle_to(self, token: Token) -> list[Token]:
        start = self._tokens.index(token)
        return self._tokens[start:] + [token]

    def tokens(self) -> list[Token]:
        return list(self._tokens)

    def __contains__(self, token: Token) -> bool:
        return token in self._members


class Resolver:
    """
    Resolves tokens into instances according to their provider's scope.

    Singletons are cached resolver-wide, scoped instances in the
    ``ResolutionContext`` passed to ``resolve``, transients never.
    """

    def __init__(self, registry: Registry):
        self._registry = registry
        self._singletons: dict[Token, Any] = {}
        self._locks: defaultdict[Token, threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()
        self._acyclic: set[Token] = set()
        self._acyclic_generation = -1

    def resolve(self, token: TokenLike, context: ResolutionContext) -> Any:
        """Resolve a token and return a ready instance."""
        if context.closed:
            raise ScopeClosedError(f"Cannot resolve {Token.of(token)} through closed {context!r}")
        key = Token.of(token)
        if key not in self._singletons:
            self._check_acyclic(key)
        return self._resolve(key, context, _ResolutionPath(), None)

    def _resolve(
        self,
        key: Token,
        context: ResolutionContext,
        path: _ResolutionPath,
        captured_by: Token | None,
    ) -> Any:
        if key in path:
            raise CyclicDependencyError(path.cycle_to(key))

        provider = self._registry.lookup(key)

        if provider.scope == Scope.SCOPED and captured_by is not None:
            raise ScopeViolationError(captured_by, key)

        if provider.scope == Scope.SINGLETON:
            instance = self._singletons.get(key, _MISSING)
            if instance is not _MISSING:
                return instance
            with self._lock_for(key):
                instance = self._singletons.get(key, _MISSING)
                if instance is _MISSING:
                    instance = self._construct(provider, context, path, key)
                    self._singletons[key] = instance
            return instance

        if provider.scope == Scope.SCOPED:
            instance = context.lookup(key)
            if instance is _MISSING:
                instance = self._construct(provider, context, path, None)
                context.store(key, instance)
            return instance

        return self._construct(provider, context, path, captured_by)

    def _construct(
        self,
        provider: Provider,
        context: ResolutionContext,
        path: _ResolutionPath,
        captured_by: Token | None,
    ) -> Any:
        """Resolve the provider's dependencies in order, then run its recipe."""
        path.push(provider.token)
        try:
            args = [self._resolve(dep, context, path, captured_by) for dep in provider.dependencies]
            try:
                instance = provider.construct(args)
            except Exception as exc:
                raise ProviderConstructionError(provider.token, path.tokens(), exc) from exc
            if inspect.isawaitable(instance):
                if inspect.iscoroutine(instance):
                    instance.close()
                error = TypeError("recipe returned an awaitable; acquire async resources in a loader unit")
                raise ProviderConstructionError(provider.token, path.tokens(), error)
            logger.debug("Constructed %s (%s)", provider.token, provider.scope.value)
            return instance
        finally:
            path.pop()

    def _lock_for(self, key: Token) -> threading.RLock:
        with self._locks_guard:
            return self._locks[key]

    def _check_acyclic(self, key: Token) -> None:
        """
        Fail on a cycle reachable from ``key`` before any singleton lock is taken.

        Checked tokens are remembered until the registry changes.
        """
        if key not in self._registry:
            return
        generation = self._registry.generation
        with self._locks_guard:
            if generation != self._acyclic_generation:
                self._acyclic = set()
                self._acyclic_generation = generation
            if key in self._acyclic:
                return
            known = dict.fromkeys(self._acyclic, _BLACK)

        colors: dict[Token, int] = defaultdict(lambda: _WHITE, known)
        self._visit(key, colors, [], strict=False)

        with self._locks_guard:
            if generation == self._acyclic_generation:
                self._acyclic.update(token for token, color in colors.items() if color == _BLACK)

    def _visit(self, key: Token, colors: dict[Token, int], path: list[Token], *, strict: bool) -> None:
        if colors[key] == _GRAY:
            start = path.index(key)
            raise CyclicDependencyError(path[start:] + [key])
        if colors[key] == _BLACK:
            return

        colors[key] = _GRAY
        path.append(key)
        for dep in self._registry.lookup(key).dependencies:
            if dep not in self._registry:
                if strict:
                    raise UnknownTokenError(dep, required_by=key)
                # Reported by resolution itself
                continue
            self._visit(dep, colors, path, strict=strict)
        path.pop()
        colors[key] = _BLACK

    def validate(self) -> None:
        """
        Check the whole registry without constructing anything.

        Raises:
            UnknownTokenError: If a provider depends on an unregistered token.
            CyclicDependencyError: If providers depend on each other in a cycle.
            ScopeViolationError: If a singleton would capture a scoped instance.
        """
        colors: dict[Token, int] = defaultdict(lambda: _WHITE)
        for provider in self._registry.providers():
            if colors[provider.token] == _WHITE:
                self._visit(provider.token, colors, [], strict=True)

        for provider in self._registry.providers():
            if provider.scope == Scope.SINGLETON:
                self._check_captures(provider.token, provider, set())

    def _check_captures(self, owner: Token, provider: Provider, visited: set[Token]) -> None:
        for dep in provider.dependencies:
            if dep in visited:
                continue
            visited.add(dep)
            dep_provider = self._registry.lookup(dep)
            if dep_provider.scope == Scope.SCOPED:
                raise ScopeViolationError(owner, dep)
            if dep_provider.scope == Scope.TRANSIENT:
                self._check_captures(owner, dep_provider, visited)

    def evict(self, token: TokenLike) -> bool:
        """Drop a cached singleton. Returns True if one was cached."""
        key = Token.of(token)
        with self._lock_for(key):
            return self._singletons.pop(key, _MISSING) is not _MISSING

    def is_resolved(self, token: TokenLike) -> bool:
        """Check if a singleton has already been constructed."""
        return Token.of(token) in self._singletons

    def get_instance_count(self) -> int:
        """Get the number of cached singletons."""
        return len(self._singletons)
