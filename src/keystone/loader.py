"""
Loader units: named asynchronous initialization steps.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .model import Token, TokenLike

if TYPE_CHECKING:
    from .container import Container

type UnitRun = Callable[[Container], Awaitable[Any]]
type UnitRelease = Callable[[Any], Awaitable[None]]


class UnitState(Enum):
    """States a loader unit moves through during a bootstrap run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class LoaderUnit:
    """
    A named, independently testable async initialization step.

    ``run`` receives the container and may return a resource handle. When
    ``provides`` is set, the handle is registered back into the container as a
    singleton value under that token. ``release`` is never called by the
    orchestrator itself; see ``Application.aclose`` and ``release_units``.
    """

    name: str
    run: UnitRun
    depends_on: tuple[str, ...] = ()
    timeout: float | None = None
    provides: Token | None = None
    release: UnitRelease | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Loader unit name must not be empty")
        if not callable(self.run):
            raise TypeError(f"Loader unit {self.name} run is not callable: {self.run!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Loader unit {self.name} timeout must be positive, got {self.timeout}")
        # Ordered and de-duplicated; order only matters for cycle reporting.
        object.__setattr__(self, "depends_on", tuple(dict.fromkeys(self.depends_on)))
        if self.provides is not None:
            object.__setattr__(self, "provides", Token.of(self.provides))

    @classmethod
    def make(
        cls,
        name: str,
        run: UnitRun,
        *,
        depends_on: Iterable[str] = (),
        timeout: float | None = None,
        provides: TokenLike | None = None,
        release: UnitRelease | None = None,
    ) -> LoaderUnit:
        """Create a loader unit, accepting any iterable of predecessors and any token-like."""
        return cls(
            name,
            run,
            tuple(depends_on),
            timeout,
            Token.of(provides) if provides is not None else None,
            release,
        )

    def __str__(self) -> str:
        deps_str = f" after [{', '.join(self.depends_on)}]" if self.depends_on else ""
        return f"{self.name}{deps_str}"
