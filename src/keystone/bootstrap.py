"""
Bootstrap orchestration: plan loader units and run them in dependency order.
"""

from __future__ import annotations

import asyncio
import dataclasses
import heapq
import logging
import time
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType, TracebackType
from typing import Any

from .config import KeystoneSettings
from .container import Container
from .errors import (
    BootstrapFailure,
    CyclicLoaderDependencyError,
    DuplicateUnitError,
    PlanOrderError,
    UnitTimeoutError,
    UnresolvedDependencyError,
)
from .loader import LoaderUnit, UnitRelease, UnitRun, UnitState
from .model import TokenLike

logger = logging.getLogger(__name__)

CONTAINER_VALIDATION = "validate-container"


@dataclass(frozen=True)
class BootstrapPlan:
    """
    Topologically ordered loader units. Immutable once computed.

    Built by ``compute_plan``. A plan constructed by hand is checked on
    creation: every unit must come after the units it depends on.

    Raises:
        DuplicateUnitError: If two units share a name.
        UnresolvedDependencyError: If a unit depends on a unit missing from the plan.
        PlanOrderError: If a unit is listed before one of its dependencies.
    """

    units: tuple[LoaderUnit, ...]

    def __post_init__(self) -> None:
        names = [unit.name for unit in self.units]
        seen: set[str] = set()
        for unit in self.units:
            if unit.name in seen:
                raise DuplicateUnitError(unit.name)
            for dep in unit.depends_on:
                if dep in seen:
                    continue
                if dep in names:
                    raise PlanOrderError(unit.name, dep)
                raise UnresolvedDependencyError(unit.name, dep)
            seen.add(unit.name)

    @property
    def names(self) -> list[str]:
        return [unit.name for unit in self.units]

    def unit(self, name: str) -> LoaderUnit:
        for unit in self.units:
            if unit.name == name:
                return unit
        raise KeyError(name)

    def __iter__(self) -> Iterator[LoaderUnit]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)

    def __str__(self) -> str:
        return " -> ".join(self.names) if self.units else "BootstrapPlan.empty()"


def compute_plan(units: Iterable[LoaderUnit]) -> BootstrapPlan:
    """
    Order loader units so every unit comes after its predecessors.

    Units that become ready at the same step keep their declaration order, so
    the same input always yields the same plan.

    Raises:
        DuplicateUnitError: If two units share a name.
        UnresolvedDependencyError: If a unit depends on an undeclared unit.
        CyclicLoaderDependencyError: If the units depend on each other in a cycle.
    """
    declared = list(units)
    by_name: dict[str, LoaderUnit] = {}
    for unit in declared:
        if unit.name in by_name:
            raise DuplicateUnitError(unit.name)
        by_name[unit.name] = unit

    for unit in declared:
        for dep in unit.depends_on:
            if dep not in by_name:
                raise UnresolvedDependencyError(unit.name, dep)

    _check_cycles(declared, by_name)

    position = {unit.name: index for index, unit in enumerate(declared)}
    unmet = {unit.name: set(unit.depends_on) for unit in declared}
    dependents: dict[str, list[str]] = defaultdict(list)
    for unit in declared:
        for dep in unit.depends_on:
            dependents[dep].append(unit.name)

    ready = [position[name] for name, deps in unmet.items() if not deps]
    heapq.heapify(ready)

    ordered: list[LoaderUnit] = []
    while ready:
        unit = declared[heapq.heappop(ready)]
        ordered.append(unit)
        for dependent in dependents[unit.name]:
            unmet[dependent].discard(unit.name)
            if not unmet[dependent]:
                heapq.heappush(ready, position[dependent])

    if len(ordered) != len(declared):
        # This shouldn't happen if the cycle check passed
        raise CyclicLoaderDependencyError([unit.name for unit in declared if unit not in ordered])

    plan = BootstrapPlan(tuple(ordered))
    logger.debug("Computed bootstrap plan: %s", plan)
    return plan


def _check_cycles(declared: list[LoaderUnit], by_name: dict[str, LoaderUnit]) -> None:
    """Check for cycles between loader units using DFS."""
    done: set[str] = set()
    path: list[str] = []
    in_progress: set[str] = set()

    def dfs(name: str) -> None:
        if name in in_progress:
            start = path.index(name)
            raise CyclicLoaderDependencyError(path[start:] + [name])
        if name in done:
            return

        in_progress.add(name)
        path.append(name)
        for dep in by_name[name].depends_on:
            dfs(dep)
        path.pop()
        in_progress.discard(name)
        done.add(name)

    for unit in declared:
        dfs(unit.name)


class Application:
    """
    A fully bootstrapped application: the wired container and the handles the
    loader units returned.

    Closing it releases the units that declared a ``release`` hook, in reverse
    plan order.
    """

    def __init__(
        self,
        container: Container,
        plan: BootstrapPlan,
        handles: Mapping[str, Any],
        states: Mapping[str, UnitState],
    ):
        self.container = container
        self.plan = plan
        self.handles: Mapping[str, Any] = MappingProxyType(dict(handles))
        self.states: Mapping[str, UnitState] = MappingProxyType(dict(states))
        self._closed = False

    def handle(self, name: str) -> Any:
        """Get the handle a loader unit returned."""
        return self.handles[name]

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        """Release every succeeded unit. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await release_units(self.plan, self.handles, self.plan.names)

    async def __aenter__(self) -> Application:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


async def release_units(plan: BootstrapPlan, handles: Mapping[str, Any], names: Iterable[str]) -> None:
    """
    Call the ``release`` hooks of the named units in reverse order.

    Typically called with ``BootstrapFailure.succeeded`` and
    ``BootstrapFailure.handles``. Every hook runs even if an earlier one fails;
    failures are re-raised together as an ExceptionGroup.
    """
    errors: list[Exception] = []
    for name in reversed(list(names)):
        unit = plan.unit(name)
        if unit.release is None:
            continue
        logger.info("Releasing loader unit %s", name)
        try:
            await unit.release(handles.get(name))
        except Exception as exc:
            logger.exception("Failed to release loader unit %s", name)
            errors.append(exc)
    if errors:
        raise ExceptionGroup("Failed to release loader units", errors)


class BootstrapOrchestrator:
    """
    Runs a bootstrap plan once, one unit at a time.

    A unit never starts before the previous one has finished, so each unit may
    rely on whatever its predecessors registered into the container.
    """

    def __init__(self, plan: BootstrapPlan, *, default_timeout: float | None = None):
        self._plan = plan
        self._default_timeout = default_timeout
        self._states: dict[str, UnitState] = {unit.name: UnitState.PENDING for unit in plan}
        self._started = False

    @property
    def plan(self) -> BootstrapPlan:
        return self._plan

    @property
    def states(self) -> dict[str, UnitState]:
        return dict(self._states)

    async def run(self, container: Container) -> Application:
        """
        Execute the plan against the container.

        Returns:
            The Application holding the container and the units' handles

        Raises:
            BootstrapFailure: If a unit raises or exceeds its deadline. No
                further unit is started.
        """
        if self._started:
            raise RuntimeError("Bootstrap plan has already been run")
        self._started = True

        succeeded: list[str] = []
        handles: dict[str, Any] = {}

        for unit in self._plan:
            self._states[unit.name] = UnitState.RUNNING
            logger.info("Starting loader unit %s", unit.name)
            started_at = time.perf_counter()
            try:
                handle = await self._run_unit(unit, container)
            except Exception as exc:
                raise self._failure(unit, exc, succeeded, handles) from exc
            except asyncio.CancelledError:
                self._states[unit.name] = UnitState.FAILED
                logger.warning("Loader unit %s was cancelled", unit.name)
                raise

            if unit.provides is not None:
                try:
                    # The live handle replaces any provider declared for the same token
                    container.bind_value(unit.provides, handle, override=True)
                except Exception as exc:
                    await self._release_unregistered(unit, handle)
                    raise self._failure(unit, exc, succeeded, handles) from exc

            self._states[unit.name] = UnitState.SUCCEEDED
            succeeded.append(unit.name)
            handles[unit.name] = handle
            logger.info("Loader unit %s succeeded in %.3fs", unit.name, time.perf_counter() - started_at)

        return Application(container, self._plan, handles, self._states)

    def _failure(
        self,
        unit: LoaderUnit,
        exc: Exception,
        succeeded: list[str],
        handles: dict[str, Any],
    ) -> BootstrapFailure:
        self._states[unit.name] = UnitState.FAILED
        logger.error("Loader unit %s failed; succeeded so far: %s", unit.name, succeeded, exc_info=exc)
        return BootstrapFailure(unit.name, exc, succeeded, handles)

    async def _release_unregistered(self, unit: LoaderUnit, handle: Any) -> None:
        """Release a handle whose unit failed after producing it."""
        if unit.release is None:
            return
        logger.info("Releasing handle of failed loader unit %s", unit.name)
        try:
            await unit.release(handle)
        except Exception:
            logger.exception("Failed to release loader unit %s", unit.name)

    async def _run_unit(self, unit: LoaderUnit, container: Container) -> Any:
        timeout = unit.timeout if unit.timeout is not None else self._default_timeout
        if timeout is None:
            return await unit.run(container)

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await unit.run(container)
        except TimeoutError as exc:
            if deadline.expired():
                raise UnitTimeoutError(unit.name, timeout) from exc
            raise


async def run(plan: BootstrapPlan, container: Container, *, default_timeout: float | None = None) -> Application:
    """Run a bootstrap plan against a container."""
    return await BootstrapOrchestrator(plan, default_timeout=default_timeout).run(container)


async def _validate_container(container: Container) -> None:
    container.validate()


class Bootstrap:
    """
    Builder collecting loader units for an application.

    Example:
        ```python
        boot = Bootstrap()
        boot.unit("init_config", init_config)
        boot.unit("init_database", init_database, depends_on=["init_config"], provides=Database)
        boot.terminal("start_transport", start_transport)

        async with await boot.start(Container()) as app:
            ...
        ```
    """

    def __init__(self) -> None:
        self._units: list[LoaderUnit] = []
        self._terminal: str | None = None

    @property
    def units(self) -> list[LoaderUnit]:
        return list(self._units)

    def add(self, unit: LoaderUnit) -> LoaderUnit:
        """Declare a loader unit."""
        if self._terminal is not None:
            raise ValueError(f"Cannot declare {unit.name} after terminal unit {self._terminal}")
        self._units.append(unit)
        return unit

    def unit(
        self,
        name: str,
        run: UnitRun,
        *,
        depends_on: Iterable[str] = (),
        timeout: float | None = None,
        provides: TokenLike | None = None,
        release: UnitRelease | None = None,
    ) -> LoaderUnit:
        """Declare a loader unit from its parts."""
        return self.add(
            LoaderUnit.make(name, run, depends_on=depends_on, timeout=timeout, provides=provides, release=release)
        )

    def terminal(
        self,
        name: str,
        run: UnitRun,
        *,
        timeout: float | None = None,
        release: UnitRelease | None = None,
    ) -> LoaderUnit:
        """
        Declare the last unit, depending on every unit declared so far.

        This is where the transport starts accepting work. No unit can be
        declared after it.
        """
        unit = self.add(
            LoaderUnit.make(name, run, depends_on=[u.name for u in self._units], timeout=timeout, release=release)
        )
        self._terminal = name
        return unit

    def plan(self, *, validate: bool = False) -> BootstrapPlan:
        """
        Compute the bootstrap plan.

        With ``validate``, a container validation unit runs after every other
        unit and before the terminal one.
        """
        units = list(self._units)
        if validate:
            check = LoaderUnit.make(
                CONTAINER_VALIDATION,
                _validate_container,
                depends_on=[u.name for u in units if u.name != self._terminal],
            )
            if self._terminal is not None:
                terminal = units.pop()
                units.append(check)
                units.append(dataclasses.replace(terminal, depends_on=terminal.depends_on + (CONTAINER_VALIDATION,)))
            else:
                units.append(check)
        return compute_plan(units)

    async def start(self, container: Container | None = None, *, settings: KeystoneSettings | None = None) -> Application:
        """
        Plan and run every declared unit.

        Args:
            container: The container to wire; a new one when omitted
            settings: Orchestrator settings; read from the environment when omitted

        Raises:
            PlanError: If the units cannot be ordered. Nothing runs.
            BootstrapFailure: If a unit fails. The application is not returned.
        """
        settings = settings if settings is not None else KeystoneSettings()
        container = container if container is not None else Container()
        plan = self.plan(validate=settings.strict_validation)
        return await run(plan, container, default_timeout=settings.unit_timeout)
