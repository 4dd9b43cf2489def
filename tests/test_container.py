#!/usr/bin/env python3
"""
Unit tests for the Container facade, units of work and modules.
"""

import asyncio
import unittest

import pytest

from keystone import (
    Config,
    Container,
    CyclicDependencyError,
    DuplicateTokenError,
    Module,
    Scope,
    ScopeClosedError,
    Token,
    UnknownTokenError,
)


class Database:
    def __init__(self, config: Config):
        self.config = config


class UserService:
    def __init__(self, db: Database):
        self.db = db


class RequestContext:
    pass


class TestEndToEndWiring(unittest.TestCase):
    """Test wiring a small application through the container."""

    def test_config_database_user_service(self):
        """Test that a service's database is the same instance the container hands out."""
        container = Container()
        container.bind_value(Config, Config({"dsn": "sqlite://"}))
        container.bind(Database, Database, dependencies=[Config])
        container.bind(UserService, UserService, dependencies=[Database])

        service = container.get(UserService)

        self.assertIsInstance(service, UserService)
        self.assertIs(service.db, container.get(Database))
        self.assertEqual(service.db.config["dsn"], "sqlite://")

    def test_a_b_a_cycle(self):
        """Test that a provider cycle is reported with its full path."""
        container = Container()
        container.bind("A", lambda b: ("A", b), dependencies=["B"])
        container.bind("B", lambda a: ("B", a), dependencies=["A"])

        with self.assertRaises(CyclicDependencyError) as ctx:
            container.get("A")

        self.assertEqual(ctx.exception.cycle, [Token("A"), Token("B"), Token("A")])


class TestBinding(unittest.TestCase):
    """Test binding and overriding."""

    def test_duplicate_binding_fails(self):
        """Test that binding a token twice without override fails."""
        container = Container()
        container.bind("greeting", lambda: "hello")

        with self.assertRaises(DuplicateTokenError):
            container.bind("greeting", lambda: "bonjour")

        self.assertEqual(container.get("greeting"), "hello")

    def test_override_replaces_binding(self):
        """Test that an override is used by subsequent get calls."""
        container = Container()
        container.bind("greeting", lambda: "hello")
        container.bind("greeting", lambda: "bonjour", override=True)

        self.assertEqual(container.get("greeting"), "bonjour")

    def test_override_evicts_cached_singleton(self):
        """Test that overriding an already resolved singleton takes effect."""
        container = Container()
        container.bind("greeting", lambda: "hello")
        self.assertEqual(container.get("greeting"), "hello")

        container.bind_value("greeting", "hola", override=True)

        self.assertEqual(container.get("greeting"), "hola")

    def test_bind_rejects_values(self):
        """Test that plain values must go through bind_value."""
        container = Container()

        with self.assertRaises(TypeError):
            container.bind("answer", 42)  # type: ignore[arg-type]

    def test_singleton_and_transient_identity(self):
        """Test identity guarantees of get for singleton and transient tokens."""
        container = Container()
        container.bind("shared", object)
        container.bind("fresh", object, Scope.TRANSIENT)

        self.assertIs(container.get("shared"), container.get("shared"))
        self.assertIsNot(container.get("fresh"), container.get("fresh"))

    def test_has_and_find(self):
        """Test optional lookups."""
        container = Container()
        container.bind_value("present", 1)

        self.assertTrue(container.has("present"))
        self.assertFalse(container.has("absent"))
        self.assertEqual(container.find("present"), 1)
        self.assertIsNone(container.find("absent"))

    def test_find_still_reports_missing_dependencies(self):
        """Test that find only tolerates the requested token being unknown."""
        container = Container()
        container.bind("service", lambda db: db, dependencies=["db"])

        with self.assertRaises(UnknownTokenError):
            container.find("service")

    def test_validate(self):
        """Test validating the container's bindings."""
        container = Container()
        container.bind("service", lambda db: db, dependencies=["db"])

        with self.assertRaises(UnknownTokenError):
            container.validate()

        container.bind_value("db", "connection")
        container.validate()


class TestUnitOfWork(unittest.TestCase):
    """Test scoped lifetimes through units of work."""

    def setUp(self):
        self.container = Container()
        self.container.bind(RequestContext, RequestContext, Scope.SCOPED)

    def test_scoped_outside_unit_of_work_is_fresh_per_get(self):
        """Test that every top-level get gets its own context without an active scope."""
        self.assertIsNot(self.container.get(RequestContext), self.container.get(RequestContext))

    def test_active_scope_is_used_by_get(self):
        """Test that get uses the active unit of work."""
        with self.container.scope("request-1") as unit:
            first = self.container.get(RequestContext)
            self.assertIs(self.container.get(RequestContext), first)
            self.assertIs(unit.get(RequestContext), first)
            self.assertIs(self.container.current_scope(), unit)

        self.assertIsNone(self.container.current_scope())

    def test_units_of_work_are_isolated(self):
        """Test that different units of work get different scoped instances."""
        with self.container.scope() as first_unit:
            first = first_unit.get(RequestContext)
        with self.container.scope() as second_unit:
            second = second_unit.get(RequestContext)

        self.assertIsNot(first, second)

    def test_nested_scopes(self):
        """Test that the innermost unit of work wins and the outer one is restored."""
        with self.container.scope("outer") as outer:
            outer_instance = self.container.get(RequestContext)
            with self.container.scope("inner"):
                self.assertIsNot(self.container.get(RequestContext), outer_instance)
            self.assertIs(self.container.current_scope(), outer)
            self.assertIs(self.container.get(RequestContext), outer_instance)

    def test_closed_unit_of_work(self):
        """Test that a closed unit of work cannot be used again."""
        with self.container.scope() as unit:
            unit.get(RequestContext)

        self.assertTrue(unit.closed)
        with self.assertRaises(ScopeClosedError):
            unit.get(RequestContext)
        with self.assertRaises(ScopeClosedError):
            unit.__enter__()

    def test_scopes_belong_to_their_container(self):
        """Test that one container's active scope does not affect another."""
        other = Container()
        other.bind(RequestContext, RequestContext, Scope.SCOPED)

        with self.container.scope():
            self.assertIsNone(other.current_scope())
            self.assertIsNot(other.get(RequestContext), other.get(RequestContext))


class TestModule(unittest.TestCase):
    """Test declarative modules."""

    def test_install_module(self):
        """Test installing a module built with the fluent DSL."""
        module = Module()
        module.make(Config).from_value(Config({"dsn": "memory"}))
        module.make(Database).from_class(Database, Config)
        module.make(UserService).from_class(UserService, Database).transient()
        module.make(RequestContext).from_factory(RequestContext).scoped()

        container = Container()
        container.install(module)

        self.assertEqual(len(module), 4)
        self.assertEqual(container.registry.lookup(UserService).scope, Scope.TRANSIENT)
        self.assertEqual(container.registry.lookup(RequestContext).scope, Scope.SCOPED)
        self.assertIsNot(container.get(UserService), container.get(UserService))
        self.assertIs(container.get(UserService).db, container.get(Database))

    def test_tagged_tokens(self):
        """Test binding the same type under different tags."""
        module = Module()
        module.make(str, "primary").from_value("db-1")
        module.make(str, "replica").from_value("db-2")

        container = Container()
        container.install(module)

        self.assertEqual(container.get(Token(str, "primary")), "db-1")
        self.assertEqual(container.get(Token(str, "replica")), "db-2")

    def test_combined_modules(self):
        """Test that adding modules keeps declaration order."""
        first = Module()
        first.make("a").from_value(1)
        second = Module()
        second.make("b").from_value(2)

        combined = first + second

        self.assertEqual([p.token for p in combined.providers], [Token("a"), Token("b")])

    def test_duplicate_in_module_fails_on_install(self):
        """Test that installing a module re-registering a token fails."""
        module = Module()
        module.make("a").from_value(1)
        container = Container()
        container.install(module)

        with self.assertRaises(DuplicateTokenError):
            container.install(module)

        container.install(module, override=True)


@pytest.mark.asyncio
async def test_concurrent_requests_get_isolated_scopes() -> None:
    """Test that concurrent asyncio tasks each see their own unit of work."""
    container = Container()
    container.bind(RequestContext, RequestContext, Scope.SCOPED)

    async def handle_request(name: str) -> tuple[RequestContext, RequestContext]:
        async with container.scope(name):
            first = container.get(RequestContext)
            await asyncio.sleep(0.01)
            return first, container.get(RequestContext)

    results = await asyncio.gather(*(handle_request(f"request-{i}") for i in range(3)))

    for first, second in results:
        assert first is second
    assert len({id(first) for first, _ in results}) == 3
    assert container.current_scope() is None


if __name__ == "__main__":
    unittest.main()
