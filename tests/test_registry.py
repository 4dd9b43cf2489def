#!/usr/bin/env python3
"""
Unit tests for tokens, providers and the registry.
"""

import unittest

from keystone import (
    DuplicateTokenError,
    Provider,
    ProviderKind,
    Registry,
    Scope,
    Token,
    UnknownTokenError,
)


class Database:
    pass


class TestToken(unittest.TestCase):
    """Test token identity."""

    def test_type_and_name_tokens(self):
        """Test tokens built from types and names."""
        self.assertEqual(Token.of(Database), Token(Database))
        self.assertEqual(Token.of("db"), Token("db"))
        self.assertNotEqual(Token(Database), Token("Database"))

    def test_tagged_tokens_are_distinct(self):
        """Test that tags distinguish tokens for the same type."""
        self.assertNotEqual(Token(Database, "primary"), Token(Database, "replica"))
        self.assertEqual(Token.of(Token(Database), "replica"), Token(Database, "replica"))

    def test_of_returns_existing_token(self):
        """Test that normalizing a Token returns it unchanged."""
        token = Token(Database, "primary")
        self.assertIs(Token.of(token), token)

    def test_str(self):
        """Test readable token names."""
        self.assertEqual(str(Token(Database)), "Database")
        self.assertEqual(str(Token(Database, "replica")), "Database replica")
        self.assertEqual(str(Token("config")), "config")


class TestProvider(unittest.TestCase):
    """Test provider construction."""

    def test_class_provider(self):
        """Test that class providers normalize their dependency tokens."""
        provider = Provider.for_class(Database, Database, ["config"], Scope.TRANSIENT)

        self.assertEqual(provider.kind, ProviderKind.CLASS)
        self.assertEqual(provider.dependencies, (Token("config"),))
        self.assertEqual(provider.scope, Scope.TRANSIENT)

    def test_factory_provider_passes_arguments_in_order(self):
        """Test that recipes receive dependencies positionally, in declared order."""
        provider = Provider.for_factory("pair", lambda a, b: (a, b), ["a", "b"])

        self.assertEqual(provider.construct([1, 2]), (1, 2))

    def test_value_provider(self):
        """Test that value providers return the value itself."""
        value = object()
        provider = Provider.for_value("thing", value)

        self.assertIs(provider.construct([]), value)
        self.assertEqual(provider.scope, Scope.SINGLETON)

    def test_value_provider_rejects_other_scopes(self):
        """Test that values cannot be transient or scoped."""
        with self.assertRaises(ValueError):
            Provider(Token("thing"), ProviderKind.VALUE, 1, scope=Scope.TRANSIENT)

    def test_non_callable_recipe_rejected(self):
        """Test that factory recipes must be callable."""
        with self.assertRaises(TypeError):
            Provider.for_factory("thing", 42)  # type: ignore[arg-type]


class TestRegistry(unittest.TestCase):
    """Test registry bookkeeping."""

    def test_register_and_lookup(self):
        """Test looking up a registered provider by type or token."""
        registry = Registry()
        provider = Provider.for_class(Database, Database)
        registry.register(provider)

        self.assertIs(registry.lookup(Database), provider)
        self.assertIs(registry.lookup(Token(Database)), provider)
        self.assertIn(Database, registry)
        self.assertEqual(len(registry), 1)

    def test_duplicate_token(self):
        """Test that registering a token twice fails."""
        registry = Registry()
        registry.register(Provider.for_value("config", {}))

        with self.assertRaises(DuplicateTokenError) as ctx:
            registry.register(Provider.for_value("config", {"a": 1}))

        self.assertEqual(ctx.exception.token, Token("config"))
        self.assertEqual(registry.lookup("config").recipe, {})

    def test_override_replaces_provider(self):
        """Test that an explicit override replaces the existing provider."""
        registry = Registry()
        registry.register(Provider.for_value("config", {}))
        replacement = Provider.for_value("config", {"a": 1})
        registry.register(replacement, override=True)

        self.assertIs(registry.lookup("config"), replacement)
        self.assertEqual(len(registry), 1)

    def test_unknown_token(self):
        """Test looking up a token that was never registered."""
        registry = Registry()

        with self.assertRaises(UnknownTokenError) as ctx:
            registry.lookup("missing")

        self.assertEqual(ctx.exception.token, Token("missing"))
        self.assertIsNone(ctx.exception.required_by)

    def test_iteration_keeps_registration_order(self):
        """Test that tokens iterate in registration order."""
        registry = Registry()
        for name in ["c", "a", "b"]:
            registry.register(Provider.for_value(name, name))

        self.assertEqual(list(registry), [Token("c"), Token("a"), Token("b")])
        self.assertEqual([p.recipe for p in registry.providers()], ["c", "a", "b"])

    def test_contains_ignores_unrelated_objects(self):
        """Test membership checks with non-token objects."""
        registry = Registry()

        self.assertNotIn(42, registry)


if __name__ == "__main__":
    unittest.main()
