"""
Tokens, providers and scopes.

Plain frozen values shared by the registry, the resolver and the module
DSL. Nothing here resolves or constructs anything.
"""

from .keys import Token, TokenLike
from .providers import Provider, ProviderKind, Scope

__all__ = ["Token", "TokenLike", "Provider", "ProviderKind", "Scope"]
