"""
Token implementation for dependency injection.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Token:
    """A key that identifies a registrable capability in the object graph."""

    target: type | str
    tag: str | None = None

    @classmethod
    def of(cls, target: Token | type | str, tag: str | None = None) -> Token:
        """Normalize a type, a name or an existing Token into a Token."""
        if isinstance(target, Token):
            if tag is None or tag == target.tag:
                return target
            return cls(target.target, tag)
        return cls(target, tag)

    def __str__(self) -> str:
        tag_str = f" {self.tag}" if self.tag else ""
        target_name = self.target if isinstance(self.target, str) else getattr(self.target, "__name__", str(self.target))
        return f"{target_name}{tag_str}"

    def __hash__(self) -> int:
        return hash((self.target, self.tag))


type TokenLike = Token | type | str
