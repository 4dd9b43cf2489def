"""
Configuration sources.

``Config`` is the read-only option mapping an application registers as a
singleton with no dependencies. ``KeystoneSettings`` holds keystone's own
knobs, loaded from ``KEYSTONE_*`` environment variables.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KeystoneSettings(BaseSettings):
    """Settings for the bootstrap orchestrator."""

    model_config = SettingsConfigDict(env_prefix="KEYSTONE_", extra="ignore")

    unit_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Deadline in seconds for loader units that do not declare their own",
    )
    strict_validation: bool = Field(
        default=True,
        description="Validate the container bindings before running the bootstrap plan",
    )


class Config(Mapping[str, Any]):
    """Read-only mapping from option name to resolved value."""

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values = MappingProxyType(dict(values or {}))

    @classmethod
    def from_settings(cls, settings: BaseSettings) -> Config:
        """Build a Config from a pydantic-settings model."""
        return cls(settings.model_dump())

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Config({sorted(self._values)})"
