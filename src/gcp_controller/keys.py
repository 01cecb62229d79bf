"""Scoped resource addressing for Compute Engine resources.

Every Compute Engine resource lives at exactly one location scope:
global, a region, or a zone. The API rejects calls whose scope does not
match the resource's actual location, so keys carry the scope alongside
the name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class KeyScope(str, Enum):
    """Location scope of a Compute Engine resource."""

    GLOBAL = "global"
    REGIONAL = "regional"
    ZONAL = "zonal"


@dataclass(frozen=True)
class ResourceKey:
    """Immutable (name, scope) address of a provider resource."""

    name: str
    scope: KeyScope = KeyScope.GLOBAL
    region: str | None = None
    zone: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ResourceKey name cannot be empty")
        if self.scope == KeyScope.REGIONAL and not self.region:
            raise ValueError(f"Regional key {self.name!r} requires a region")
        if self.scope == KeyScope.ZONAL and not self.zone:
            raise ValueError(f"Zonal key {self.name!r} requires a zone")
        if self.scope == KeyScope.GLOBAL and (self.region or self.zone):
            raise ValueError(f"Global key {self.name!r} cannot carry a region or zone")

    @classmethod
    def global_(cls, name: str) -> ResourceKey:
        return cls(name=name)

    @classmethod
    def regional(cls, name: str, region: str) -> ResourceKey:
        return cls(name=name, scope=KeyScope.REGIONAL, region=region)

    @classmethod
    def zonal(cls, name: str, zone: str) -> ResourceKey:
        return cls(name=name, scope=KeyScope.ZONAL, zone=zone)

    @property
    def location(self) -> str:
        """Location segment used in resource paths and log output."""
        match self.scope:
            case KeyScope.REGIONAL:
                return f"regions/{self.region}"
            case KeyScope.ZONAL:
                return f"zones/{self.zone}"
            case _:
                return "global"

    def __str__(self) -> str:
        return f"{self.location}/{self.name}"
