"""Shared dataclasses used across the lifecycle modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

TemplateContext = Mapping[str, str]
StatementBatch = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class UsernameConfig:
    """Name material supplied by the orchestrator for a new account."""

    display_name: str = ""
    role_name: str = ""


@dataclass(frozen=True, slots=True)
class Statements:
    """Raw statement batches attached to a role."""

    creation: StatementBatch = ()
    revocation: StatementBatch = ()
    renewal: StatementBatch = ()


@dataclass(frozen=True, slots=True)
class GeneratedCredential:
    """Values produced once per creation call."""

    username: str
    password: str
    expiration: str

    def template_context(self) -> dict[str, str]:
        """Placeholder values used when rendering creation statements."""

        return {
            "name": self.username,
            "password": self.password,
            "expiration": self.expiration,
        }


__all__ = [
    "GeneratedCredential",
    "StatementBatch",
    "Statements",
    "TemplateContext",
    "UsernameConfig",
]
