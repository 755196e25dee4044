"""Error taxonomy shared by the credential lifecycle modules."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import SQLConfig


class CredentialError(RuntimeError):
    """Base error for credential lifecycle failures."""


class ConfigurationError(CredentialError):
    """Raised when connection settings are missing or invalid."""


class EmptyStatementError(CredentialError):
    """Raised when a creation batch holds no usable statements."""


class GenerationError(CredentialError):
    """Raised when a username, password, or expiration cannot be produced."""


class StatementError(CredentialError):
    """Raised when a templated statement fails to prepare or execute.

    The rendered statement text is deliberately not kept on the exception since
    it usually embeds a generated password; ``kind`` carries its leading
    keywords instead.
    """

    def __init__(self, message: str, *, kind: str = "statement", index: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.index = index


class TransactionError(CredentialError):
    """Raised when a transaction cannot be opened, committed, or rolled back."""


class DatabaseConnectionError(CredentialError):
    """Raised when the live connection cannot be obtained or closed.

    When root rotation commits but closing the old connection fails, ``config``
    holds the configuration carrying the new (authoritative) password.
    """

    def __init__(self, message: str, *, config: "SQLConfig | None" = None) -> None:
        super().__init__(message)
        self.config = config


__all__ = [
    "ConfigurationError",
    "CredentialError",
    "DatabaseConnectionError",
    "EmptyStatementError",
    "GenerationError",
    "StatementError",
    "TransactionError",
]
