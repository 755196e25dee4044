"""Dynamic SQL credential lifecycle management."""

from __future__ import annotations

import logging

from .config import SQLConfig, configure_logging, load_settings
from .connections import AiomysqlConnectionProducer, ConnectionProducer
from .credentials import CURRENT_POLICY, LEGACY_POLICY, CredentialsProducer, LengthPolicy
from .errors import (
    ConfigurationError,
    CredentialError,
    DatabaseConnectionError,
    EmptyStatementError,
    GenerationError,
    StatementError,
    TransactionError,
)
from .executor import ExecutionMode, execute_batch, transaction
from .models import GeneratedCredential, Statements, UsernameConfig
from .mysql import MySQL, is_unsupported_prepared_statement
from .templates import render, render_batch

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AiomysqlConnectionProducer",
    "CURRENT_POLICY",
    "ConfigurationError",
    "ConnectionProducer",
    "CredentialError",
    "CredentialsProducer",
    "DatabaseConnectionError",
    "EmptyStatementError",
    "ExecutionMode",
    "GeneratedCredential",
    "GenerationError",
    "LEGACY_POLICY",
    "LengthPolicy",
    "MySQL",
    "SQLConfig",
    "StatementError",
    "Statements",
    "TransactionError",
    "UsernameConfig",
    "configure_logging",
    "execute_batch",
    "is_unsupported_prepared_statement",
    "load_settings",
    "render",
    "render_batch",
    "transaction",
]
