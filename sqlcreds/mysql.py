"""MySQL dynamic credential lifecycle: create, revoke, renew, and rotate root."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Mapping, Sequence

import aiomysql

from .config import SQLConfig
from .connections import AiomysqlConnectionProducer, ConnectionProducer
from .credentials import CURRENT_POLICY, LEGACY_POLICY, CredentialsProducer
from .errors import ConfigurationError, DatabaseConnectionError, EmptyStatementError
from .executor import ExecutionMode, UnsupportedPreparedPredicate, execute_batch, transaction
from .models import Statements, UsernameConfig
from .templates import render_batch

LOG = logging.getLogger(__name__)

MYSQL_TYPE_NAME = "mysql"

# ER_UNSUPPORTED_PS: "This command is not supported in the prepared statement protocol yet"
ER_UNSUPPORTED_PS = 1295

DEFAULT_REVOCATION_STATEMENTS = (
    """
    REVOKE ALL PRIVILEGES, GRANT OPTION FROM '{{name}}'@'%';
    DROP USER '{{name}}'@'%'
    """,
)

DEFAULT_ROTATE_ROOT_STATEMENTS = (
    """
    ALTER USER '{{username}}'@'%' IDENTIFIED BY '{{password}}';
    """,
)


def is_unsupported_prepared_statement(exc: BaseException) -> bool:
    """Whether MySQL refused to prepare a statement it can still run directly."""

    if not isinstance(exc, aiomysql.MySQLError):
        return False
    return bool(exc.args) and exc.args[0] == ER_UNSUPPORTED_PS


class MySQL:
    """Manages dynamic accounts and root credentials on one MySQL target.

    Create, revoke, and rotate are serialized by a per-instance lock held for
    the whole operation, connection acquisition included.
    """

    def __init__(
        self,
        producer: ConnectionProducer,
        credentials: CredentialsProducer,
        *,
        is_unsupported_prepared: UnsupportedPreparedPredicate = is_unsupported_prepared_statement,
    ) -> None:
        self._producer = producer
        self._credentials = credentials
        self._is_unsupported_prepared = is_unsupported_prepared
        self._lock = asyncio.Lock()

    @classmethod
    def new(cls, *, legacy: bool = False, producer: ConnectionProducer | None = None) -> MySQL:
        """Build an instance using the current or legacy username length profile."""

        policy = LEGACY_POLICY if legacy else CURRENT_POLICY
        return cls(producer or AiomysqlConnectionProducer(), CredentialsProducer(policy))

    @property
    def credentials(self) -> CredentialsProducer:
        return self._credentials

    @property
    def database_type(self) -> str:
        return MYSQL_TYPE_NAME

    @property
    def config(self) -> SQLConfig | None:
        """Connection configuration currently in effect."""

        return self._producer.config

    async def initialize(self, settings: Mapping[str, Any], verify_connection: bool = True) -> SQLConfig:
        """Decode connection settings and optionally verify connectivity."""

        async with self._lock:
            return await self._producer.initialize(settings, verify_connection)

    async def create_user(
        self,
        statements: Statements,
        username_config: UsernameConfig,
        expiration: datetime,
        *,
        timeout: float | None = None,
    ) -> tuple[str, str]:
        """Create an account from the creation statements; returns ``(username, password)``."""

        async with self._lock, asyncio.timeout(timeout):
            if not statements.creation:
                raise EmptyStatementError("No creation statements were provided")
            credential = self._credentials.generate(username_config, expiration)
            queries = render_batch(statements.creation, credential.template_context())
            if not queries:
                raise EmptyStatementError("Creation statements contain no executable SQL")
            connection = await self._producer.connection()
            async with transaction(connection) as tx:
                await execute_batch(
                    tx,
                    queries,
                    ExecutionMode.PREPARED_WITH_FALLBACK,
                    is_unsupported_prepared=self._is_unsupported_prepared,
                )
        LOG.info("Created database user", extra={"username": credential.username, "statements": len(queries)})
        return credential.username, credential.password

    async def renew_user(self, statements: Statements, username: str, expiration: datetime) -> None:
        """Leases are tracked by the caller; there is nothing to do server-side."""

        return None

    async def revoke_user(
        self,
        statements: Statements,
        username: str,
        *,
        timeout: float | None = None,
    ) -> None:
        """Revoke and drop ``username`` using the revocation statements or the defaults."""

        revocation: Sequence[str] = statements.revocation or DEFAULT_REVOCATION_STATEMENTS
        async with self._lock, asyncio.timeout(timeout):
            connection = await self._producer.connection()
            queries = render_batch(revocation, {"name": username})
            async with transaction(connection) as tx:
                # Revocation commonly uses syntax MySQL cannot prepare.
                await execute_batch(tx, queries, ExecutionMode.DIRECT_ONLY)
        LOG.info("Revoked database user", extra={"username": username, "statements": len(queries)})

    async def rotate_root_credentials(
        self,
        statements: Sequence[str] = (),
        *,
        timeout: float | None = None,
    ) -> SQLConfig:
        """Set a new password for the configured root account and return the updated config."""

        async with self._lock:
            async with asyncio.timeout(timeout):
                config = self._producer.config
                if config is None or not config.has_root_credentials():
                    raise ConfigurationError("username and password are required to rotate")
                rotation: Sequence[str] = statements or DEFAULT_ROTATE_ROOT_STATEMENTS
                password = self._credentials.generate_password()
                queries = render_batch(rotation, {"username": config.username, "password": password})
                connection = await self._producer.connection()
                async with transaction(connection) as tx:
                    await execute_batch(tx, queries, ExecutionMode.DIRECT_ONLY)

            # The new password is committed; the timeout no longer applies.
            rotated = config.with_password(password)
            self._producer.set_config(rotated)
            try:
                await self._producer.close()
            except DatabaseConnectionError as exc:
                LOG.error("Root password rotated but the old connection could not be closed", extra={"username": config.username})
                raise DatabaseConnectionError(str(exc), config=rotated) from exc
        LOG.info("Rotated root credentials", extra={"username": config.username})
        return rotated

    async def close(self) -> None:
        """Release the underlying connection."""

        async with self._lock:
            await self._producer.close()


__all__ = [
    "DEFAULT_REVOCATION_STATEMENTS",
    "DEFAULT_ROTATE_ROOT_STATEMENTS",
    "ER_UNSUPPORTED_PS",
    "MYSQL_TYPE_NAME",
    "MySQL",
    "is_unsupported_prepared_statement",
]
