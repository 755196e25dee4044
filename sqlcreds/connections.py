"""Connection producers backing the lifecycle operations."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable
from urllib.parse import quote, unquote

import aiomysql
from pydantic import MySQLDsn, TypeAdapter, ValidationError

from .config import SQLConfig
from .errors import ConfigurationError, DatabaseConnectionError, TransactionError
from .executor import Connection
from .templates import substitute

LOG = logging.getLogger(__name__)

DEFAULT_MYSQL_PORT = 3306

_DSN_ADAPTER = TypeAdapter(MySQLDsn)
_STATEMENT_IDS = itertools.count(1)


@runtime_checkable
class ConnectionProducer(Protocol):
    """Protocol implemented by connection producers."""

    @property
    def config(self) -> SQLConfig | None: ...

    def set_config(self, config: SQLConfig) -> None: ...

    async def initialize(self, settings: Mapping[str, Any], verify_connection: bool = True) -> SQLConfig: ...

    async def connection(self) -> Connection: ...

    async def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ConnectParams:
    """Driver keyword arguments derived from a connection URL."""

    host: str
    port: int
    user: str | None
    password: str | None
    db: str | None

    def as_kwargs(self) -> dict[str, object]:
        kwargs: dict[str, object] = {"host": self.host, "port": self.port}
        if self.user:
            kwargs["user"] = self.user
        if self.password:
            kwargs["password"] = self.password
        if self.db:
            kwargs["db"] = self.db
        return kwargs


def connect_params(config: SQLConfig) -> ConnectParams:
    """Resolve ``config.connection_url`` into driver arguments.

    ``{{username}}`` and ``{{password}}`` in the URL are filled from the config
    so a rotated password takes effect on the next connection.
    """

    url = config.connection_url
    if config.username:
        url = substitute(
            url,
            {
                "username": quote(config.username, safe=""),
                "password": quote(config.password, safe=""),
            },
        )
    try:
        dsn = _DSN_ADAPTER.validate_python(url)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid MySQL connection URL: {exc.errors()[0]['msg']}") from exc
    database = (dsn.path or "").lstrip("/")
    return ConnectParams(
        host=dsn.host or "localhost",
        port=dsn.port or DEFAULT_MYSQL_PORT,
        user=unquote(dsn.username) if dsn.username else None,
        password=unquote(dsn.password) if dsn.password else None,
        db=database or None,
    )


class AiomysqlPreparedStatement:
    """Server-side prepared statement created with ``PREPARE ... FROM``."""

    def __init__(self, cursor: aiomysql.Cursor, name: str) -> None:
        self._cursor = cursor
        self._name = name

    async def execute(self) -> None:
        await self._cursor.execute(f"EXECUTE {self._name}")

    async def close(self) -> None:
        try:
            await self._cursor.execute(f"DEALLOCATE PREPARE {self._name}")
        finally:
            await self._cursor.close()


class AiomysqlTransaction:
    """Transaction on a connection borrowed from an aiomysql pool."""

    def __init__(self, pool: aiomysql.Pool, conn: aiomysql.Connection) -> None:
        self._pool = pool
        self._conn = conn
        self._finished = False

    async def prepare(self, query: str) -> AiomysqlPreparedStatement:
        # The server rejects unsupported commands here with error 1295.
        name = f"sqlcreds_stmt_{next(_STATEMENT_IDS)}"
        cursor = await self._conn.cursor()
        try:
            await cursor.execute(f"PREPARE {name} FROM %s", (query,))
        except BaseException:
            await cursor.close()
            raise
        return AiomysqlPreparedStatement(cursor, name)

    async def execute(self, query: str) -> None:
        async with self._conn.cursor() as cursor:
            await cursor.execute(query)

    async def commit(self) -> None:
        if self._finished:
            raise TransactionError("Transaction already finished")
        try:
            await self._conn.commit()
        except Exception as exc:
            raise TransactionError(f"Failed to commit transaction: {exc}") from exc
        self._finish()

    async def rollback(self) -> None:
        if self._finished:
            return
        try:
            await self._conn.rollback()
        finally:
            self._finish()

    def _finish(self) -> None:
        self._finished = True
        self._pool.release(self._conn)


class AiomysqlConnection:
    """Live handle over an aiomysql pool."""

    def __init__(self, pool: aiomysql.Pool) -> None:
        self._pool = pool

    async def begin(self) -> AiomysqlTransaction:
        try:
            conn = await self._pool.acquire()
        except Exception as exc:
            raise DatabaseConnectionError(f"Failed to acquire connection: {exc}") from exc
        try:
            await conn.begin()
        except Exception as exc:
            self._pool.release(conn)
            raise TransactionError(f"Failed to begin transaction: {exc}") from exc
        return AiomysqlTransaction(self._pool, conn)


class AiomysqlConnectionProducer:
    """Lazily opens and reuses an aiomysql pool built from ``SQLConfig``."""

    def __init__(self, *, connect_timeout: float = 5.0) -> None:
        self._connect_timeout = connect_timeout
        self._config: SQLConfig | None = None
        self._pool: aiomysql.Pool | None = None

    @property
    def config(self) -> SQLConfig | None:
        """Current connection configuration, if initialized."""

        return self._config

    def set_config(self, config: SQLConfig) -> None:
        """Replace the configuration used for future connections."""

        self._config = config

    async def initialize(self, settings: Mapping[str, Any], verify_connection: bool = True) -> SQLConfig:
        """Decode settings and optionally prove the database is reachable."""

        config = SQLConfig.from_settings(settings)
        connect_params(config)
        await self.close()
        self._config = config
        if verify_connection:
            pool = await self._ensure_pool()
            try:
                async with pool.acquire() as conn:
                    await conn.ping(reconnect=False)
            except Exception as exc:
                raise DatabaseConnectionError(f"Failed to verify connection: {exc}") from exc
        LOG.info("Initialized connection producer", extra={"verified": verify_connection})
        return config

    async def connection(self) -> AiomysqlConnection:
        """Return a handle over the shared pool, connecting on first use."""

        pool = await self._ensure_pool()
        return AiomysqlConnection(pool)

    async def close(self) -> None:
        """Close the pool; the next ``connection()`` reconnects from config."""

        pool = self._pool
        self._pool = None
        if pool is None:
            return
        try:
            pool.close()
            await pool.wait_closed()
        except Exception as exc:
            raise DatabaseConnectionError(f"Failed to close connection: {exc}") from exc
        LOG.debug("Closed connection pool")

    async def _ensure_pool(self) -> aiomysql.Pool:
        if self._pool is not None:
            return self._pool
        config = self._config
        if config is None:
            raise ConfigurationError("Connection producer is not initialized")
        params = connect_params(config)
        recycle = int(config.max_connection_lifetime) if config.max_connection_lifetime else -1
        try:
            self._pool = await aiomysql.create_pool(
                minsize=config.max_idle_connections or 0,
                maxsize=config.max_open_connections,
                pool_recycle=recycle,
                autocommit=False,
                connect_timeout=self._connect_timeout,
                **params.as_kwargs(),
            )
        except Exception as exc:
            raise DatabaseConnectionError(f"Failed to connect to {params.host}:{params.port}: {exc}") from exc
        return self._pool


__all__ = [
    "AiomysqlConnection",
    "AiomysqlConnectionProducer",
    "AiomysqlPreparedStatement",
    "AiomysqlTransaction",
    "ConnectParams",
    "ConnectionProducer",
    "connect_params",
]
