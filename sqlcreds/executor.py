"""Transactional execution of rendered statement batches."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Callable, Protocol, Sequence

from .errors import DatabaseConnectionError, StatementError, TransactionError
from .templates import statement_kind

LOG = logging.getLogger(__name__)

UnsupportedPreparedPredicate = Callable[[BaseException], bool]


class ExecutionMode(str, Enum):
    """How each statement of a batch is sent to the server."""

    PREPARED_WITH_FALLBACK = "prepared_with_fallback"
    DIRECT_ONLY = "direct_only"


class PreparedStatement(Protocol):
    """A server-side prepared statement bound to one transaction."""

    async def execute(self) -> None: ...

    async def close(self) -> None: ...


class Transaction(Protocol):
    """Interface implemented by driver transaction adapters."""

    async def prepare(self, query: str) -> PreparedStatement: ...

    async def execute(self, query: str) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class Connection(Protocol):
    """A live database handle able to open transactions."""

    async def begin(self) -> Transaction: ...


def never_unsupported(_exc: BaseException) -> bool:
    """Predicate for engines that can prepare every statement."""

    return False


@asynccontextmanager
async def transaction(connection: Connection) -> AsyncIterator[Transaction]:
    """Open a transaction, commit on success, and roll back on any failure."""

    try:
        tx = await connection.begin()
    except (TransactionError, DatabaseConnectionError):
        raise
    except Exception as exc:
        raise TransactionError(f"Failed to begin transaction: {exc}") from exc
    try:
        yield tx
    except BaseException:
        await _rollback_quietly(tx)
        raise
    try:
        await tx.commit()
    except BaseException as exc:
        await _rollback_quietly(tx)
        if isinstance(exc, Exception) and not isinstance(exc, TransactionError):
            raise TransactionError(f"Failed to commit transaction: {exc}") from exc
        raise


async def execute_batch(
    tx: Transaction,
    statements: Sequence[str],
    mode: ExecutionMode,
    *,
    is_unsupported_prepared: UnsupportedPreparedPredicate = never_unsupported,
) -> None:
    """Run ``statements`` in order on ``tx``; the first failure aborts the batch."""

    for index, query in enumerate(statements):
        kind = statement_kind(query)
        if mode is ExecutionMode.DIRECT_ONLY:
            await _execute_direct(tx, query, kind=kind, index=index)
        else:
            await _execute_prepared(tx, query, kind=kind, index=index, is_unsupported_prepared=is_unsupported_prepared)
        LOG.debug("Executed statement", extra={"kind": kind, "index": index, "mode": mode.value})


async def _execute_prepared(
    tx: Transaction,
    query: str,
    *,
    kind: str,
    index: int,
    is_unsupported_prepared: UnsupportedPreparedPredicate,
) -> None:
    try:
        prepared = await tx.prepare(query)
    except Exception as exc:
        if not is_unsupported_prepared(exc):
            raise StatementError(_failure_message("prepare", kind, index, exc), kind=kind, index=index) from exc
        LOG.debug("Statement cannot be prepared; executing directly", extra={"kind": kind, "index": index})
        await _execute_direct(tx, query, kind=kind, index=index)
        return
    try:
        await prepared.execute()
    except Exception as exc:
        raise StatementError(_failure_message("execute", kind, index, exc), kind=kind, index=index) from exc
    finally:
        try:
            await prepared.close()
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.warning("Failed to close prepared statement", extra={"kind": kind, "index": index})


async def _execute_direct(tx: Transaction, query: str, *, kind: str, index: int) -> None:
    try:
        await tx.execute(query)
    except Exception as exc:
        raise StatementError(_failure_message("execute", kind, index, exc), kind=kind, index=index) from exc


def _failure_message(action: str, kind: str, index: int, exc: BaseException) -> str:
    # Driver messages can echo the statement text, credentials included.
    code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else type(exc).__name__
    return f"Failed to {action} {kind} (statement {index}, error {code})"


async def _rollback_quietly(tx: Transaction) -> None:
    try:
        await tx.rollback()
    except Exception:
        LOG.warning("Rollback failed", exc_info=True)


__all__ = [
    "Connection",
    "ExecutionMode",
    "PreparedStatement",
    "Transaction",
    "UnsupportedPreparedPredicate",
    "execute_batch",
    "never_unsupported",
    "transaction",
]
