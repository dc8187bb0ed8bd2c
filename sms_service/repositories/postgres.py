from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import asyncpg

from sms_service.domain.errors import DomainDependencyError, DomainInvariantError, StoreUnavailableError
from sms_service.domain.ids import new_message_public_id
from sms_service.domain.models import Message, MessageStatus
from sms_service.repositories.sql_loader import load_sql


SQL_CREATE_MESSAGE = load_sql("create_message.sql")
SQL_GET_MESSAGE = load_sql("get_message.sql")
SQL_CONDITIONAL_UPDATE_STATUS = load_sql("conditional_update_status.sql")
SQL_FIND_BY_SOURCE = load_sql("find_by_source.sql")
SQL_FIND_BY_DESTINATION = load_sql("find_by_destination.sql")
SQL_FIND_BY_STATUS = load_sql("find_by_status.sql")
SQL_COUNT_BY_STATUS = load_sql("count_by_status.sql")

# Failures that mean "backend unreachable right now" rather than a bug.
CONNECTIVITY_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
    asyncpg.AdminShutdownError,
    asyncpg.TooManyConnectionsError,
    asyncpg.InterfaceError,
)


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23505"


@dataclass
class AsyncpgPoolManager:
    dsn: str
    min_size: int = 1
    max_size: int = 5
    pool: Any | None = None

    async def startup(self) -> None:
        self.pool = await asyncpg.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None


@asynccontextmanager
async def acquire_connection(
    pool_manager: AsyncpgPoolManager,
    *,
    error_type: type[DomainDependencyError],
) -> AsyncIterator[Any]:
    """Acquire a pooled connection, translating connectivity failures into ``error_type``."""
    if pool_manager.pool is None:
        raise error_type("postgres pool is not initialized")
    try:
        async with pool_manager.pool.acquire() as conn:
            yield conn
    except CONNECTIVITY_ERRORS as exc:
        raise error_type(f"postgres is unavailable: {exc}") from exc


@dataclass
class PostgresMessageStore:
    pool_manager: AsyncpgPoolManager

    async def create(self, message: Message) -> Message:
        if message.id is not None:
            raise DomainInvariantError("message id is assigned by the store")
        async with acquire_connection(self.pool_manager, error_type=StoreUnavailableError) as conn:
            for _ in range(5):
                try:
                    row = await conn.fetchrow(
                        SQL_CREATE_MESSAGE,
                        new_message_public_id(),
                        message.source_address,
                        message.destination_address,
                        message.content,
                        message.status.value,
                        message.failure_reason,
                        message.created_at,
                        message.updated_at,
                    )
                except asyncpg.PostgresError as exc:
                    if _is_unique_violation(exc):
                        continue
                    raise
                if row is None:
                    raise DomainInvariantError("failed to create message")
                return _row_to_message(row)
        raise DomainInvariantError("failed to allocate unique message public id")

    async def get_by_id(self, message_id: str) -> Message | None:
        async with acquire_connection(self.pool_manager, error_type=StoreUnavailableError) as conn:
            row = await conn.fetchrow(SQL_GET_MESSAGE, message_id)
        if row is None:
            return None
        return _row_to_message(row)

    async def conditional_update(
        self,
        *,
        message_id: str,
        expected_status: MessageStatus,
        new_status: MessageStatus,
        failure_reason: str | None,
        updated_at: datetime,
    ) -> bool:
        async with acquire_connection(self.pool_manager, error_type=StoreUnavailableError) as conn:
            updated = await conn.fetchval(
                SQL_CONDITIONAL_UPDATE_STATUS,
                message_id,
                expected_status.value,
                new_status.value,
                failure_reason,
                updated_at,
            )
        return updated is not None

    async def find_by_source(self, address: str) -> list[Message]:
        return await self._fetch_many(SQL_FIND_BY_SOURCE, address)

    async def find_by_destination(self, address: str) -> list[Message]:
        return await self._fetch_many(SQL_FIND_BY_DESTINATION, address)

    async def find_by_status(self, status: MessageStatus) -> list[Message]:
        return await self._fetch_many(SQL_FIND_BY_STATUS, status.value)

    async def count_by_status(self) -> dict[MessageStatus, int]:
        async with acquire_connection(self.pool_manager, error_type=StoreUnavailableError) as conn:
            rows = await conn.fetch(SQL_COUNT_BY_STATUS)
        counts = {status: 0 for status in MessageStatus}
        for row in rows:
            counts[MessageStatus(row["status"])] = int(row["total"])
        return counts

    async def _fetch_many(self, sql: str, *args: object) -> list[Message]:
        async with acquire_connection(self.pool_manager, error_type=StoreUnavailableError) as conn:
            rows = await conn.fetch(sql, *args)
        return [_row_to_message(row) for row in rows]


def _row_to_message(row: Any) -> Message:
    return Message(
        id=row["public_id"],
        source_address=row["source_number"],
        destination_address=row["destination_number"],
        content=row["message_content"],
        status=MessageStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        failure_reason=row["error_message"],
    )
