"""SQL storage adapter built on SQLAlchemy's asyncio extension.

This adapter keeps idempotency records in a single ``idempotency`` table whose
primary key is (owner_id, idempotency_key). It is the backend to use when
several server processes share the same keys.

Claim protocol:
    1. Open a connection and begin a transaction
    2. ``INSERT ... ON CONFLICT DO NOTHING`` the in-flight row
    3. One row inserted: the transaction stays open and is held by the adapter
       until complete() (UPDATE + COMMIT) or release() (ROLLBACK). On
       PostgreSQL a conflicting INSERT from any other connection blocks on
       the uncommitted row until then, and re-checks afterwards.
    4. No row inserted: read the existing row in the same transaction and
       return its saved response.

Within one process, claims for the same pair also queue on a per-pair
asyncio.Lock, so duplicates do not take extra pool connections.

Supported dialects: PostgreSQL (asyncpg) and SQLite (aiosqlite). SQLite locks
the whole database for writing, so it only suits tests and single-writer
deployments.

Examples:
    Creating the adapter::

        from idempotency_guard.storage.sql import SQLStorageAdapter, create_schema

        adapter = SQLStorageAdapter.from_url(
            "postgresql+asyncpg://app:secret@db:5432/newsletter"
        )
        await create_schema(adapter.engine)
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, LargeBinary, SmallInteger, String, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from idempotency_guard.core.snapshot import decode_headers, decode_response, encode_headers
from idempotency_guard.exceptions import NoSuchClaimError, StorageError
from idempotency_guard.models import ClaimOutcome, IdempotencyRecord
from idempotency_guard.observability.logging import get_logger
from idempotency_guard.storage.base import StorageAdapter
from idempotency_guard.storage.locks import Pair, PairLocks

logger = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class IdempotencyRow(Base):
    __tablename__ = "idempotency"

    owner_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    response_status_code: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    response_headers: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


idempotency_table = IdempotencyRow.__table__


async def create_schema(engine: AsyncEngine) -> None:
    """Create the idempotency table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class SQLStorageAdapter(StorageAdapter):
    """Storage adapter backed by a relational database.

    Attributes:
        engine: The SQLAlchemy async engine.
        _claims: Open transactions of the claims held by this process.
        _locks: Per-pair lock registry.
        _lock_timeout_seconds: Bound on waiting for a pair held in-process.
    """

    def __init__(self, engine: AsyncEngine, lock_timeout_seconds: float | None = None) -> None:
        self.engine = engine
        self._claims: dict[Pair, AsyncConnection] = {}
        self._locks = PairLocks()
        self._lock_timeout_seconds = lock_timeout_seconds

    @classmethod
    def from_url(
        cls,
        database_url: str,
        lock_timeout_seconds: float | None = None,
        **engine_kwargs: Any,
    ) -> "SQLStorageAdapter":
        engine = create_async_engine(database_url, pool_pre_ping=True, **engine_kwargs)
        return cls(engine, lock_timeout_seconds=lock_timeout_seconds)

    def _insert_in_flight(self, owner_id: str, key: str) -> Any:
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise StorageError(f"Unsupported database dialect: {dialect}")

        return (
            insert(idempotency_table)
            .values(
                owner_id=owner_id,
                idempotency_key=key,
                created_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=["owner_id", "idempotency_key"])
        )

    @staticmethod
    def _select_pair(owner_id: str, key: str) -> Any:
        return select(idempotency_table).where(
            idempotency_table.c.owner_id == owner_id,
            idempotency_table.c.idempotency_key == key,
        )

    @staticmethod
    def _record_from_row(row: Any) -> IdempotencyRecord:
        headers = row["response_headers"]
        return IdempotencyRecord(
            owner_id=row["owner_id"],
            idempotency_key=row["idempotency_key"],
            response_status_code=row["response_status_code"],
            response_headers=decode_headers(headers) if headers is not None else None,
            response_body=row["response_body"],
            created_at=row["created_at"],
        )

    async def claim(self, owner_id: str, key: str) -> ClaimOutcome:
        pair = (owner_id, key)
        lock = await self._locks.acquire(pair, self._lock_timeout_seconds)
        if lock is None:
            return ClaimOutcome.conflict(None)

        conn: AsyncConnection | None = None
        claimed = False
        try:
            conn = await self.engine.connect()
            await conn.begin()
            result = await conn.execute(self._insert_in_flight(owner_id, key))
            if result.rowcount == 1:
                self._claims[pair] = conn
                claimed = True
                return ClaimOutcome.claimed()

            row = (await conn.execute(self._select_pair(owner_id, key))).mappings().one_or_none()
            await conn.commit()
        except SQLAlchemyError as e:
            logger.error("storage.error", operation="claim", owner_id=owner_id, key=key, error=str(e))
            raise StorageError(f"Failed to claim idempotency key {key}: {e}", cause=e) from e
        finally:
            if not claimed:
                if conn is not None:
                    await conn.close()
                lock.release()

        if row is None:
            # The conflicting claim was rolled back after our insert was skipped
            return ClaimOutcome.conflict(None)

        record = self._record_from_row(row)
        if record.is_completed:
            return ClaimOutcome.conflict(decode_response(record))
        return ClaimOutcome.conflict(None)

    async def complete(
        self,
        owner_id: str,
        key: str,
        response_status_code: int,
        response_headers: list[tuple[bytes, bytes]],
        response_body: bytes,
    ) -> None:
        pair = (owner_id, key)
        conn = self._claims.pop(pair, None)
        if conn is None:
            raise NoSuchClaimError(
                f"No in-flight claim for key {key}",
                owner_id=owner_id,
                key=key,
            )

        stmt = (
            update(idempotency_table)
            .where(
                idempotency_table.c.owner_id == owner_id,
                idempotency_table.c.idempotency_key == key,
                idempotency_table.c.response_status_code.is_(None),
            )
            .values(
                response_status_code=response_status_code,
                response_headers=encode_headers(response_headers),
                response_body=response_body,
            )
        )
        completed = False
        try:
            result = await conn.execute(stmt)
            if result.rowcount != 1:
                await conn.rollback()
                raise NoSuchClaimError(
                    f"No in-flight record for key {key}",
                    owner_id=owner_id,
                    key=key,
                )
            await conn.commit()
            completed = True
        except SQLAlchemyError as e:
            logger.error("storage.error", operation="complete", owner_id=owner_id, key=key, error=str(e))
            raise StorageError(f"Failed to save response for key {key}: {e}", cause=e) from e
        finally:
            await conn.close()
            if completed:
                self._locks.retire(pair)
            else:
                self._locks.release(pair)

    async def lookup(self, owner_id: str, key: str) -> IdempotencyRecord | None:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(self._select_pair(owner_id, key))
                row = result.mappings().one_or_none()
        except SQLAlchemyError as e:
            logger.error("storage.error", operation="lookup", owner_id=owner_id, key=key, error=str(e))
            raise StorageError(f"Failed to look up key {key}: {e}", cause=e) from e

        if row is None:
            return None
        return self._record_from_row(row)

    async def release(self, owner_id: str, key: str) -> None:
        """Roll back a held claim's transaction, removing the in-flight row."""
        pair = (owner_id, key)
        conn = self._claims.pop(pair, None)
        if conn is None:
            return

        try:
            await conn.rollback()
        except SQLAlchemyError as e:
            logger.error("storage.error", operation="release", owner_id=owner_id, key=key, error=str(e))
            raise StorageError(f"Failed to release claim for key {key}: {e}", cause=e) from e
        finally:
            await conn.close()
            self._locks.release(pair)

    async def dispose(self) -> None:
        """Roll back any held claims and close the engine's pool."""
        for owner_id, key in list(self._claims):
            await self.release(owner_id, key)
        await self.engine.dispose()
