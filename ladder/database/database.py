import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ladder.config import Config
from ladder.database.models import Base, Document
from ladder.database.store import (
    DocumentStore, DocumentSnapshot, FieldFilter, WriteOperation,
    apply_set, apply_update, matches_filters, sort_snapshots
)
from ladder.utils.exceptions import DocumentNotFoundError
from ladder.utils.logger import setup_logger


def _snapshot(row: Document) -> DocumentSnapshot:
    return DocumentSnapshot(
        collection=row.collection,
        id=row.doc_id,
        data=copy.deepcopy(row.data or {}),
        sequence=row.id
    )


class Database(DocumentStore):
    """Document store backed by a single SQLAlchemy table"""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = self.database_url or Config.get_async_database_url()
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context will be committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Read operations
    async def list_collections(self) -> List[str]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Document.collection).distinct().order_by(Document.collection)
            )
            return list(result.scalars().all())

    async def query(self, collection: str, filters: Sequence[FieldFilter] = (),
                    order_by: Optional[Union[str, Tuple[str, str]]] = None) -> List[DocumentSnapshot]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.id)
            )
            snapshots = [_snapshot(row) for row in result.scalars().all()]

        snapshots = [snap for snap in snapshots if matches_filters(snap.data, filters)]
        return sort_snapshots(snapshots, order_by)

    async def get_by_id(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Document).where(
                    Document.collection == collection,
                    Document.doc_id == doc_id
                )
            )
            row = result.scalar_one_or_none()
            return _snapshot(row) if row else None

    async def _get_many(self, collection: str, doc_ids: Sequence[str]) -> Dict[str, DocumentSnapshot]:
        if not doc_ids:
            return {}
        async with self.get_session() as session:
            result = await session.execute(
                select(Document).where(
                    Document.collection == collection,
                    Document.doc_id.in_(list(doc_ids))
                )
            )
            return {row.doc_id: _snapshot(row) for row in result.scalars().all()}

    # Write operations
    async def commit_operations(self, operations: Sequence[WriteOperation]) -> None:
        """Apply a batch of writes in one transaction"""
        async with self.transaction() as session:
            for operation in operations:
                await self._apply_operation(session, operation)

    async def _apply_operation(self, session: AsyncSession, operation: WriteOperation) -> None:
        ref = operation.ref
        if operation.kind == "delete":
            await session.execute(
                delete(Document).where(
                    Document.collection == ref.collection,
                    Document.doc_id == ref.id
                )
            )
            return

        result = await session.execute(
            select(Document).where(
                Document.collection == ref.collection,
                Document.doc_id == ref.id
            )
        )
        row = result.scalar_one_or_none()

        if operation.kind == "update":
            if row is None:
                raise DocumentNotFoundError(ref.collection, ref.id)
            # Reassign so the JSON column registers the change
            row.data = apply_update(row.data or {}, operation.data)
        elif operation.kind == "set":
            existing = row.data if row is not None else None
            new_data = apply_set(existing, operation.data, operation.merge)
            if row is None:
                session.add(Document(collection=ref.collection, doc_id=ref.id, data=new_data))
            else:
                row.data = new_data
        else:
            raise ValueError(f"Unknown write operation: {operation.kind}")

        # Make earlier writes in this batch visible to later reads of the same document
        await session.flush()

    async def seed(self, collection: str, documents: Dict[str, Dict[str, Any]]) -> None:
        """Insert or overwrite documents directly (fixtures and imports)"""
        items = list(documents.items())
        for start in range(0, len(items), self.MAX_BATCH_OPERATIONS):
            batch = self.batch()
            for doc_id, data in items[start:start + self.MAX_BATCH_OPERATIONS]:
                batch.set(self.doc(collection, doc_id), data)
            await batch.commit()
