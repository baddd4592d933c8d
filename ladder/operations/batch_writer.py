"""
Batched writer for the document store.

Accumulates writes into store batches and commits automatically once the
configured operation count is reached. The limit must stay below the store's
hard per-batch cap since one logical operation (recording a match) may queue
several document writes.

Commit failures propagate to the caller. Nothing is retried and batches that
were already committed are not rolled back.
"""

from typing import Any, Dict, Optional

from ladder.config import Config
from ladder.database.store import DocumentRef, DocumentStore, WriteBatch
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class BatchedWriter:
    """Auto-flushing wrapper around store write batches"""

    def __init__(self, store: DocumentStore, limit: Optional[int] = None):
        """
        Initialize writer with a store and an auto-commit threshold.

        Args:
            store: Document store to write to
            limit: Operations per commit (defaults to Config.BATCH_LIMIT)

        Raises:
            ValueError: If the limit is not positive or reaches the store cap
        """
        limit = Config.BATCH_LIMIT if limit is None else limit
        if limit <= 0:
            raise ValueError("Batch limit must be positive")
        if limit >= store.MAX_BATCH_OPERATIONS:
            raise ValueError(
                f"Batch limit {limit} must be below the store cap of {store.MAX_BATCH_OPERATIONS}"
            )

        self.store = store
        self.limit = limit
        self.commits = 0
        self.operations = 0
        self._batch: WriteBatch = store.batch()

    @property
    def pending(self) -> int:
        return len(self._batch)

    async def update(self, ref: DocumentRef, patch: Dict[str, Any]) -> None:
        self._batch.update(ref, patch)
        await self._after_enqueue()

    async def set(self, ref: DocumentRef, data: Dict[str, Any], merge: bool = False) -> None:
        self._batch.set(ref, data, merge=merge)
        await self._after_enqueue()

    async def delete(self, ref: DocumentRef) -> None:
        self._batch.delete(ref)
        await self._after_enqueue()

    async def _after_enqueue(self) -> None:
        self.operations += 1
        if len(self._batch) >= self.limit:
            await self.flush()

    async def flush(self) -> None:
        """Commit any queued operations and start a fresh batch"""
        if not len(self._batch):
            return
        batch, self._batch = self._batch, self.store.batch()
        count = len(batch)
        await batch.commit()
        self.commits += 1
        logger.debug(f"Committed batch #{self.commits} with {count} operations")

    async def __aenter__(self) -> 'BatchedWriter':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # Queued writes are only committed when the unit of work succeeded
        if exc_type is None:
            await self.flush()
