"""
Document store contract used by the rating engine.

The rating engine only needs a small slice of a document database:
- list_collections(): discover per-sport collections
- query(): equality/range filters with optional ordering
- get_by_id() / batch_get_by_ids(): point reads, chunked for large id lists
- batch(): atomic write batches with update/set/delete and a hard operation cap

Updates use dotted field paths ("sports.pingpong.globalElo") and support the
field transforms DELETE_FIELD, Increment and ArrayUnion.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ladder.config import Config
from ladder.utils.exceptions import BatchLimitError


@dataclass(frozen=True)
class DocumentRef:
    """Reference to a single document"""
    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass
class DocumentSnapshot:
    """Document contents as read from the store"""
    collection: str
    id: str
    data: Dict[str, Any]
    sequence: int = 0  # Insertion order within the store

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(self.collection, self.id)

    def get(self, path: str, default: Any = None) -> Any:
        return get_field(self.data, path, default)


class _DeleteField:
    def __repr__(self):
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


@dataclass(frozen=True)
class Increment:
    """Add to the current numeric value (missing counts as 0)"""
    amount: Union[int, float]


@dataclass(frozen=True)
class ArrayUnion:
    """Append elements not already present in the current array"""
    elements: Tuple[Any, ...]

    def __init__(self, *elements):
        object.__setattr__(self, 'elements', tuple(elements))


_MISSING = object()


def get_field(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted field path from nested document data"""
    current: Any = data
    for part in path.split('.'):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def _transform(current: Any, value: Any) -> Any:
    """Resolve a field transform against the current stored value"""
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.amount
    if isinstance(value, ArrayUnion):
        result = list(current) if isinstance(current, list) else []
        for element in value.elements:
            if element not in result:
                result.append(copy.deepcopy(element))
        return result
    if isinstance(value, dict):
        return {
            key: _transform(_MISSING, nested)
            for key, nested in value.items()
            if nested is not DELETE_FIELD
        }
    return copy.deepcopy(value)


def _set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split('.')
    target = data
    for part in parts[:-1]:
        nested = target.get(part)
        if not isinstance(nested, dict):
            if value is DELETE_FIELD:
                return
            nested = {}
            target[part] = nested
        target = nested
    leaf = parts[-1]
    if value is DELETE_FIELD:
        target.pop(leaf, None)
    else:
        target[leaf] = _transform(target.get(leaf, _MISSING), value)


def apply_update(data: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply an update patch to document data.

    Keys are dotted field paths; values replace the field unless they are a
    field transform. Returns a new dict and leaves the input untouched.
    """
    result = copy.deepcopy(data)
    for path, value in patch.items():
        _set_path(result, path, value)
    return result


def _merge(target: Dict[str, Any], data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if value is DELETE_FIELD:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = _transform(target.get(key, _MISSING), value)


def apply_set(existing: Optional[Dict[str, Any]], data: Dict[str, Any],
              merge: bool = False) -> Dict[str, Any]:
    """Apply a set operation; merge=True deep-merges maps into existing data"""
    if merge and existing is not None:
        result = copy.deepcopy(existing)
        _merge(result, data)
        return result
    return _transform(_MISSING, data)


FieldFilter = Tuple[str, str, Any]

_FILTER_OPERATORS = {
    '==': lambda value, expected: value == expected,
    '!=': lambda value, expected: value != expected,
    '<': lambda value, expected: value < expected,
    '<=': lambda value, expected: value <= expected,
    '>': lambda value, expected: value > expected,
    '>=': lambda value, expected: value >= expected,
    'in': lambda value, expected: value in expected,
    'array-contains': lambda value, expected: isinstance(value, list) and expected in value,
}


def matches_filters(data: Dict[str, Any], filters: Sequence[FieldFilter]) -> bool:
    """Check document data against (field, operator, value) filters"""
    for path, operator, expected in filters:
        if operator not in _FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {operator}")
        value = get_field(data, path, _MISSING)
        if value is _MISSING:
            return False
        try:
            if not _FILTER_OPERATORS[operator](value, expected):
                return False
        except TypeError:
            return False
    return True


def sort_snapshots(snapshots: List[DocumentSnapshot],
                   order_by: Optional[Union[str, Tuple[str, str]]]) -> List[DocumentSnapshot]:
    """Order snapshots by a field, stable on insertion order; drops docs missing the field"""
    snapshots = sorted(snapshots, key=lambda snap: snap.sequence)
    if not order_by:
        return snapshots
    if isinstance(order_by, str):
        path, direction = order_by, 'asc'
    else:
        path, direction = order_by
    present = [snap for snap in snapshots if snap.get(path, _MISSING) is not _MISSING]
    return sorted(present, key=lambda snap: snap.get(path), reverse=(direction == 'desc'))


@dataclass
class WriteOperation:
    """A single queued write"""
    kind: str  # "update", "set" or "delete"
    ref: DocumentRef
    data: Dict[str, Any] = field(default_factory=dict)
    merge: bool = False


class WriteBatch:
    """
    Atomic group of writes committed together.

    A batch accepts at most the store's operation cap; exceeding it raises
    BatchLimitError. A committed batch cannot be reused.
    """

    def __init__(self, store: 'DocumentStore', max_operations: int):
        self.store = store
        self.max_operations = max_operations
        self.operations: List[WriteOperation] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self.operations)

    def _enqueue(self, operation: WriteOperation) -> None:
        if self._committed:
            raise ValueError("Write batch has already been committed")
        if len(self.operations) >= self.max_operations:
            raise BatchLimitError(self.max_operations)
        self.operations.append(operation)

    def update(self, ref: DocumentRef, patch: Dict[str, Any]) -> None:
        self._enqueue(WriteOperation("update", ref, patch))

    def set(self, ref: DocumentRef, data: Dict[str, Any], merge: bool = False) -> None:
        self._enqueue(WriteOperation("set", ref, data, merge))

    def delete(self, ref: DocumentRef) -> None:
        self._enqueue(WriteOperation("delete", ref))

    async def commit(self) -> None:
        if self._committed:
            raise ValueError("Write batch has already been committed")
        self._committed = True
        if self.operations:
            await self.store.commit_operations(self.operations)


class DocumentStore(ABC):
    """Abstract document store consumed by the rating engine"""

    MAX_BATCH_OPERATIONS = Config.STORE_MAX_BATCH_OPERATIONS
    GET_ALL_CHUNK_SIZE = Config.GET_ALL_CHUNK_SIZE

    def doc(self, collection: str, doc_id: Optional[str] = None) -> DocumentRef:
        """Build a reference; a new random id is generated when none is given"""
        return DocumentRef(collection, doc_id or uuid.uuid4().hex)

    def batch(self) -> WriteBatch:
        return WriteBatch(self, self.MAX_BATCH_OPERATIONS)

    @abstractmethod
    async def list_collections(self) -> List[str]:
        """Return the names of all non-empty collections"""

    @abstractmethod
    async def query(self, collection: str, filters: Sequence[FieldFilter] = (),
                    order_by: Optional[Union[str, Tuple[str, str]]] = None) -> List[DocumentSnapshot]:
        """Return documents matching all filters, in insertion order unless ordered"""

    @abstractmethod
    async def get_by_id(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """Return a single document, or None if it does not exist"""

    @abstractmethod
    async def _get_many(self, collection: str, doc_ids: Sequence[str]) -> Dict[str, DocumentSnapshot]:
        """Read one chunk of documents by id"""

    @abstractmethod
    async def commit_operations(self, operations: Sequence[WriteOperation]) -> None:
        """Apply all operations atomically"""

    async def batch_get_by_ids(self, collection: str,
                               doc_ids: Iterable[str]) -> List[Optional[DocumentSnapshot]]:
        """
        Read many documents by id, chunked to the per-call id limit.

        Returns:
            Snapshots aligned with the requested ids; None where a document is missing
        """
        doc_ids = list(doc_ids)
        found: Dict[str, DocumentSnapshot] = {}
        for start in range(0, len(doc_ids), self.GET_ALL_CHUNK_SIZE):
            chunk = doc_ids[start:start + self.GET_ALL_CHUNK_SIZE]
            found.update(await self._get_many(collection, chunk))
        return [found.get(doc_id) for doc_id in doc_ids]
