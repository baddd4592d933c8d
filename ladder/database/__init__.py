"""
Persistence layer: the document store contract and its SQLAlchemy implementation.
"""

from .database import Database
from .store import (
    DocumentStore, DocumentRef, DocumentSnapshot, WriteBatch,
    DELETE_FIELD, Increment, ArrayUnion
)

__all__ = [
    'Database', 'DocumentStore', 'DocumentRef', 'DocumentSnapshot', 'WriteBatch',
    'DELETE_FIELD', 'Increment', 'ArrayUnion'
]
