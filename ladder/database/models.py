from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class Document(Base):
    __tablename__ = 'documents'

    # Autoincrement id doubles as insertion order for stable tie-breaks
    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(200), nullable=False)
    doc_id = Column(String(200), nullable=False)
    data = Column(JSON, nullable=False, default=dict)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('collection', 'doc_id', name='uq_documents_collection_doc'),
        Index('idx_documents_collection', 'collection'),
    )

    def __repr__(self):
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}')>"
