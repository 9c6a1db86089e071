"""
Database schema owned by the storage layer.

Only the file registry lives here; business tables belong to the CRUD
layer, which can hand its own MetaData to the database adapters so that
backup initialization and primary-to-backup sync cover them as well.
"""

from sqlalchemy import BigInteger, Column, DateTime, Index, MetaData, String, Table

metadata = MetaData()

stored_files = Table(
    "stored_files",
    metadata,
    Column("path", String(1024), primary_key=True),
    Column("provider", String(16), nullable=False),
    Column("size_bytes", BigInteger, nullable=False, default=0),
    Column("mime_type", String(255), nullable=False, default="application/octet-stream"),
    Column("uploaded_at", DateTime(timezone=True), nullable=False),
    Index("ix_stored_files_provider", "provider"),
)
