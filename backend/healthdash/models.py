from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from healthdash.database import Base


class KeyValueEntry(Base):
    """One serialized value stored under (store_name, key).

    The health data store lives here as a single JSON document; the
    schema_version column lets readers gate migrations.
    """
    __tablename__ = "kv_store"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_name = Column(String, nullable=False)
    key = Column(String, nullable=False)
    value = Column(Text, nullable=False)  # JSON document
    schema_version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_kv_store_name_key", "store_name", "key", unique=True),
    )
