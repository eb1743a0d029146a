"""
StoreEntry model backing the coordinator's namespaced key-value store.

Each row holds one whole collection (all consent records, the detection
log, settings, the tab map) serialised as JSON. Writers always replace the
full value; ``version`` counts those writes.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint

from consent_wallet.database import Base


class StoreEntry(Base):
    """One key of the persistent store."""

    __tablename__ = "store_entries"

    id = Column(Integer, primary_key=True, index=True)
    namespace = Column(String(100), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(JSON, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_store_namespace_key"),)

    def __repr__(self) -> str:
        return f"<StoreEntry {self.namespace}:{self.key} v{self.version}>"
