"""
SQLAlchemy models for the durable cache tier.

Cache entries are the only persisted artifact of the engine.
"""
from sqlalchemy import Column, Float, Index, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CacheEntryRecord(Base):
    """
    One cached adapter outcome.

    namespace is the owning adapter's source id; keys are prefixed with it,
    so adapters never collide.
    """
    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    namespace = Column(String(50), nullable=False, index=True)
    outcome_kind = Column(String(20), nullable=False)
    data = Column(JSON, nullable=True)
    stored_at = Column(Float, nullable=False)  # epoch seconds
    ttl = Column(Float, nullable=False)  # seconds

    __table_args__ = (
        Index("idx_cache_entries_expiry", "stored_at", "ttl"),
    )

    def __repr__(self):
        return (
            f"<CacheEntryRecord(key={self.key!r}, outcome={self.outcome_kind}, "
            f"ttl={self.ttl})>"
        )
