"""
SQLAlchemy database models for listsync.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ManualMappingRow(Base):
    """User-defined AniList <-> MAL identifier override."""
    __tablename__ = 'manual_mapping'

    id = Column(Integer, primary_key=True)
    position = Column(Integer, nullable=False, default=0)  # keeps the user's ordering
    anilist_id = Column(Integer, unique=True, index=True, nullable=False)
    mal_id = Column(Integer, index=True, nullable=False)
    comment = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class IgnoreRule(Base):
    """Entry excluded from syncing, by service id or by title."""
    __tablename__ = 'ignore_rule'
    __table_args__ = (UniqueConstraint('service', 'media_id', 'title'),)

    id = Column(Integer, primary_key=True)
    service = Column(String(20), nullable=True)  # anilist, myanimelist; null for title rules
    media_id = Column(Integer, nullable=True)
    title = Column(String(500), nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)


class UnmappedEntryRow(Base):
    """Entry of the latest unmapped snapshot; replaced by every run."""
    __tablename__ = 'unmapped_entry'

    id = Column(Integer, primary_key=True)
    anilist_id = Column(Integer, nullable=True)
    mal_id = Column(Integer, nullable=True)
    title = Column(String(500), nullable=False)
    catalog_type = Column(String(20), nullable=False)
    direction = Column(String(20), nullable=False)
    reason = Column(String(200), nullable=True)
    recorded_at = Column(DateTime, default=_utcnow, index=True)


class SyncLog(Base):
    """Detailed logs for sync operations."""
    __tablename__ = 'sync_log'

    id = Column(Integer, primary_key=True)
    level = Column(String(20), nullable=False)  # DEBUG, INFO, WARNING, ERROR
    message = Column(Text, nullable=False)
    sync_run_id = Column(String(50), index=True, nullable=True)
    created_at = Column(DateTime, default=_utcnow, index=True)


class SyncRun(Base):
    """Represents a single sync run (execution)."""
    __tablename__ = 'sync_run'

    id = Column(Integer, primary_key=True)
    run_id = Column(String(50), unique=True, index=True, nullable=False)
    direction = Column(String(20), nullable=False)
    started_at = Column(DateTime, default=_utcnow)
    completed_at = Column(DateTime, nullable=True)
    status = Column(String(20), default='completed')  # completed, partial, cancelled
    entries_processed = Column(Integer, default=0)
    entries_updated = Column(Integer, default=0)
    entries_skipped = Column(Integer, default=0)
    entries_failed = Column(Integer, default=0)
    entries_unmapped = Column(Integer, default=0)
    entries_dry_run = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
