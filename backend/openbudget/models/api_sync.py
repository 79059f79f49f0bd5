from sqlalchemy import Column, Integer, String, DateTime, Index
from sqlalchemy.sql import func
from openbudget.db.base import Base
from openbudget.db.types import JSON_PAYLOAD


class ApiSync(Base):
    """
    One outcome row per sync endpoint key.
    Every attempt overwrites the previous outcome; no history is kept.
    """

    __tablename__ = "api_sync"

    id = Column(Integer, primary_key=True)
    endpoint = Column(String(255), nullable=False, unique=True)
    status = Column(String(16), nullable=False)  # success | error
    total_records = Column(Integer, nullable=False, default=0)
    details = Column(JSON_PAYLOAD, nullable=True)
    last_synced = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_api_sync_status", "status"),
    )
