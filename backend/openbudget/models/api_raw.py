from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from openbudget.db.base import Base
from openbudget.db.types import JSON_PAYLOAD


class ApiRaw(Base):
    """Append-only capture of an upstream response, never read back by sync."""

    __tablename__ = "api_raw"

    id = Column(Integer, primary_key=True, index=True)
    endpoint = Column(String(255), nullable=False, index=True)
    params = Column(JSON_PAYLOAD, nullable=True)
    response = Column(JSON_PAYLOAD, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
