from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from openbudget.db.base import Base
from openbudget.db.types import JSON_PAYLOAD


class ForecastCache(Base):
    __tablename__ = "forecast_cache"

    id = Column(Integer, primary_key=True)
    budget_code = Column(String(32), nullable=False)
    classification_type = Column(String(16), nullable=False)
    method = Column(String(32), nullable=False)
    alpha = Column(Float, nullable=False)
    window_size = Column(Integer, nullable=False)
    series = Column(JSON_PAYLOAD, nullable=False)
    result = Column(JSON_PAYLOAD, nullable=True)  # null when the method had too little data
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "budget_code", "classification_type", "method", "alpha", "window_size",
            name="uq_forecast_cache_key",
        ),
    )
