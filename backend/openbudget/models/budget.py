from sqlalchemy import Column, Integer, String, DateTime, Index
from sqlalchemy.orm import relationship
from openbudget.db.base import Base


class Budget(Base):
    """
    Budget = one local budget for one year, as known to the portal.
    Rows are seeded externally; sync only reads them and touches `last_update`.
    """

    __tablename__ = "budget"

    id = Column(Integer, primary_key=True)
    code = Column(String(32), nullable=True)
    year = Column(Integer, nullable=False)
    name = Column(String(512), nullable=True)
    region_code = Column(String(32), nullable=True)
    last_update = Column(DateTime(timezone=True), nullable=True)

    monthly_indicators = relationship(
        "MonthlyIndicator", back_populates="budget", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_budget_year_code", "year", "code"),
    )

    def __repr__(self) -> str:
        return f"<Budget id={self.id} code={self.code!r} year={self.year}>"
