from sqlalchemy import Column, Integer, Float, ForeignKey, PrimaryKeyConstraint
from sqlalchemy.orm import relationship
from openbudget.db.base import Base


class MonthlyIndicator(Base):
    __tablename__ = "monthly_indicators"

    budget_id = Column(Integer, ForeignKey("budget.id", ondelete="CASCADE"), nullable=False)
    month = Column(Integer, nullable=False)  # 1..12

    # sync only owns `expense`; income/balance are filled by other loaders
    income = Column(Float, nullable=True)
    expense = Column(Float, nullable=True)
    balance = Column(Float, nullable=True)

    __table_args__ = (
        PrimaryKeyConstraint("budget_id", "month", name="pk_monthly_indicators"),
    )

    budget = relationship("Budget", back_populates="monthly_indicators")
