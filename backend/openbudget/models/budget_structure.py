from sqlalchemy import (
    Column, Integer, String, Float, DateTime, UniqueConstraint, Index
)
from sqlalchemy.sql import func
from openbudget.db.base import Base


class BudgetStructure(Base):
    __tablename__ = "budget_structure"

    id = Column(Integer, primary_key=True)
    rep_period = Column(String(16), nullable=False)
    # derived from rep_period by the normalizer; never part of the key
    rep_year = Column(Integer, nullable=True)
    rep_month = Column(Integer, nullable=True)
    cod_budget = Column(String(32), nullable=False)
    classification_type = Column(String(16), nullable=False)  # PROGRAM | FUNCTIONAL | ECONOMIC
    classification_code = Column(String(32), nullable=False)
    classification_name = Column(String(1024), nullable=True)
    fund_type = Column(String(16), nullable=True)

    approved_amount = Column(Float, nullable=False, default=0)  # zat_amt
    plan_amount = Column(Float, nullable=False, default=0)      # plans_amt
    actual_amount = Column(Float, nullable=False, default=0)    # fakt_amt

    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "rep_period", "cod_budget", "classification_code", "classification_type",
            name="uq_budget_structure_natural_key",
        ),
        Index("ix_budget_structure_scope", "cod_budget", "classification_type", "rep_year"),
    )
