from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, JSON, ForeignKey, DateTime, func
from typing import Optional

from .authz import Base


class BudgetSnapshot(Base):
    """Frozen copy of a budget and its line items (with approved spend) at a point in time."""
    __tablename__ = 'budget_snapshots'
    TYPE_MONTHLY = 'monthly'
    TYPE_QUARTERLY = 'quarterly'
    TYPE_ANNUAL = 'annual'
    TYPE_AD_HOC = 'ad-hoc'
    ALL_TYPES = (TYPE_MONTHLY, TYPE_QUARTERLY, TYPE_ANNUAL, TYPE_AD_HOC)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey('budgets.id', ondelete='CASCADE'), nullable=False, index=True)
    snapshot_type: Mapped[str] = mapped_column(String(32), nullable=False, default=TYPE_AD_HOC, index=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_baseline: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    budget = relationship('Budget')
