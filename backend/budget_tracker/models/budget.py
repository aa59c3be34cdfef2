from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Text, Numeric, ForeignKey, DateTime, text
from typing import Optional

from .authz import Base

MONEY = Numeric(20, 2)


class ApprovalFieldsMixin:
    """Columns shared by entities that travel through the approval workflow."""
    current_approver_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    submitted_by: Mapped[Optional[int]] = mapped_column(Integer)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[Optional[int]] = mapped_column(Integer)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_by: Mapped[Optional[int]] = mapped_column(Integer)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)


class Budget(ApprovalFieldsMixin, Base):
    __tablename__ = 'budgets'
    STATUS_DRAFT = 'draft'
    STATUS_SUBMITTED = 'submitted'
    STATUS_PENDING = 'pending_approval'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_PUBLISHED = 'published'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_SUBMITTED, STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_PUBLISHED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mda_id: Mapped[int] = mapped_column(ForeignKey('mdas.id', ondelete='CASCADE'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    line_items = relationship('BudgetLineItem', back_populates='budget', cascade='all, delete-orphan', passive_deletes=True)

    @property
    def workflow_amount(self) -> Decimal:
        return self.total_amount


class BudgetLineItem(Base):
    """Allocation bucket of a budget. `balance` caches amount minus approved spend."""
    __tablename__ = 'budget_line_items'
    CATEGORY_PERSONNEL = 'personnel'
    CATEGORY_OVERHEAD = 'overhead'
    CATEGORY_RECURRENT = 'recurrent'
    CATEGORY_CAPITAL = 'capital'
    ALL_CATEGORIES = (CATEGORY_PERSONNEL, CATEGORY_OVERHEAD, CATEGORY_RECURRENT, CATEGORY_CAPITAL)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey('budgets.id', ondelete='CASCADE'), nullable=False, index=True)
    mda_id: Mapped[int] = mapped_column(ForeignKey('mdas.id', ondelete='CASCADE'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    budget = relationship('Budget', back_populates='line_items')
