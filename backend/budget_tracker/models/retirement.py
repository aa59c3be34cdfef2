from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Date, Boolean, ForeignKey, DateTime, func, text
from typing import Optional

from .authz import Base
from .budget import MONEY


class ExpenditureRetirement(Base):
    """Reconciliation of an approved expenditure against its receipts (one per expenditure)."""
    __tablename__ = 'expenditure_retirements'
    STATUS_DRAFT = 'draft'
    STATUS_SUBMITTED = 'submitted'
    STATUS_UNDER_REVIEW = 'under_review'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_COMPLETED = 'completed'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_SUBMITTED, STATUS_UNDER_REVIEW, STATUS_APPROVED, STATUS_REJECTED, STATUS_COMPLETED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    retirement_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    expenditure_id: Mapped[int] = mapped_column(ForeignKey('expenditures.id', ondelete='CASCADE'), unique=True, nullable=False)
    retirement_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    amount_retired: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_unretired: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT, index=True)
    reviewed_by: Mapped[Optional[int]] = mapped_column(Integer)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[Optional[int]] = mapped_column(Integer)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    expenditure = relationship('Expenditure')
    attachments = relationship('RetirementAttachment', back_populates='retirement', cascade='all, delete-orphan', passive_deletes=True)


class RetirementAttachment(Base):
    __tablename__ = 'retirement_attachments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    retirement_id: Mapped[int] = mapped_column(ForeignKey('expenditure_retirements.id', ondelete='CASCADE'), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_type: Mapped[str] = mapped_column(String(64), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    document_type: Mapped[Optional[str]] = mapped_column(String(64))
    description: Mapped[Optional[str]] = mapped_column(Text)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    verified_by: Mapped[Optional[int]] = mapped_column(Integer)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    verification_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    retirement = relationship('ExpenditureRetirement', back_populates='attachments')
