from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Date, ForeignKey, DateTime, func, text
from typing import Optional

from .authz import Base
from .budget import ApprovalFieldsMixin, MONEY


class Expenditure(ApprovalFieldsMixin, Base):
    __tablename__ = 'expenditures'
    STATUS_DRAFT = 'draft'
    STATUS_SUBMITTED = 'submitted'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_SUBMITTED, STATUS_APPROVED, STATUS_REJECTED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reference_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    budget_line_item_id: Mapped[int] = mapped_column(ForeignKey('budget_line_items.id', ondelete='RESTRICT'), nullable=False, index=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey('budgets.id', ondelete='CASCADE'), nullable=False, index=True)
    mda_id: Mapped[int] = mapped_column(ForeignKey('mdas.id', ondelete='CASCADE'), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    expense_date: Mapped[date] = mapped_column('date', Date, nullable=False, default=date.today)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT, index=True)
    beneficiary_name: Mapped[Optional[str]] = mapped_column(String(255))
    beneficiary_account_number: Mapped[Optional[str]] = mapped_column(String(32))
    beneficiary_bank: Mapped[Optional[str]] = mapped_column(String(128))
    payment_voucher_number: Mapped[Optional[str]] = mapped_column(String(64))
    payment_voucher_date: Mapped[Optional[date]] = mapped_column(Date)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    line_item = relationship('BudgetLineItem')
    attachments = relationship('Attachment', back_populates='expenditure', cascade='all, delete-orphan', passive_deletes=True)

    @property
    def workflow_amount(self) -> Decimal:
        return self.amount


class Attachment(Base):
    """Supporting document (receipt, voucher, invoice) uploaded against an expenditure."""
    __tablename__ = 'attachments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expenditure_id: Mapped[int] = mapped_column(ForeignKey('expenditures.id', ondelete='CASCADE'), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_type: Mapped[str] = mapped_column(String(64), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    document_type: Mapped[Optional[str]] = mapped_column(String(64))
    description: Mapped[Optional[str]] = mapped_column(Text)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    expenditure = relationship('Expenditure', back_populates='attachments')
