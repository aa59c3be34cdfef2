from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, JSON, ForeignKey, DateTime, UniqueConstraint, func
from typing import Optional, List

from .authz import Base


class ApprovalHistory(Base):
    """Append-only log of workflow actions (submitted / approved / rejected)."""
    __tablename__ = 'approval_histories'
    ACTION_SUBMITTED = 'submitted'
    ACTION_APPROVED = 'approved'
    ACTION_REJECTED = 'rejected'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id', ondelete='SET NULL'))
    comments: Mapped[Optional[str]] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user = relationship('User')


class ApprovalWorkflow(Base):
    """Approver chain frozen at submission time, with explicit progress state.

    One row per submission; a resubmitted entity gets a new workflow and the old one
    keeps its terminal state.
    """
    __tablename__ = 'approval_workflows'
    STATE_PENDING = 'pending'
    STATE_APPROVED = 'approved'
    STATE_REJECTED = 'rejected'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=STATE_PENDING, index=True)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submitted_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    steps: Mapped[List['ApprovalStep']] = relationship(
        'ApprovalStep', back_populates='workflow', cascade='all, delete-orphan', order_by='ApprovalStep.position'
    )

    @property
    def current(self) -> Optional['ApprovalStep']:
        if self.state != self.STATE_PENDING or self.current_step >= len(self.steps):
            return None
        return self.steps[self.current_step]

    @property
    def is_last_step(self) -> bool:
        return self.current_step == len(self.steps) - 1

    def chain(self) -> list:
        return [s.as_dict() for s in self.steps]


class ApprovalStep(Base):
    __tablename__ = 'approval_steps'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    workflow_id: Mapped[int] = mapped_column(ForeignKey('approval_workflows.id', ondelete='CASCADE'), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(64), nullable=False)
    acted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    workflow = relationship('ApprovalWorkflow', back_populates='steps')

    __table_args__ = (UniqueConstraint('workflow_id', 'position', name='uq_workflow_step_position'),)

    def as_dict(self) -> dict:
        return {'id': self.approver_id, 'name': self.approver_name, 'role': self.role, 'order': self.position + 1}
