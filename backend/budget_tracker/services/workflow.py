from __future__ import annotations
"""Multi-step approval workflow for budgets and expenditures.

Submitting an entity freezes its approver chain into an ApprovalWorkflow with one
ApprovalStep per approver. Each approve() advances the workflow by one step;
the last approval finalises the entity. reject() closes the workflow at any step.

The chain is amount-tiered and role-ordered:
    director of the submitter's MDA                         (always, when one exists)
    permanent_secretary      amount > APPROVAL_PERMSEC_THRESHOLD
    commissioner             amount > APPROVAL_COMMISSIONER_THRESHOLD
Missing tiers are skipped; an empty chain refuses the submission.

Every call runs in one transaction; notifications are sent after commit.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import FrozenSet, List, Optional, Tuple, Type

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from budget_tracker import get_db
from budget_tracker.constants.permissions import ROLE_DIRECTOR, ROLE_PERMANENT_SECRETARY, ROLE_COMMISSIONER
from budget_tracker.errors import AppError, EntityNotFound, InvalidTransition, Unauthorized, NoApproversFound, InsufficientBalance
from budget_tracker.models.approval import ApprovalHistory, ApprovalWorkflow, ApprovalStep
from budget_tracker.models.authz import User, UserRole, Role
from budget_tracker.models.budget import Budget, BudgetLineItem
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.services import notifications
from budget_tracker.services.balance import calculate_balance, can_accommodate
from budget_tracker.utils.transactions import transaction


@dataclass(frozen=True)
class EntityKind:
    model: Type
    label: str
    pending_status: str
    submittable: FrozenSet[str]


ENTITY_KINDS = {
    'budget': EntityKind(
        Budget, 'Budget', Budget.STATUS_PENDING,
        frozenset({Budget.STATUS_DRAFT, Budget.STATUS_SUBMITTED, Budget.STATUS_REJECTED}),
    ),
    'expenditure': EntityKind(
        Expenditure, 'Expenditure', Expenditure.STATUS_SUBMITTED,
        frozenset({Expenditure.STATUS_DRAFT, Expenditure.STATUS_REJECTED}),
    ),
}


@dataclass(frozen=True)
class Approver:
    id: int
    name: str
    role: str


def entity_kind(entity_type: str) -> EntityKind:
    kind = ENTITY_KINDS.get(entity_type)
    if kind is None:
        raise AppError(f'Invalid entity type: {entity_type}', 400)
    return kind


def _now():
    return datetime.now(timezone.utc)


def _load_entity(session: Session, kind: EntityKind, entity_id: int, lock: bool = False):
    q = select(kind.model).where(kind.model.id == entity_id)
    if lock:
        q = q.with_for_update()
    entity = session.execute(q).scalar_one_or_none()
    if entity is None:
        raise EntityNotFound(kind.label)
    return entity


def _active_workflow(session: Session, entity_type: str, entity_id: int) -> Optional[ApprovalWorkflow]:
    return session.execute(
        select(ApprovalWorkflow)
        .where(
            ApprovalWorkflow.entity_type == entity_type,
            ApprovalWorkflow.entity_id == entity_id,
            ApprovalWorkflow.state == ApprovalWorkflow.STATE_PENDING,
        )
        .order_by(ApprovalWorkflow.id.desc())
        .with_for_update()
    ).scalars().first()


def _first_with_role(session: Session, role_name: str, mda_id: Optional[int] = None) -> Optional[User]:
    q = (
        select(User)
        .join(UserRole, UserRole.user_id == User.id)
        .join(Role, Role.id == UserRole.role_id)
        .where(Role.name == role_name, User.is_active.is_(True))
    )
    if mda_id is not None:
        q = q.where(User.mda_id == mda_id)
    return session.execute(q.order_by(User.id.asc()).limit(1)).scalars().first()


def determine_approvers(session: Session, entity, submitter: User) -> List[Approver]:
    amount = Decimal(entity.workflow_amount or 0)
    tiers = [(ROLE_DIRECTOR, submitter.mda_id or entity.mda_id)]
    if amount > Decimal(current_app.config['APPROVAL_PERMSEC_THRESHOLD']):
        tiers.append((ROLE_PERMANENT_SECRETARY, None))
    if amount > Decimal(current_app.config['APPROVAL_COMMISSIONER_THRESHOLD']):
        tiers.append((ROLE_COMMISSIONER, None))
    chain: List[Approver] = []
    for role, mda_id in tiers:
        if role == ROLE_DIRECTOR and mda_id is None:
            continue
        user = _first_with_role(session, role, mda_id)
        if user is not None:
            chain.append(Approver(user.id, user.full_name, role))
    return chain


def _assert_fits_balance(session: Session, expenditure: Expenditure, lock: bool = False):
    q = select(BudgetLineItem).where(BudgetLineItem.id == expenditure.budget_line_item_id)
    if lock:
        q = q.with_for_update()
    line_item = session.execute(q).scalar_one_or_none()
    if line_item is None:
        raise EntityNotFound('Budget line item')
    if not can_accommodate(line_item, expenditure.amount, session):
        raise InsufficientBalance(calculate_balance(line_item, session), expenditure.amount)
    return line_item


def submit_for_approval(entity_type: str, entity_id: int, user_id: int, comments: Optional[str] = None) -> Tuple[object, ApprovalHistory]:
    kind = entity_kind(entity_type)
    with transaction() as session:
        entity = _load_entity(session, kind, entity_id, lock=True)
        if entity.status not in kind.submittable:
            raise AppError(f'{kind.label} cannot be submitted from status {entity.status}', 400)
        submitter = session.get(User, user_id)
        if submitter is None:
            raise EntityNotFound('User')
        if entity_type == 'expenditure':
            _assert_fits_balance(session, entity)
        chain = determine_approvers(session, entity, submitter)
        if not chain:
            raise NoApproversFound(entity_type)

        now = _now()
        entity.status = kind.pending_status
        entity.submitted_at = now
        entity.submitted_by = user_id
        entity.current_approver_id = chain[0].id
        entity.rejected_at = entity.rejected_by = entity.rejection_reason = None
        workflow = ApprovalWorkflow(
            entity_type=entity_type, entity_id=entity.id, state=ApprovalWorkflow.STATE_PENDING,
            current_step=0, submitted_by=user_id,
            steps=[ApprovalStep(position=i, approver_id=a.id, approver_name=a.name, role=a.role) for i, a in enumerate(chain)],
        )
        session.add(workflow)
        history = ApprovalHistory(
            entity_type=entity_type, entity_id=entity.id, action=ApprovalHistory.ACTION_SUBMITTED,
            status='pending', user_id=chain[0].id, comments=comments,
            meta={'approvers': workflow.chain(), 'submitted_by': user_id},
        )
        session.add(history)
    current_app.logger.info('%s %s submitted by user %s; chain=%s', entity_type, entity_id, user_id, [a.role for a in chain])
    notifications.notify_approval_request(chain[0].id, entity_type, entity.id, 1, len(chain))
    return entity, history


def approve(entity_type: str, entity_id: int, user_id: int, comments: Optional[str] = None) -> Tuple[object, ApprovalHistory]:
    kind = entity_kind(entity_type)
    line_item_id = None
    with transaction() as session:
        entity = _load_entity(session, kind, entity_id, lock=True)
        if entity.status != kind.pending_status:
            raise InvalidTransition(f'{kind.label} is not pending approval (status: {entity.status})')
        workflow = _active_workflow(session, entity_type, entity.id)
        step = workflow.current if workflow else None
        if step is None:
            raise InvalidTransition(f'{kind.label} has no active approval workflow')
        if step.approver_id != user_id:
            raise Unauthorized()

        now = _now()
        step.acted_at = now
        step_index = workflow.current_step
        final = workflow.is_last_step
        if final:
            line_item = None
            if entity_type == 'expenditure':
                # re-check against the live sum with the line item row locked
                line_item = _assert_fits_balance(session, entity, lock=True)
            entity.status = entity.STATUS_APPROVED
            entity.approved_at = now
            entity.approved_by = user_id
            entity.current_approver_id = None
            workflow.state = ApprovalWorkflow.STATE_APPROVED
            workflow.closed_at = now
            if line_item is not None:
                session.flush()
                line_item.balance = calculate_balance(line_item, session)
                line_item_id = line_item.id
        else:
            workflow.current_step = step_index + 1
            entity.current_approver_id = workflow.steps[workflow.current_step].approver_id
        history = ApprovalHistory(
            entity_type=entity_type, entity_id=entity.id, action=ApprovalHistory.ACTION_APPROVED,
            status='approved', user_id=user_id, comments=comments,
            meta={'approvers': workflow.chain(), 'current_approver_index': step_index, 'final': final},
        )
        session.add(history)
        total_steps = len(workflow.steps)
        next_approver = entity.current_approver_id
        submitter = entity.submitted_by

    current_app.logger.info('%s %s approved at step %s/%s by user %s', entity_type, entity_id, step_index + 1, total_steps, user_id)
    if final:
        if submitter:
            notifications.notify_approval_complete(submitter, entity_type, entity.id)
        if line_item_id is not None:
            from budget_tracker.services.early_warning import check_budget_thresholds
            try:
                check_budget_thresholds(line_item_id)
            except Exception:
                get_db().rollback()
                current_app.logger.exception('threshold check failed for line item %s', line_item_id)
    else:
        notifications.notify_approval_request(next_approver, entity_type, entity.id, step_index + 2, total_steps)
    return entity, history


def reject(entity_type: str, entity_id: int, user_id: int, comments: Optional[str] = None,
           rejection_reason: Optional[str] = None, is_admin: bool = False) -> Tuple[object, ApprovalHistory]:
    kind = entity_kind(entity_type)
    with transaction() as session:
        entity = _load_entity(session, kind, entity_id, lock=True)
        if entity.status != kind.pending_status:
            raise InvalidTransition(f'{kind.label} is not pending approval (status: {entity.status})')
        workflow = _active_workflow(session, entity_type, entity.id)
        step = workflow.current if workflow else None
        if not is_admin and (step is None or step.approver_id != user_id):
            raise Unauthorized()

        now = _now()
        reason = rejection_reason or comments
        entity.status = entity.STATUS_REJECTED
        entity.rejection_reason = reason
        entity.rejected_at = now
        entity.rejected_by = user_id
        entity.current_approver_id = None
        meta = {'rejection_reason': reason}
        if workflow is not None:
            if step is not None:
                step.acted_at = now
            workflow.state = ApprovalWorkflow.STATE_REJECTED
            workflow.closed_at = now
            meta['current_approver_index'] = workflow.current_step
        history = ApprovalHistory(
            entity_type=entity_type, entity_id=entity.id, action=ApprovalHistory.ACTION_REJECTED,
            status='rejected', user_id=user_id, comments=comments, meta=meta,
        )
        session.add(history)
        submitter = entity.submitted_by
    current_app.logger.info('%s %s rejected by user %s (admin=%s)', entity_type, entity_id, user_id, is_admin)
    if submitter:
        notifications.notify_rejection(submitter, entity_type, entity.id, reason)
    return entity, history


def get_approval_history(entity_type: str, entity_id: int) -> List[ApprovalHistory]:
    kind = entity_kind(entity_type)
    session = get_db()
    _load_entity(session, kind, entity_id)
    return session.execute(
        select(ApprovalHistory)
        .where(ApprovalHistory.entity_type == entity_type, ApprovalHistory.entity_id == entity_id)
        .order_by(ApprovalHistory.created_at.desc(), ApprovalHistory.id.desc())
    ).scalars().all()


def latest_workflow(entity_type: str, entity_id: int) -> Optional[ApprovalWorkflow]:
    entity_kind(entity_type)
    return get_db().execute(
        select(ApprovalWorkflow)
        .where(ApprovalWorkflow.entity_type == entity_type, ApprovalWorkflow.entity_id == entity_id)
        .order_by(ApprovalWorkflow.id.desc())
    ).scalars().first()
