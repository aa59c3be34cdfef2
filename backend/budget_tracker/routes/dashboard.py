from __future__ import annotations
from flask import Blueprint, request
from flask_jwt_extended import get_jwt
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions
from budget_tracker.errors import AppError, EntityNotFound
from budget_tracker.models.budget import Budget
from budget_tracker.services import early_warning, expenditures, reporting, retirements
from budget_tracker.services.policy import assert_mda_access, is_admin
from budget_tracker.utils.validation import parse_int

dashboard_bp = Blueprint('dashboard', __name__)


def _scoped_mda_id():
    """Explicit ?mda_id= (checked against the caller's scope) or the caller's own MDA."""
    raw = request.args.get('mda_id')
    if raw:
        mda_id = parse_int(raw, 'mda_id')
        assert_mda_access(mda_id)
        return mda_id
    return None if is_admin() else get_jwt().get('mda_id')


@dashboard_bp.get('/warnings')
@require_permissions('RPT.READ')
def list_warnings():
    return {'data': early_warning.get_warnings_by_mda(_scoped_mda_id())}


@dashboard_bp.get('/warnings/summary')
@require_permissions('RPT.READ')
def warnings_summary():
    return early_warning.get_warnings_summary(_scoped_mda_id())


@dashboard_bp.post('/warnings/line-items/<int:line_item_id>/check')
@require_permissions('BUDGET.UPDATE')
def check_line_item(line_item_id: int):
    warning = early_warning.check_budget_thresholds(line_item_id)
    return {'line_item_id': line_item_id, 'warning': warning}


@dashboard_bp.get('/warnings/line-items/<int:line_item_id>/crossed')
@require_permissions('RPT.READ')
def threshold_crossed(line_item_id: int):
    previous = request.args.get('previous')
    if previous is None:
        raise AppError('previous required', 400)
    try:
        previous = float(previous)
    except ValueError:
        raise AppError('previous must be a number', 400)
    return {'line_item_id': line_item_id, 'crossed': early_warning.has_new_threshold_crossed(line_item_id, previous)}


@dashboard_bp.get('/summary')
@require_permissions('RPT.READ')
def dashboard_summary():
    mda_id = _scoped_mda_id()
    warnings = early_warning.get_warnings_summary(mda_id)
    warnings.pop('warnings')
    return {
        'expenditures': expenditures.get_stats(mda_id),
        'retirements': retirements.get_stats(mda_id),
        'warnings': warnings,
    }


def _fiscal_year():
    raw = request.args.get('fiscal_year')
    return parse_int(raw, 'fiscal_year') if raw else None


@dashboard_bp.get('/budgets/<int:budget_id>/vs-actual')
@require_permissions('RPT.READ')
def budget_vs_actual(budget_id: int):
    budget = get_db().get(Budget, budget_id)
    if not budget:
        raise EntityNotFound('Budget')
    assert_mda_access(budget.mda_id)
    return reporting.budget_vs_actual(budget_id)


@dashboard_bp.get('/execution-rate')
@require_permissions('RPT.READ')
def execution_rate():
    return {'data': reporting.execution_rate(_fiscal_year(), _scoped_mda_id())}


@dashboard_bp.get('/utilization-by-mda')
@require_permissions('RPT.READ')
def utilization_by_mda():
    return {'data': reporting.utilization_by_mda(_fiscal_year(), _scoped_mda_id())}
