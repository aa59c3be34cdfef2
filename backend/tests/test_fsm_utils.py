from budget_tracker.errors import AppError, InvalidTransition
from budget_tracker.services.retirements import RETIREMENT_FSM
from budget_tracker.utils.fsm import TransitionValidator
from budget_tracker.utils.validation import validate_status, require_fields, parse_amount, parse_date
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True
    assert fsm.is_terminal('B')


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(InvalidTransition) as e:
        fsm.assert_can_transition('A', 'C')
    assert e.value.code == 409
    assert e.value.message == 'Invalid status transition A -> C'


def test_retirement_graph():
    assert RETIREMENT_FSM.can_transition('submitted', 'rejected')
    assert RETIREMENT_FSM.can_transition('under_review', 'approved')
    assert not RETIREMENT_FSM.can_transition('draft', 'approved')
    assert not RETIREMENT_FSM.can_transition('rejected', 'submitted')
    assert RETIREMENT_FSM.is_terminal('completed')


def test_validation_helpers():
    assert validate_status('capital', ('capital', 'overhead'), 'category') == 'capital'
    with pytest.raises(AppError, match='category invalid'):
        validate_status('luxury', ('capital',), 'category')
    with pytest.raises(AppError, match='code, name required'):
        require_fields({'code': '', 'amount': 1}, 'code', 'name', 'amount')
    assert str(parse_amount('10.2')) == '10.20'
    assert str(parse_amount(0, allow_zero=True)) == '0.00'
    for bad in (None, True, 'ten', -1, 0, 'NaN'):
        with pytest.raises(AppError):
            parse_amount(bad)
    assert parse_date('2026-02-01').isoformat() == '2026-02-01'
    assert parse_date('') is None
    with pytest.raises(AppError):
        parse_date('01/02/2026')
