from __future__ import annotations
"""Finite state machine helper for enforcing allowed status transitions.

Used by the lifecycle models (Budget, Expenditure, ExpenditureRetirement).
Usage:
    from budget_tracker.utils.fsm import TransitionValidator
    RETIREMENT_FSM = TransitionValidator({
        'draft': {'submitted'},
        'submitted': {'under_review', 'rejected'},
        ...
    })
    RETIREMENT_FSM.assert_can_transition(current_status, target_status)

Raises AppError(409) if the transition is not in the graph.
"""
from typing import Dict, Set, Optional
from budget_tracker.errors import InvalidTransition


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def is_terminal(self, status: str) -> bool:
        return not self.graph.get(status)

    def assert_can_transition(self, current: str, target: str, message: Optional[str] = None):
        if not self.can_transition(current, target):
            raise InvalidTransition(message or f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
