"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently, create new ones and deprecate old via migration if needed.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['MDA', 'BUDGET', 'EXP', 'RET', 'RPT', 'ADMIN']

SERVICE_ACTIONS = {
    'MDA': ['READ', 'MANAGE'],
    'BUDGET': ['READ', 'CREATE', 'UPDATE', 'DELETE', 'SUBMIT', 'APPROVE', 'PUBLISH'],
    'EXP': ['READ', 'CREATE', 'UPDATE', 'DELETE', 'SUBMIT', 'APPROVE'],
    'RET': ['READ', 'CREATE', 'UPDATE', 'SUBMIT', 'REVIEW', 'APPROVE', 'VERIFY'],
    'RPT': ['READ'],
    'ADMIN': ['USER.MANAGE', 'ROLE.MANAGE', 'AUDIT.READ']
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

# Role names double as workflow roles (see services.workflow.determine_approvers).
ROLE_ADMIN = 'admin'
ROLE_SUPER_ADMIN = 'super_admin'
ROLE_BUDGET_MANAGER = 'budget_manager'
ROLE_BUDGET_REVIEWER = 'budget_reviewer'
ROLE_DIRECTOR = 'director'
ROLE_PERMANENT_SECRETARY = 'permanent_secretary'
ROLE_COMMISSIONER = 'commissioner'

ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Users holding these roles inside an MDA receive early-warning notifications.
WARNING_STAKEHOLDER_ROLES = (ROLE_ADMIN, ROLE_BUDGET_MANAGER, ROLE_DIRECTOR)

_APPROVER = [
    'MDA.READ', 'BUDGET.READ', 'BUDGET.APPROVE', 'EXP.READ', 'EXP.APPROVE', 'RET.READ', 'RPT.READ'
]

ROLE_PRESETS: Dict[str, List[str]] = {
    'budget_officer': [
        'MDA.READ', 'BUDGET.READ', 'BUDGET.CREATE', 'BUDGET.UPDATE', 'BUDGET.SUBMIT',
        'EXP.READ', 'EXP.CREATE', 'EXP.UPDATE', 'EXP.DELETE', 'EXP.SUBMIT',
        'RET.READ', 'RET.CREATE', 'RET.UPDATE', 'RET.SUBMIT', 'RPT.READ'
    ],
    ROLE_BUDGET_REVIEWER: ['MDA.READ', 'BUDGET.READ', 'EXP.READ', 'RET.READ', 'RET.REVIEW', 'RET.VERIFY', 'RPT.READ'],
    # budget_manager: operational authority over budgets inside an MDA (no ADMIN.*)
    ROLE_BUDGET_MANAGER: [c for c in ALL_PERMISSION_CODES if not c.startswith('ADMIN.')],
    ROLE_DIRECTOR: _APPROVER + ['RET.APPROVE', 'BUDGET.PUBLISH'],
    ROLE_PERMANENT_SECRETARY: list(_APPROVER),
    ROLE_COMMISSIONER: _APPROVER + ['BUDGET.PUBLISH'],
    ROLE_ADMIN: ['*'],
    ROLE_SUPER_ADMIN: ['*'],
}
