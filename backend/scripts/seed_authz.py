#!/usr/bin/env python
"""Idempotent seed script for permissions, roles and the first admin account.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --validate    # fail (exit 2) on unknown services/actions
"""
from __future__ import annotations
import os, sys, argparse, difflib
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from budget_tracker import create_app, get_db  # type: ignore
from budget_tracker.models.authz import Base, Permission, Role, RolePermission, User, UserRole
from budget_tracker.constants.permissions import SERVICE_ACTIONS, ROLE_PRESETS, ROLE_SUPER_ADMIN, build_all_permission_codes


def ensure_permissions(session):
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description=code.replace('.', ' - ')))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in existing_roles:
            role = Role(name=role_name, is_system=True, description=role_name.replace('_', ' ').title())
            session.add(role)
            existing_roles[role_name] = role
            created += 1
    session.flush()

    all_codes = set(build_all_permission_codes())
    perms_map = {p.code: p for p in session.execute(select(Permission)).scalars()}
    for role_name, raw_codes in ROLE_PRESETS.items():
        role = existing_roles[role_name]
        desired = all_codes if '*' in raw_codes else set(raw_codes)
        current = {rp.permission.code for rp in role.permissions}
        for code in sorted(desired - current):
            if code not in perms_map:
                print(f"[WARN] Missing permission referenced by role {role_name}: {code}")
                continue
            session.add(RolePermission(role=role, permission=perms_map[code]))
    return created


def ensure_initial_admin(session):
    admin_role = session.execute(select(Role).where(Role.name==ROLE_SUPER_ADMIN)).scalar_one_or_none()
    if not admin_role:
        print(f'[WARN] {ROLE_SUPER_ADMIN} role missing; skipping admin user creation')
        return
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    if session.execute(select(User).where(User.email==admin_email)).scalar_one_or_none():
        return
    user = User(first_name='System', last_name='Administrator', email=admin_email, password_hash='')
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role_id=admin_role.id))
    print(f"[INFO] Created initial admin user {admin_email} with temporary password.")


def validate(session):
    problems = []
    for code in session.execute(select(Permission.code)).scalars().all():
        svc, _, action = code.partition('.')
        if svc not in SERVICE_ACTIONS:
            problems.append(f"Unknown service '{svc}' in code: {code}")
        elif action not in SERVICE_ACTIONS[svc]:
            suggestion = difflib.get_close_matches(action, SERVICE_ACTIONS[svc], n=1)
            hint = f" (did you mean {suggestion[0]})" if suggestion else ''
            problems.append(f"Unknown action '{action}' for service '{svc}' in code: {code}{hint}")
    return problems


def print_role_summary(session):
    rows = []
    for role in session.execute(select(Role).order_by(Role.name)).scalars().all():
        perms = sorted(rp.permission.code for rp in role.permissions)
        rows.append((role.name, len(perms), perms[:8]))
    if not rows:
        print("[INFO] No roles present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def parse_args():
    p = argparse.ArgumentParser(description="Seed RBAC permissions, roles and the initial admin")
    p.add_argument('--dry-run', action='store_true', help='Run then rollback')
    p.add_argument('--show-roles', action='store_true', help='Print role summary')
    p.add_argument('--validate', action='store_true', help='Validate permission codes against SERVICE_ACTIONS')
    p.add_argument('--create-tables', action='store_true', help='Run Base.metadata.create_all first (dev databases without Alembic)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            if args.create_tables:
                Base.metadata.create_all(session.get_bind())
            created_p = ensure_permissions(session)
            created_r = ensure_roles(session)
            ensure_initial_admin(session)
            if args.validate:
                problems = validate(session)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for p in problems:
                        print(' -', p)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK: All permission codes valid.')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions would create: {created_p}, Roles would create: {created_r}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {created_p}, Roles created: {created_r}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(session)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
