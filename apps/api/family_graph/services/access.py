from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.orm import Session

from family_graph.core.auth import AuthContext
from family_graph.core.errors import ForbiddenError
from family_graph.models.entities import AccountRoleEnum, UserAccount

PRIVILEGED_ROLES = (AccountRoleEnum.super_admin, AccountRoleEnum.admin)


def load_permissions(account: UserAccount) -> list[str]:
    try:
        values = json.loads(account.permissions or "[]")
    except json.JSONDecodeError:
        return []
    return [str(item) for item in values] if isinstance(values, list) else []


def dump_permissions(permissions: list[str]) -> str:
    return json.dumps(sorted(set(permissions)))


def get_account_by_username(db: Session, username: str) -> UserAccount | None:
    return db.execute(select(UserAccount).where(UserAccount.username == username)).scalar_one_or_none()


def get_caller_account(db: Session, ctx: AuthContext | None) -> UserAccount | None:
    if ctx is None:
        return None
    return get_account_by_username(db, ctx.username)


def is_privileged(db: Session, ctx: AuthContext | None) -> bool:
    """Disabled auth acts as the system; otherwise only SuperAdmin/Admin accounts."""
    if ctx is None:
        return True
    account = get_caller_account(db, ctx)
    return account is not None and account.is_active and account.role in PRIVILEGED_ROLES


def require_account(db: Session, ctx: AuthContext) -> UserAccount:
    account = get_caller_account(db, ctx)
    if account is None or not account.is_active:
        raise ForbiddenError("no active account for this user")
    return account


def require_permission(db: Session, ctx: AuthContext | None, permission: str) -> UserAccount | None:
    if ctx is None:
        return None
    account = require_account(db, ctx)
    if account.role in PRIVILEGED_ROLES:
        return account
    if permission not in load_permissions(account):
        raise ForbiddenError(f"permission required: {permission}")
    return account
