"""Login accounts around member creation: provisioning, auto-link and approval.

Provisioning is best-effort. Each step runs in its own savepoint so a failure is
rolled back on its own, logged and returned in the report while the member stays.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from family_graph.core.config import settings
from family_graph.core.errors import NotFoundError
from family_graph.core.logging import get_logger
from family_graph.models.entities import AccountRoleEnum, Member, UserAccount
from family_graph.schemas.accounts import AccountResponse, AccountSummary
from family_graph.services.access import dump_permissions, get_account_by_username, load_permissions

logger = get_logger(__name__)

MEMBER_DEFAULT_PERMISSIONS = ["member.view", "member.edit"]


@dataclass
class ProvisioningReport:
    account_username: str | None = None
    account_verified: bool = False
    linked_caller: bool = False
    errors: list[str] = field(default_factory=list)


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _slug(value: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def unique_username(db: Session, member: Member) -> str:
    base = f"{_slug(member.first_name)}{_slug(member.last_name)}" or f"user{member.member_id.lower()}"
    username = base
    counter = 1
    while get_account_by_username(db, username) is not None:
        username = f"{base}{counter}"
        counter += 1
    return username


def _build_account(db: Session, member: Member, privileged: bool) -> UserAccount:
    if privileged:
        return UserAccount(
            username=unique_username(db, member),
            password_hash=hash_password(settings.default_account_password),
            email=member.email,
            mobile=member.phone,
            role=AccountRoleEnum.member,
            is_verified=True,
            is_active=True,
            name=member.full_name,
            member_id=member.id,
            permissions=dump_permissions(MEMBER_DEFAULT_PERMISSIONS),
        )
    # Pending accounts log in with the memberId until an administrator approves them.
    return UserAccount(
        username=member.member_id.lower(),
        password_hash=hash_password(member.phone or settings.default_account_password),
        email=member.email,
        mobile=member.phone,
        role=AccountRoleEnum.member,
        is_verified=False,
        is_active=True,
        name=f"{member.first_name} {member.last_name}",
        member_id=member.id,
    )


def provision_account_for_member(
    db: Session,
    member: Member,
    *,
    privileged: bool,
    caller: UserAccount | None = None,
) -> ProvisioningReport:
    report = ProvisioningReport()

    try:
        with db.begin_nested():
            account = _build_account(db, member, privileged)
            db.add(account)
        report.account_username = account.username
        report.account_verified = account.is_verified
        logger.info(
            "account.provisioned",
            member_id=member.member_id,
            username=account.username,
            verified=account.is_verified,
        )
    except (SQLAlchemyError, ValueError) as exc:
        logger.warning("account.provision_failed", member_id=member.member_id, error=str(exc))
        report.errors.append(f"account provisioning failed: {exc.__class__.__name__}")

    if caller is not None and caller.member_id is None:
        try:
            with db.begin_nested():
                caller.member_id = member.id
            report.linked_caller = True
            logger.info("account.auto_linked", username=caller.username, member_id=member.member_id)
        except SQLAlchemyError as exc:
            logger.warning("account.auto_link_failed", username=caller.username, error=str(exc))
            report.errors.append(f"caller auto-link failed: {exc.__class__.__name__}")

    return report


def to_summary(account: UserAccount) -> AccountSummary:
    return AccountSummary(
        username=account.username,
        role=account.role.value,
        permissions=load_permissions(account),
        is_verified=account.is_verified,
    )


def to_response(account: UserAccount) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        username=account.username,
        email=account.email,
        mobile=account.mobile,
        role=account.role.value,
        is_verified=account.is_verified,
        is_active=account.is_active,
        permissions=load_permissions(account),
        name=account.name,
        member_id=account.member_id,
    )


def accounts_by_member(db: Session, member_pks: list[int]) -> dict[int, UserAccount]:
    if not member_pks:
        return {}
    rows = db.execute(select(UserAccount).where(UserAccount.member_id.in_(member_pks))).scalars()
    return {account.member_id: account for account in rows if account.member_id is not None}


def list_pending_accounts(db: Session) -> list[UserAccount]:
    return list(
        db.execute(
            select(UserAccount).where(UserAccount.is_verified.is_(False)).order_by(UserAccount.created_at.asc())
        ).scalars()
    )


def approve_account(
    db: Session,
    account_id: int,
    role: AccountRoleEnum,
    permissions: list[str],
    member_pk: int | None = None,
) -> UserAccount:
    account = db.get(UserAccount, account_id)
    if account is None:
        raise NotFoundError("account not found")
    if member_pk is not None:
        if db.get(Member, member_pk) is None:
            raise NotFoundError("member not found")
        account.member_id = member_pk
    account.is_verified = True
    account.is_active = True
    account.role = role
    account.permissions = dump_permissions(permissions or MEMBER_DEFAULT_PERMISSIONS)
    logger.info("account.approved", username=account.username, role=role.value)
    return account


def set_account_permissions(account: UserAccount, permissions: list[str]) -> list[str]:
    account.permissions = dump_permissions(permissions)
    return load_permissions(account)
