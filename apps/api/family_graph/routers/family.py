from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from family_graph.core.auth import AuthContext, require_auth
from family_graph.core.db import commit_or_raise, get_db
from family_graph.core.errors import ForbiddenError, NotFoundError, ValidationFailedError
from family_graph.schemas.accounts import PermissionsResponse, PermissionsUpdate
from family_graph.schemas.members import MyFamilyEntry, MyFamilyResponse
from family_graph.services.access import require_account, require_permission
from family_graph.services.accounts import accounts_by_member, set_account_permissions, to_summary
from family_graph.services.members import get_member_by_ref, require_member
from family_graph.services.resolver import resolve_family

router = APIRouter(prefix="/v1/family", tags=["family"])


@router.get("/my-family", response_model=MyFamilyResponse)
def my_family(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    account = require_permission(db, ctx, "member.view")
    if account.member_id is None:
        raise ValidationFailedError(
            [{"field": "member_id", "message": "no member profile linked to this account"}],
            detail="no linked member",
        )
    me = require_member(db, account.member_id)
    items = resolve_family(db, me.id)
    accounts = accounts_by_member(db, [item.id for item in items])
    return MyFamilyResponse(
        family_id=me.family_id,
        is_primary=me.is_primary,
        members=[
            MyFamilyEntry(
                member=item.model_copy(update={"is_registered": item.id in accounts}),
                account=to_summary(accounts[item.id]) if item.id in accounts else None,
            )
            for item in items
        ],
    )


@router.put("/permissions/{member_ref}", response_model=PermissionsResponse)
def update_member_permissions(
    member_ref: str,
    payload: PermissionsUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    caller = require_account(db, ctx)
    me = require_member(db, caller.member_id) if caller.member_id is not None else None
    if me is None or not me.is_primary:
        raise ForbiddenError("only the primary member can manage family permissions")

    target = get_member_by_ref(db, member_ref)
    if target.family_id != me.family_id:
        raise ForbiddenError("member does not belong to your family")
    account = accounts_by_member(db, [target.id]).get(target.id)
    if account is None:
        raise NotFoundError("member has no login account")

    permissions = set_account_permissions(account, payload.permissions)
    commit_or_raise(db)
    return PermissionsResponse(member_id=target.member_id, permissions=permissions)
