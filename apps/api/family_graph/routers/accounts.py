from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from family_graph.core.auth import AuthContext, get_auth_context, require_auth
from family_graph.core.db import commit_or_raise, get_db
from family_graph.models.entities import AccountRoleEnum, Member
from family_graph.schemas.accounts import AccountApprove, AccountListResponse, AccountResponse
from family_graph.schemas.members import MeResponse, MemberResponse
from family_graph.services.access import require_account, require_permission
from family_graph.services.accounts import approve_account, list_pending_accounts, to_response

router = APIRouter(prefix="/v1", tags=["accounts"])


@router.get("/me", response_model=MeResponse)
def me(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    account = require_account(db, ctx)
    member = None
    linked = db.get(Member, account.member_id) if account.member_id is not None else None
    if linked is not None:
        member = MemberResponse.model_validate(linked, from_attributes=True).model_copy(update={"is_registered": True})
    return MeResponse(account=to_response(account), member=member)


@router.get("/accounts/pending", response_model=AccountListResponse)
def pending_accounts(
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "users.manage")
    return AccountListResponse(items=[to_response(item) for item in list_pending_accounts(db)])


@router.post("/accounts/{account_id}/approve", response_model=AccountResponse)
def approve(
    account_id: int,
    payload: AccountApprove,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "users.manage")
    account = approve_account(
        db,
        account_id,
        role=AccountRoleEnum(payload.role),
        permissions=payload.permissions,
        member_pk=payload.member_id,
    )
    commit_or_raise(db)
    db.refresh(account)
    return to_response(account)
