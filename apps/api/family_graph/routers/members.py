from math import ceil

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from family_graph.core.auth import AuthContext, get_auth_context
from family_graph.core.db import commit_or_raise, get_db
from family_graph.core.errors import ValidationFailedError
from family_graph.models.entities import GenderEnum, MaritalStatusEnum, Member
from family_graph.schemas.members import (
    CreateFamilyResponse,
    DashboardStatsResponse,
    FamilyViewResponse,
    MatrimonyStatusUpdate,
    MemberCreateResponse,
    MemberListResponse,
    MemberPayload,
    MemberResponse,
    MemberSearchResponse,
    ProvisioningReportResponse,
    SiblingsResponse,
)
from family_graph.services.access import is_privileged, require_permission
from family_graph.services.accounts import provision_account_for_member
from family_graph.services.members import (
    create_birth_family,
    delete_member,
    find_siblings,
    get_member_by_ref,
    list_members,
    members_by_pincode,
    registered_member_ids,
    require_member,
    search_maiden_name,
    set_matrimony_visibility,
)
from family_graph.services.resolver import resolve_family, resolve_family_tree
from family_graph.services.stats import get_dashboard_stats, invalidate_dashboard_stats
from family_graph.services.upsert import upsert_member

router = APIRouter(prefix="/v1/members", tags=["members"])


def member_view(db: Session, member: Member) -> MemberResponse:
    view = MemberResponse.model_validate(member, from_attributes=True)
    return view.model_copy(update={"is_registered": bool(registered_member_ids(db, [member.id]))})


def with_registration(db: Session, views: list[MemberResponse]) -> list[MemberResponse]:
    registered = registered_member_ids(db, [view.id for view in views])
    return [view.model_copy(update={"is_registered": view.id in registered}) for view in views]


@router.get("", response_model=MemberListResponse)
def list_all_members(
    search: str | None = None,
    name: str | None = None,
    location: str | None = None,
    family_id: str | None = None,
    is_primary: bool | None = None,
    gender: GenderEnum | None = None,
    marital_status: MaritalStatusEnum | None = None,
    father_id: int | None = None,
    mother_id: int | None = None,
    show_on_matrimony: bool | None = None,
    show_deceased: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=0, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    members, total = list_members(
        db,
        search=search,
        name=name,
        location=location,
        family_id=family_id,
        is_primary=is_primary,
        gender=gender,
        marital_status=marital_status,
        father_id=father_id,
        mother_id=mother_id,
        show_on_matrimony=show_on_matrimony,
        show_deceased=show_deceased,
        page=page,
        limit=limit,
    )
    views = [MemberResponse.model_validate(item, from_attributes=True) for item in members]
    return MemberListResponse(
        items=with_registration(db, views),
        page=page,
        total=total,
        pages=ceil(total / limit) if limit else 1,
    )


@router.get("/stats/dashboard", response_model=DashboardStatsResponse)
def dashboard_stats(
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    return get_dashboard_stats(db)


@router.get("/by-pincode/{pincode}", response_model=MemberSearchResponse)
def list_by_pincode(
    pincode: str,
    gender: GenderEnum | None = None,
    marital_status: MaritalStatusEnum | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    members = members_by_pincode(db, pincode, gender=gender, marital_status=marital_status, limit=limit)
    views = [MemberResponse.model_validate(item, from_attributes=True) for item in members]
    return MemberSearchResponse(items=with_registration(db, views))


@router.get("/search/maiden-name/{name}", response_model=MemberSearchResponse)
def search_by_maiden_name(
    name: str,
    limit: int = Query(default=20, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    views = [MemberResponse.model_validate(item, from_attributes=True) for item in search_maiden_name(db, name, limit)]
    return MemberSearchResponse(items=with_registration(db, views))


@router.post("", response_model=MemberCreateResponse, status_code=201)
def create_member(
    payload: MemberPayload,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    caller = require_permission(db, ctx, "member.create")
    if payload.id is not None:
        raise ValidationFailedError([{"field": "id", "message": "must not be set when creating a member"}])

    member = upsert_member(db, payload)
    report = provision_account_for_member(db, member, privileged=is_privileged(db, ctx), caller=caller)
    commit_or_raise(db)
    invalidate_dashboard_stats()

    db.refresh(member)
    return MemberCreateResponse(
        **member_view(db, member).model_dump(),
        provisioning=ProvisioningReportResponse(
            account_username=report.account_username,
            account_verified=report.account_verified,
            linked_caller=report.linked_caller,
            errors=report.errors,
        ),
    )


@router.get("/{member_ref}", response_model=MemberResponse)
def get_member(
    member_ref: str,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    return member_view(db, get_member_by_ref(db, member_ref))


@router.put("/{member_id}", response_model=MemberResponse)
def update_member(
    member_id: int,
    payload: MemberPayload,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.edit")
    require_member(db, member_id)
    member = upsert_member(db, payload.model_copy(update={"id": member_id}))
    commit_or_raise(db)
    invalidate_dashboard_stats()

    db.refresh(member)
    return member_view(db, member)


@router.delete("/{member_id}", status_code=204)
def remove_member(
    member_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.delete")
    delete_member(db, require_member(db, member_id))
    commit_or_raise(db)
    invalidate_dashboard_stats()


@router.post("/{member_id}/create-family", response_model=CreateFamilyResponse)
def create_family_for_member(
    member_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.edit")
    member = require_member(db, member_id)
    family_id, moved = create_birth_family(db, member)
    commit_or_raise(db)
    invalidate_dashboard_stats()
    return CreateFamilyResponse(family_id=family_id, member_id=member_id, moved_children=moved)


@router.patch("/{member_id}/matrimony-status", response_model=MemberResponse)
def update_matrimony_status(
    member_id: int,
    payload: MatrimonyStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.edit")
    member = set_matrimony_visibility(require_member(db, member_id), payload.show_on_matrimony)
    commit_or_raise(db)
    invalidate_dashboard_stats()

    db.refresh(member)
    return member_view(db, member)


@router.get("/{member_ref}/family", response_model=FamilyViewResponse)
def get_family(
    member_ref: str,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    target = get_member_by_ref(db, member_ref)
    items = resolve_family(db, target.id)
    return FamilyViewResponse(
        target_id=target.id,
        member_id=target.member_id,
        family_id=target.family_id,
        items=with_registration(db, items),
    )


@router.get("/{member_ref}/family-tree", response_model=FamilyViewResponse)
def get_family_tree(
    member_ref: str,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    target = get_member_by_ref(db, member_ref)
    items = resolve_family_tree(db, target.id)
    return FamilyViewResponse(
        target_id=target.id,
        member_id=target.member_id,
        family_id=target.family_id,
        items=with_registration(db, items),
    )


@router.get("/{member_ref}/siblings", response_model=SiblingsResponse)
def get_siblings(
    member_ref: str,
    db: Session = Depends(get_db),
    ctx: AuthContext | None = Depends(get_auth_context),
):
    require_permission(db, ctx, "member.view")
    target = get_member_by_ref(db, member_ref)
    views = [MemberResponse.model_validate(item, from_attributes=True) for item in find_siblings(db, target)]
    return SiblingsResponse(target_id=target.id, member_id=target.member_id, items=with_registration(db, views))
