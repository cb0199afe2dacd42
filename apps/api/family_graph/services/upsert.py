"""Recursive member upsert: one member plus optional spouse and children.

Everything runs in the caller's session/transaction; nothing is committed here, so
a failure anywhere in the spouse or children handling leaves no partial writes
once the caller rolls back.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from family_graph.core.errors import ConflictError, ValidationFailedError
from family_graph.core.logging import get_logger
from family_graph.models.entities import (
    FAMILY_NEW,
    FAMILY_UNASSIGNED,
    GenderEnum,
    LifeStatusEnum,
    MaritalStatusEnum,
    MarriageStatusEnum,
    Member,
)
from family_graph.schemas.members import MemberPayload, SpousePayload
from family_graph.services.identifiers import allocate_family_id, insert_with_member_id, is_real_family_id
from family_graph.services.marriages import (
    active_marriage_for,
    end_active_marriage,
    link_spouses,
    partner_id,
    sync_spouse_link,
)
from family_graph.services.members import (
    apply_fields,
    check_parent_references,
    family_has_members,
    find_duplicate_child,
    require_member,
    set_primary,
    validate_member_update,
    validate_new_member,
)

logger = get_logger(__name__)

_NESTED_FIELDS = {"id", "spouse", "spouse_id", "children"}
_INHERITED_LOCATION = ("pincode", "state", "district", "taluka", "village", "address")


@dataclass(frozen=True)
class UpsertContext:
    """Values a child inherits from the member it is created under."""

    family_id: str | None = None
    father_id: int | None = None
    mother_id: int | None = None
    last_name: str | None = None

    @classmethod
    def for_children_of(cls, parent: Member, other_parent: Member | None = None) -> UpsertContext:
        if parent.gender == GenderEnum.male:
            father, mother = parent, other_parent
        else:
            father, mother = other_parent, parent
        return cls(
            family_id=parent.family_id,
            father_id=father.id if father is not None else None,
            mother_id=mother.id if mother is not None else None,
            last_name=parent.last_name,
        )


def upsert_member(
    db: Session,
    payload: MemberPayload | SpousePayload,
    context: UpsertContext | None = None,
) -> Member:
    context = context or UpsertContext()
    data = payload.model_dump(exclude_unset=True, exclude=_NESTED_FIELDS)
    wants_primary = data.pop("is_primary", None)

    if context.family_id:
        data["family_id"] = context.family_id
    if context.father_id is not None:
        data["father_id"] = context.father_id
    if context.mother_id is not None:
        data["mother_id"] = context.mother_id

    if payload.id is not None:
        member = _update_existing(db, payload.id, data)
    else:
        if not data.get("last_name") and context.last_name:
            data["last_name"] = context.last_name
        member = _create_new(db, data)

    if wants_primary and is_real_family_id(member.family_id):
        set_primary(db, member)

    if isinstance(payload, MemberPayload):
        spouse = _resolve_spouse(db, member, payload)
        if spouse is None:
            spouse = sync_spouse_link(db, member)
        # Children only depend on the saved parent; each is an independent sub-upsert.
        for child in payload.children:
            upsert_member(db, child, UpsertContext.for_children_of(member, spouse))

    db.flush()
    return member


def _create_new(db: Session, data: dict) -> Member:
    validate_new_member(data)
    check_parent_references(db, None, data.get("father_id"), data.get("mother_id"))

    if data.get("father_id") is not None or data.get("mother_id") is not None:
        duplicate = find_duplicate_child(
            db, data["first_name"], data["last_name"], data.get("father_id"), data.get("mother_id")
        )
        if duplicate is not None:
            raise ConflictError("a child with this name already exists for this parent")

    family_id = data.get("family_id")
    if not family_id or family_id == FAMILY_NEW:
        family_id = allocate_family_id(db)
    data["family_id"] = family_id

    member = Member()
    apply_fields(member, data)
    member.is_primary = is_real_family_id(family_id) and not family_has_members(db, family_id)
    insert_with_member_id(db, member)
    logger.info(
        "member.created",
        member_id=member.member_id,
        family_id=member.family_id,
        is_primary=member.is_primary,
    )
    return member


def _update_existing(db: Session, member_pk: int, data: dict) -> Member:
    member = require_member(db, member_pk)
    validate_member_update(data)
    check_parent_references(db, member.id, data.get("father_id"), data.get("mother_id"))

    previous_status = member.marital_status
    previous_life = member.life_status
    requested_family = data.get("family_id", member.family_id)

    becoming_married = (
        data.get("marital_status") == MaritalStatusEnum.married and previous_status != MaritalStatusEnum.married
    )
    founds_household = (
        becoming_married
        and member.father_id is None
        and member.mother_id is None
        and requested_family in (None, FAMILY_UNASSIGNED, FAMILY_NEW)
    )
    if founds_household or requested_family == FAMILY_NEW:
        data["family_id"] = allocate_family_id(db)
        apply_fields(member, data)
        set_primary(db, member)
    else:
        if data.get("family_id", member.family_id) is None:
            # An explicit null keeps the current family.
            data.pop("family_id")
        moving = "family_id" in data and data["family_id"] != member.family_id
        apply_fields(member, data)
        if moving:
            member.is_primary = is_real_family_id(member.family_id) and not family_has_members(
                db, member.family_id, exclude_pk=member.id
            )

    if member.marital_status in (MaritalStatusEnum.divorced, MaritalStatusEnum.single):
        end_active_marriage(db, member, MarriageStatusEnum.divorced, partner_status=MaritalStatusEnum.divorced)
    elif member.marital_status == MaritalStatusEnum.widowed:
        end_active_marriage(db, member, MarriageStatusEnum.widowed)
    if previous_life != LifeStatusEnum.deceased and member.life_status == LifeStatusEnum.deceased:
        end_active_marriage(db, member, MarriageStatusEnum.widowed, partner_status=MaritalStatusEnum.widowed)

    db.flush()
    logger.info("member.updated", member_id=member.member_id, family_id=member.family_id)
    return member


def _resolve_spouse(db: Session, member: Member, payload: MemberPayload) -> Member | None:
    """Create, reuse or update the member's spouse, then link the marriage."""
    if payload.spouse is None and payload.spouse_id is None:
        return None
    if member.marital_status != MaritalStatusEnum.married:
        raise ValidationFailedError(
            [{"field": "spouse", "message": "spouse data requires marital_status Married"}]
        )

    spouse_payload = payload.spouse
    target_pk = spouse_payload.id if spouse_payload is not None and spouse_payload.id is not None else payload.spouse_id
    if target_pk is None:
        existing = active_marriage_for(db, member.id)
        if existing is not None:
            target_pk = partner_id(existing, member.id)
            logger.info("spouse.reused", member_id=member.member_id, spouse_pk=target_pk)
    if target_pk == member.id:
        raise ConflictError("a member cannot be their own spouse")

    if spouse_payload is None:
        spouse = require_member(db, target_pk, "spouse")
    else:
        spouse = upsert_member(db, _with_spouse_defaults(member, spouse_payload, target_pk))

    link_spouses(db, member, spouse)
    return spouse


def _with_spouse_defaults(member: Member, payload: SpousePayload, target_pk: int | None) -> SpousePayload:
    # The spouse joins the member's household unless a family is given explicitly.
    updates: dict = {"id": target_pk}
    if payload.family_id is None:
        updates["family_id"] = member.family_id
    if target_pk is None:
        if payload.last_name is None:
            updates["last_name"] = member.last_name
        if payload.gender is None:
            updates["gender"] = GenderEnum.female if member.gender == GenderEnum.male else GenderEnum.male
        if payload.dob is None:
            updates["dob"] = member.dob
        updates["marital_status"] = MaritalStatusEnum.married
        for field in _INHERITED_LOCATION:
            if getattr(payload, field) is None and getattr(member, field) is not None:
                updates[field] = getattr(member, field)
    return payload.model_copy(update=updates)
