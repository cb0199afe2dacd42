from __future__ import annotations

import re
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from family_graph.core.errors import ConflictError, NotFoundError, ValidationFailedError
from family_graph.core.logging import get_logger
from family_graph.models.entities import (
    GenderEnum,
    LifeStatusEnum,
    MaritalStatusEnum,
    Marriage,
    Member,
    UserAccount,
)
from family_graph.services.identifiers import MEMBER_ID_PATTERN, allocate_family_id

logger = get_logger(__name__)

REQUIRED_FIELDS = ("first_name", "last_name", "gender", "marital_status", "dob")

# Payload fields copied verbatim onto the Member row.
WRITABLE_FIELDS = (
    "prefix",
    "first_name",
    "middle_name",
    "last_name",
    "maiden_name",
    "nickname",
    "gender",
    "dob",
    "marital_status",
    "life_status",
    "blood_group",
    "occupation",
    "occupation_type",
    "education",
    "height",
    "phone",
    "email",
    "pincode",
    "state",
    "district",
    "taluka",
    "village",
    "address",
    "photo_url",
    "father_id",
    "mother_id",
    "family_id",
)


def compose_full_name(prefix: str | None, first: str | None, middle: str | None, last: str | None) -> str:
    parts = [part.strip() for part in (prefix, first, middle, last) if part and part.strip()]
    return re.sub(r"\s+", " ", " ".join(parts))


def refresh_full_name(member: Member) -> None:
    member.full_name = compose_full_name(member.prefix, member.first_name, member.middle_name, member.last_name)


def refresh_spouse_full_name(member: Member, spouse: Member | None) -> None:
    member.spouse_full_name = spouse.full_name if spouse is not None else None


def matrimony_eligible(member: Member) -> bool:
    return (
        member.marital_status != MaritalStatusEnum.married
        and member.life_status != LifeStatusEnum.deceased
        and (member.prefix or "").lower() != "late"
    )


def require_member(db: Session, member_pk: int, label: str = "member") -> Member:
    member = db.get(Member, member_pk)
    if member is None:
        raise NotFoundError(f"{label} not found")
    return member


def get_member_by_ref(db: Session, ref: str | int) -> Member:
    """Look a member up by memberId (M0001) or by internal identity."""
    ref = str(ref).strip()
    if MEMBER_ID_PATTERN.match(ref):
        member = db.execute(select(Member).where(Member.member_id == ref)).scalar_one_or_none()
    elif ref.isdigit():
        member = db.get(Member, int(ref))
    else:
        member = None
    if member is None:
        raise NotFoundError("member not found")
    return member


def validate_new_member(data: dict[str, Any]) -> None:
    errors = [
        {"field": field, "message": f"{field} is required"}
        for field in REQUIRED_FIELDS
        if data.get(field) in (None, "")
    ]
    if errors:
        raise ValidationFailedError(errors)


def validate_member_update(data: dict[str, Any]) -> None:
    """Required fields may be omitted on update but never cleared."""
    errors = [
        {"field": field, "message": f"{field} cannot be empty"}
        for field in REQUIRED_FIELDS
        if field in data and data[field] is None
    ]
    if errors:
        raise ValidationFailedError(errors)


def check_parent_references(db: Session, member_pk: int | None, father_id: int | None, mother_id: int | None) -> None:
    for field, parent_pk in (("father_id", father_id), ("mother_id", mother_id)):
        if parent_pk is None:
            continue
        if member_pk is not None and parent_pk == member_pk:
            raise ConflictError(f"a member cannot be their own {field.removesuffix('_id')}")
        if db.get(Member, parent_pk) is None:
            raise ValidationFailedError([{"field": field, "message": "referenced member does not exist"}])


def find_duplicate_child(
    db: Session,
    first_name: str,
    last_name: str,
    father_id: int | None,
    mother_id: int | None,
) -> Member | None:
    parent_match = []
    if father_id is not None:
        parent_match.append(Member.father_id == father_id)
    if mother_id is not None:
        parent_match.append(Member.mother_id == mother_id)
    if not parent_match:
        return None
    return db.execute(
        select(Member)
        .where(
            func.lower(Member.first_name) == first_name.lower(),
            func.lower(Member.last_name) == last_name.lower(),
            or_(*parent_match),
        )
        .limit(1)
    ).scalar_one_or_none()


def apply_fields(member: Member, data: dict[str, Any]) -> None:
    for field in WRITABLE_FIELDS:
        if field in data:
            setattr(member, field, data[field])
    if "show_on_matrimony" in data:
        member.show_on_matrimony = bool(data["show_on_matrimony"]) and matrimony_eligible(member)
    elif not matrimony_eligible(member):
        member.show_on_matrimony = False
    refresh_full_name(member)


def family_has_members(db: Session, family_id: str, exclude_pk: int | None = None) -> bool:
    query = select(Member.id).where(Member.family_id == family_id)
    if exclude_pk is not None:
        query = query.where(Member.id != exclude_pk)
    return db.execute(query.limit(1)).first() is not None


def set_primary(db: Session, member: Member) -> None:
    """Make `member` the single primary member of its family."""
    db.execute(
        update(Member)
        .where(Member.family_id == member.family_id, Member.id != member.id, Member.is_primary.is_(True))
        .values(is_primary=False)
        .execution_options(synchronize_session="fetch")
    )
    member.is_primary = True


def list_members(
    db: Session,
    *,
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
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Member], int]:
    query = select(Member)
    if not show_deceased:
        query = query.where(Member.life_status != LifeStatusEnum.deceased)
    if is_primary is not None:
        query = query.where(Member.is_primary.is_(is_primary))
    if show_on_matrimony:
        query = query.where(Member.show_on_matrimony.is_(True))
    if family_id:
        query = query.where(Member.family_id == family_id)
    if gender is not None:
        query = query.where(Member.gender == gender)
    if marital_status is not None:
        query = query.where(Member.marital_status == marital_status)
    if father_id is not None:
        query = query.where(Member.father_id == father_id)
    if mother_id is not None:
        query = query.where(Member.mother_id == mother_id)
    if search:
        term = search.strip()
        if MEMBER_ID_PATTERN.match(term.upper()):
            query = query.where(Member.member_id.ilike(f"%{term}%"))
        else:
            pattern = f"%{term}%"
            query = query.where(
                or_(
                    Member.full_name.ilike(pattern),
                    Member.first_name.ilike(pattern),
                    Member.last_name.ilike(pattern),
                    Member.village.ilike(pattern),
                    Member.taluka.ilike(pattern),
                    Member.phone.ilike(pattern),
                )
            )
    if name:
        pattern = f"%{name.strip()}%"
        query = query.where(
            or_(Member.full_name.ilike(pattern), Member.first_name.ilike(pattern), Member.last_name.ilike(pattern))
        )
    if location:
        pattern = f"%{location.strip()}%"
        query = query.where(
            or_(
                Member.state.ilike(pattern),
                Member.district.ilike(pattern),
                Member.taluka.ilike(pattern),
                Member.village.ilike(pattern),
            )
        )

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    query = query.order_by(Member.created_at.desc(), Member.id.desc())
    if limit > 0:
        query = query.offset((max(page, 1) - 1) * limit).limit(limit)
    return list(db.execute(query).scalars().all()), total


def registered_member_ids(db: Session, member_pks: list[int]) -> set[int]:
    if not member_pks:
        return set()
    rows = db.execute(select(UserAccount.member_id).where(UserAccount.member_id.in_(member_pks))).scalars()
    return {pk for pk in rows if pk is not None}


def delete_member(db: Session, member: Member) -> None:
    """Detach `member` from every graph edge, then delete it."""
    db.execute(
        update(Member).where(Member.father_id == member.id).values(father_id=None).execution_options(synchronize_session="fetch")
    )
    db.execute(
        update(Member).where(Member.mother_id == member.id).values(mother_id=None).execution_options(synchronize_session="fetch")
    )
    db.execute(
        update(Member)
        .where(Member.spouse_id == member.id)
        .values(spouse_id=None, spouse_full_name=None)
        .execution_options(synchronize_session="fetch")
    )
    for marriage in db.execute(
        select(Marriage).where(or_(Marriage.husband_id == member.id, Marriage.wife_id == member.id))
    ).scalars():
        db.delete(marriage)
    db.execute(
        update(UserAccount).where(UserAccount.member_id == member.id).values(member_id=None).execution_options(synchronize_session="fetch")
    )
    logger.info("member.deleted", member_id=member.member_id, family_id=member.family_id)
    db.delete(member)
    db.flush()


def create_birth_family(db: Session, member: Member) -> tuple[str, int]:
    """Move `member` into a newly allocated family as its primary member.

    A father takes the children recorded under his fatherId along.
    """
    family_id = allocate_family_id(db)
    member.family_id = family_id
    member.is_primary = True
    moved = 0
    if member.gender == GenderEnum.male:
        for child in db.execute(select(Member).where(Member.father_id == member.id)).scalars():
            child.family_id = family_id
            child.is_primary = False
            moved += 1
    db.flush()
    logger.info("family.created", member_id=member.member_id, family_id=family_id, moved_children=moved)
    return family_id, moved


def set_matrimony_visibility(member: Member, visible: bool) -> Member:
    member.show_on_matrimony = visible and matrimony_eligible(member)
    return member


def find_siblings(db: Session, member: Member) -> list[Member]:
    """Members sharing the father or the mother of `member`; half-siblings included."""
    parent_match = []
    if member.father_id is not None:
        parent_match.append(Member.father_id == member.father_id)
    if member.mother_id is not None:
        parent_match.append(Member.mother_id == member.mother_id)
    if not parent_match:
        return []
    return list(
        db.execute(
            select(Member)
            .where(or_(*parent_match), Member.id != member.id)
            .order_by(Member.dob.asc(), Member.id.asc())
        ).scalars()
    )


def members_by_pincode(
    db: Session,
    pincode: str,
    *,
    gender: GenderEnum | None = None,
    marital_status: MaritalStatusEnum | None = None,
    limit: int = 50,
) -> list[Member]:
    # Older records only carry the pincode inside the free-text address.
    pattern = f"%{pincode.strip()}%"
    query = select(Member).where(or_(Member.pincode.ilike(pattern), Member.address.ilike(pattern)))
    if gender is not None:
        query = query.where(Member.gender == gender)
    if marital_status is not None:
        query = query.where(Member.marital_status == marital_status)
    query = query.order_by(Member.first_name.asc(), Member.id.asc()).limit(limit)
    return list(db.execute(query).scalars())


def search_maiden_name(db: Session, name: str, limit: int = 20) -> list[Member]:
    return list(
        db.execute(
            select(Member)
            .where(Member.maiden_name.ilike(f"%{name.strip()}%"))
            .order_by(Member.first_name.asc(), Member.id.asc())
            .limit(limit)
        ).scalars()
    )
