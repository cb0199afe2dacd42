"""Marriage records are the source of truth for spouse links.

`Member.spouse_id` is a write-through cache of the member's Active marriage and is
rewritten here whenever a marriage is linked, ended or re-read.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from family_graph.core.errors import ConflictError
from family_graph.core.logging import get_logger
from family_graph.models.entities import (
    GenderEnum,
    MaritalStatusEnum,
    Marriage,
    MarriageStatusEnum,
    Member,
)
from family_graph.services.members import refresh_spouse_full_name

logger = get_logger(__name__)


def pair_key(first_pk: int, second_pk: int) -> str:
    low, high = sorted((first_pk, second_pk))
    return f"{low}:{high}"


def partner_id(marriage: Marriage, member_pk: int) -> int:
    return marriage.wife_id if marriage.husband_id == member_pk else marriage.husband_id


def assign_roles(member: Member, spouse: Member) -> tuple[Member, Member]:
    """Return (husband, wife); the male party is always the husband."""
    if member.gender == GenderEnum.male:
        return member, spouse
    if spouse.gender == GenderEnum.male:
        return spouse, member
    return member, spouse


def _lock_members(db: Session, member_pks: Iterable[int]) -> None:
    # Serializes concurrent marriage upserts per member on stores with row locks.
    db.execute(select(Member.id).where(Member.id.in_(list(member_pks))).with_for_update()).all()


def active_marriage_for(db: Session, member_pk: int) -> Marriage | None:
    return db.execute(
        select(Marriage)
        .where(
            or_(Marriage.husband_id == member_pk, Marriage.wife_id == member_pk),
            Marriage.status == MarriageStatusEnum.active,
        )
        .order_by(Marriage.id.asc())
        .limit(1)
    ).scalar_one_or_none()


def active_marriages_touching(db: Session, member_pks: Iterable[int]) -> list[Marriage]:
    pks = list(member_pks)
    if not pks:
        return []
    return list(
        db.execute(
            select(Marriage).where(
                or_(Marriage.husband_id.in_(pks), Marriage.wife_id.in_(pks)),
                Marriage.status == MarriageStatusEnum.active,
            )
        ).scalars()
    )


def link_spouses(db: Session, member: Member, spouse: Member) -> Marriage:
    """Create or reactivate the marriage between two members and write both spouse links."""
    if member.id == spouse.id:
        raise ConflictError("a member cannot be their own spouse")

    _lock_members(db, (member.id, spouse.id))
    for party, other in ((member, spouse), (spouse, member)):
        current = active_marriage_for(db, party.id)
        if current is not None and partner_id(current, party.id) != other.id:
            raise ConflictError(f"member {party.member_id} already has an active marriage")

    husband, wife = assign_roles(member, spouse)
    key = pair_key(member.id, spouse.id)
    marriage = db.execute(select(Marriage).where(Marriage.pair_key == key)).scalar_one_or_none()
    if marriage is None:
        marriage = Marriage(husband_id=husband.id, wife_id=wife.id, pair_key=key)
        try:
            with db.begin_nested():
                db.add(marriage)
        except IntegrityError:
            # A concurrent writer created the pair first; reuse its record.
            marriage = db.execute(select(Marriage).where(Marriage.pair_key == key)).scalar_one()

    marriage.husband_id = husband.id
    marriage.wife_id = wife.id
    marriage.status = MarriageStatusEnum.active
    marriage.ended_at = None

    for party, other in ((member, spouse), (spouse, member)):
        party.spouse_id = other.id
        party.marital_status = MaritalStatusEnum.married
        party.show_on_matrimony = False
        refresh_spouse_full_name(party, other)
    db.flush()
    logger.info("marriage.linked", husband=husband.member_id, wife=wife.member_id, marriage_id=marriage.id)
    return marriage


def end_active_marriage(
    db: Session,
    member: Member,
    outcome: MarriageStatusEnum,
    partner_status: MaritalStatusEnum | None = None,
) -> Marriage | None:
    """Move the member's Active marriage to `outcome` and clear both spouse links."""
    marriage = active_marriage_for(db, member.id)
    member.spouse_id = None
    member.spouse_full_name = None
    if marriage is None:
        return None

    marriage.status = outcome
    marriage.ended_at = datetime.now(timezone.utc)
    partner = db.get(Member, partner_id(marriage, member.id))
    if partner is not None:
        partner.spouse_id = None
        partner.spouse_full_name = None
        if partner_status is not None:
            partner.marital_status = partner_status
    db.flush()
    logger.info("marriage.ended", member_id=member.member_id, marriage_id=marriage.id, outcome=outcome.value)
    return marriage


def sync_spouse_link(db: Session, member: Member) -> Member | None:
    """Rewrite the member's legacy spouse link from its Active marriage; returns the spouse."""
    marriage = active_marriage_for(db, member.id)
    if marriage is None:
        member.spouse_id = None
        refresh_spouse_full_name(member, None)
        return None
    spouse = db.get(Member, partner_id(marriage, member.id))
    if spouse is None or spouse.id == member.id:
        member.spouse_id = None
        refresh_spouse_full_name(member, None)
        return None
    member.spouse_id = spouse.id
    spouse.spouse_id = member.id
    refresh_spouse_full_name(member, spouse)
    refresh_spouse_full_name(spouse, member)
    return spouse
