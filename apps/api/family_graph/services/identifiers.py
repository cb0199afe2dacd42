"""Sequential human-readable identifiers for members (M0001) and families (F0001).

Allocation is race-safe: the candidate identifier is written inside a savepoint
against a unique constraint and the next candidate is tried on collision.
"""
from __future__ import annotations

import re
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from family_graph.core.config import settings
from family_graph.core.errors import ConflictError
from family_graph.core.logging import get_logger
from family_graph.models.entities import Household, Member

logger = get_logger(__name__)

MEMBER_ID_PATTERN = re.compile(r"^M(\d+)$")
FAMILY_ID_PATTERN = re.compile(r"^F(\d+)$")


def is_real_family_id(value: str | None) -> bool:
    """False for empty values and the FNew / Unassigned sentinels."""
    return bool(value) and FAMILY_ID_PATTERN.match(value) is not None


def _highest_sequence(values: Iterable[str | None], pattern: re.Pattern[str]) -> int:
    highest = 0
    for value in values:
        match = pattern.match(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _format(prefix: str, number: int) -> str:
    return f"{prefix}{number:0{settings.identifier_width}d}"


def generate_member_id(db: Session) -> str:
    rows = db.execute(select(Member.member_id).where(Member.member_id.like("M%"))).scalars()
    return _format("M", _highest_sequence(rows, MEMBER_ID_PATTERN) + 1)


def generate_family_id(db: Session) -> str:
    member_families = db.execute(select(Member.family_id).where(Member.family_id.like("F%")).distinct()).scalars()
    reserved = db.execute(select(Household.family_id)).scalars()
    highest = max(
        _highest_sequence(member_families, FAMILY_ID_PATTERN),
        _highest_sequence(reserved, FAMILY_ID_PATTERN),
    )
    return _format("F", highest + 1)


def _member_id_taken(db: Session, member_id: str) -> bool:
    return db.execute(select(Member.id).where(Member.member_id == member_id)).first() is not None


def _family_id_taken(db: Session, family_id: str) -> bool:
    return db.execute(select(Household.family_id).where(Household.family_id == family_id)).first() is not None


def insert_with_member_id(db: Session, member: Member) -> Member:
    """Assign the next free memberId and insert `member`, retrying on collision."""
    for attempt in range(settings.identifier_retry_attempts):
        member.member_id = generate_member_id(db)
        try:
            with db.begin_nested():
                db.add(member)
        except IntegrityError:
            # Only a lost race for the identifier is retried; any other constraint propagates.
            if not _member_id_taken(db, member.member_id):
                raise
            logger.warning("identifier.member_collision", member_id=member.member_id, attempt=attempt)
            continue
        return member
    raise ConflictError("could not allocate a unique member identifier")


def allocate_family_id(db: Session) -> str:
    """Reserve and return the next family identifier."""
    for attempt in range(settings.identifier_retry_attempts):
        family_id = generate_family_id(db)
        try:
            with db.begin_nested():
                db.add(Household(family_id=family_id))
        except IntegrityError:
            if not _family_id_taken(db, family_id):
                raise
            logger.warning("identifier.family_collision", family_id=family_id, attempt=attempt)
            continue
        logger.info("identifier.family_allocated", family_id=family_id)
        return family_id
    raise ConflictError("could not allocate a unique family identifier")
