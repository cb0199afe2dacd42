"""Relationship resolver: the set of members shown as "family" for one person.

Expansion order:

1. core household (same familyId, or just the target when it has no real family)
2. cross-household descendants of the core, `depth` hops deep
3. ancestors missing from the set (target only; every member in the tree view)
4. spouse's parents (tree view)
5. children of the fetched ancestors, i.e. siblings reached through a parent
6. opposite parties of every Active marriage touching the set
7. spouse links from those marriages injected on detached copies

Records are merged by identity, first-seen wins. The store is never written.
"""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from family_graph.core.config import settings
from family_graph.core.logging import get_logger
from family_graph.models.entities import Member
from family_graph.schemas.members import MemberResponse
from family_graph.services.identifiers import is_real_family_id
from family_graph.services.marriages import active_marriages_touching
from family_graph.services.members import get_member_by_ref

logger = get_logger(__name__)


class _FamilySet:
    """Insertion-ordered, identity-keyed accumulator."""

    def __init__(self) -> None:
        self._members: dict[int, Member] = {}

    def add(self, members: Iterable[Member]) -> list[Member]:
        added = []
        for member in members:
            if member.id not in self._members:
                self._members[member.id] = member
                added.append(member)
        return added

    def __contains__(self, member_pk: int | None) -> bool:
        return member_pk in self._members

    def ids(self) -> list[int]:
        return list(self._members)

    def members(self) -> list[Member]:
        return list(self._members.values())


def _core_household(db: Session, target: Member) -> list[Member]:
    if not is_real_family_id(target.family_id):
        return [target]
    return list(db.execute(select(Member).where(Member.family_id == target.family_id)).scalars())


def _children_of(db: Session, parents: list[Member]) -> list[Member]:
    parent_pks = [member.id for member in parents]
    if not parent_pks:
        return []
    return list(
        db.execute(
            select(Member).where(or_(Member.father_id.in_(parent_pks), Member.mother_id.in_(parent_pks)))
        ).scalars()
    )


def _expand_descendants(db: Session, found: _FamilySet, seeds: list[Member], depth: int) -> None:
    frontier = seeds
    for _ in range(depth):
        frontier = found.add(_children_of(db, frontier))
        if not frontier:
            break


def _parent_pks(members: Iterable[Member]) -> set[int]:
    pks: set[int] = set()
    for member in members:
        for parent_pk in (member.father_id, member.mother_id):
            if parent_pk is not None and parent_pk != member.id:
                pks.add(parent_pk)
    return pks


def _fetch_missing(db: Session, found: _FamilySet, member_pks: Iterable[int]) -> list[Member]:
    missing = [pk for pk in member_pks if pk not in found]
    if not missing:
        return []
    return found.add(db.execute(select(Member).where(Member.id.in_(missing))).scalars())


def _with_marriages(db: Session, found: _FamilySet) -> list[MemberResponse]:
    marriages = [item for item in active_marriages_touching(db, found.ids()) if item.husband_id != item.wife_id]
    _fetch_missing(db, found, {pk for item in marriages for pk in (item.husband_id, item.wife_id)})

    views = {
        member.id: MemberResponse.model_validate(member, from_attributes=True)
        for member in found.members()
    }
    for marriage in marriages:
        husband = views.get(marriage.husband_id)
        wife = views.get(marriage.wife_id)
        if husband is None or wife is None:
            continue
        views[husband.id] = husband.model_copy(update={"spouse_id": wife.id})
        views[wife.id] = wife.model_copy(update={"spouse_id": husband.id})
    return list(views.values())


def _expansion_depth(depth: int | None) -> int:
    """Descendant hops to expand; at least two."""
    depth = settings.resolver_depth if depth is None else depth
    if depth < 2:
        raise ValueError(f"resolver depth must be at least 2, got {depth}")
    return depth


def resolve_family(db: Session, member_ref: str | int, depth: int | None = None) -> list[MemberResponse]:
    target = get_member_by_ref(db, member_ref)
    depth = _expansion_depth(depth)

    found = _FamilySet()
    core = found.add(_core_household(db, target))
    _expand_descendants(db, found, core, depth)

    ancestors = _fetch_missing(db, found, _parent_pks([target]))
    found.add(_children_of(db, ancestors))

    result = _with_marriages(db, found)
    logger.debug("resolver.family", member_id=target.member_id, size=len(result))
    return result


def resolve_family_tree(db: Session, member_ref: str | int, depth: int | None = None) -> list[MemberResponse]:
    target = get_member_by_ref(db, member_ref)
    depth = _expansion_depth(depth)

    found = _FamilySet()
    core = found.add(_core_household(db, target))
    _expand_descendants(db, found, core, depth)

    ancestors = _fetch_missing(db, found, _parent_pks(found.members()))

    spouse_pks = {
        pk
        for marriage in active_marriages_touching(db, [target.id])
        for pk in (marriage.husband_id, marriage.wife_id)
        if pk != target.id
    }
    spouses = [spouse for spouse in (db.get(Member, pk) for pk in spouse_pks) if spouse is not None]
    ancestors += _fetch_missing(db, found, _parent_pks(spouses))

    _expand_descendants(db, found, ancestors, depth)

    result = _with_marriages(db, found)
    logger.debug("resolver.family_tree", member_id=target.member_id, size=len(result))
    return result
