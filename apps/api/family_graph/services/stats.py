from __future__ import annotations

import threading

from cachetools import TTLCache
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from family_graph.core.config import settings
from family_graph.core.logging import get_logger
from family_graph.models.entities import GenderEnum, LifeStatusEnum, MaritalStatusEnum, Member
from family_graph.schemas.members import DashboardCounts, DashboardStatsResponse, MemberResponse, StatusCount

logger = get_logger(__name__)

_DASHBOARD_KEY = "dashboard"
_cache: TTLCache = TTLCache(maxsize=8, ttl=settings.stats_cache_ttl_seconds)
_lock = threading.Lock()
# Bumped on every invalidation; a result computed across a bump is not cached.
_generation = 0


def invalidate_dashboard_stats() -> None:
    global _generation
    with _lock:
        _generation += 1
        _cache.clear()


def _count(db: Session, *conditions) -> int:
    query = select(func.count(Member.id)).where(Member.life_status != LifeStatusEnum.deceased, *conditions)
    return db.execute(query).scalar_one()


def _compute(db: Session) -> DashboardStatsResponse:
    alive = Member.life_status != LifeStatusEnum.deceased
    families = db.execute(
        select(func.count(func.distinct(Member.family_id))).where(alive, Member.family_id.like("F%"))
    ).scalar_one()
    counts = DashboardCounts(
        total=_count(db),
        male=_count(db, Member.gender == GenderEnum.male),
        female=_count(db, Member.gender == GenderEnum.female),
        married=_count(db, Member.marital_status == MaritalStatusEnum.married),
        single_male=_count(db, Member.gender == GenderEnum.male, Member.marital_status == MaritalStatusEnum.single),
        single_female=_count(
            db, Member.gender == GenderEnum.female, Member.marital_status == MaritalStatusEnum.single
        ),
        primary=_count(db, Member.is_primary.is_(True)),
        families=families,
    )
    marital = [
        StatusCount(status=status.value, count=count)
        for status, count in db.execute(
            select(Member.marital_status, func.count(Member.id)).where(alive).group_by(Member.marital_status)
        ).all()
    ]
    recent = db.execute(select(Member).order_by(Member.created_at.desc(), Member.id.desc()).limit(5)).scalars()
    return DashboardStatsResponse(
        counts=counts,
        marital=sorted(marital, key=lambda item: item.status),
        recent_members=[MemberResponse.model_validate(member, from_attributes=True) for member in recent],
    )


def get_dashboard_stats(db: Session) -> DashboardStatsResponse:
    with _lock:
        cached = _cache.get(_DASHBOARD_KEY)
        generation = _generation
    if cached is not None:
        logger.debug("stats.cache_hit")
        return cached
    stats = _compute(db)
    with _lock:
        if generation == _generation:
            _cache[_DASHBOARD_KEY] = stats
        else:
            logger.debug("stats.stale_result_dropped")
    return stats
