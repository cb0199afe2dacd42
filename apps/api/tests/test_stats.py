from family_graph.models.entities import GenderEnum, LifeStatusEnum, MaritalStatusEnum
from family_graph.services import stats as stats_service
from family_graph.services.stats import get_dashboard_stats, invalidate_dashboard_stats


def test_dashboard_counts_alive_members(db_session, add_member):
    add_member("Dad", family_id="F0001", is_primary=True, marital_status=MaritalStatusEnum.married)
    add_member("Mom", family_id="F0001", gender=GenderEnum.female, marital_status=MaritalStatusEnum.married)
    add_member("Son", family_id="F0001")
    add_member("Aunt", family_id="F0002", gender=GenderEnum.female, is_primary=True)
    add_member("Grandpa", family_id="F0003", life_status=LifeStatusEnum.deceased)

    stats = get_dashboard_stats(db_session)

    assert stats.counts.total == 4
    assert stats.counts.male == 2
    assert stats.counts.female == 2
    assert stats.counts.married == 2
    assert stats.counts.single_male == 1
    assert stats.counts.single_female == 1
    assert stats.counts.primary == 2
    assert stats.counts.families == 2
    assert {item.status: item.count for item in stats.marital} == {"Married": 2, "Single": 2}
    assert len(stats.recent_members) == 5


def test_dashboard_stats_are_cached_until_invalidated(db_session, add_member):
    add_member("First", family_id="F0001")
    assert get_dashboard_stats(db_session).counts.total == 1

    add_member("Second", family_id="F0001")
    assert get_dashboard_stats(db_session).counts.total == 1

    invalidate_dashboard_stats()
    assert get_dashboard_stats(db_session).counts.total == 2


def test_result_computed_across_invalidation_is_not_cached(db_session, add_member, monkeypatch):
    add_member("First", family_id="F0001")
    compute = stats_service._compute

    def compute_then_write(db):
        result = compute(db)
        # A write lands and invalidates while this computation is in flight.
        add_member("Second", family_id="F0001")
        invalidate_dashboard_stats()
        return result

    monkeypatch.setattr(stats_service, "_compute", compute_then_write)
    assert get_dashboard_stats(db_session).counts.total == 1

    monkeypatch.setattr(stats_service, "_compute", compute)
    assert get_dashboard_stats(db_session).counts.total == 2
