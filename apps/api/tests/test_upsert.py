import pytest
from sqlalchemy import func, select

from family_graph.core.errors import ConflictError, NotFoundError, ValidationFailedError
from family_graph.models.entities import (
    GenderEnum,
    LifeStatusEnum,
    MaritalStatusEnum,
    Marriage,
    MarriageStatusEnum,
    Member,
)
from family_graph.schemas.members import MemberPayload
from family_graph.services.upsert import UpsertContext, upsert_member


def _payload(**fields):
    base = {
        "first_name": "Ramesh",
        "last_name": "Patil",
        "gender": "Male",
        "marital_status": "Single",
        "dob": "1960-01-01",
    }
    base.update(fields)
    return MemberPayload.model_validate(base)


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def _married_couple(db):
    husband = upsert_member(db, _payload(marital_status="Married", spouse={"first_name": "Sita"}))
    wife = db.get(Member, husband.spouse_id)
    return husband, wife


def test_create_allocates_family_and_primary(db_session):
    member = upsert_member(db_session, _payload(village="Wai"))

    assert member.member_id == "M0001"
    assert member.family_id == "F0001"
    assert member.is_primary is True
    assert member.full_name == "Ramesh Patil"


def test_second_member_of_family_is_not_primary(db_session):
    upsert_member(db_session, _payload())
    brother = upsert_member(db_session, _payload(first_name="Suresh", family_id="F0001"))

    assert brother.family_id == "F0001"
    assert brother.is_primary is False


def test_spouse_is_created_and_linked_both_ways(db_session):
    husband, wife = _married_couple(db_session)

    assert wife.first_name == "Sita"
    assert wife.last_name == "Patil"
    assert wife.gender == GenderEnum.female
    assert wife.family_id == husband.family_id
    assert wife.dob == husband.dob
    assert wife.spouse_id == husband.id
    assert husband.spouse_full_name == "Sita Patil"
    marriage = db_session.execute(select(Marriage)).scalar_one()
    assert (marriage.husband_id, marriage.wife_id) == (husband.id, wife.id)
    assert marriage.status == MarriageStatusEnum.active


def test_repeat_upsert_reuses_existing_spouse(db_session):
    husband, wife = _married_couple(db_session)

    again = upsert_member(
        db_session,
        _payload(id=husband.id, marital_status="Married", spouse={"first_name": "Sita", "middle_name": "R"}),
    )

    assert _count(db_session, Member) == 2
    assert _count(db_session, Marriage) == 1
    assert again.spouse_id == wife.id
    assert wife.middle_name == "R"
    assert wife.spouse_id == husband.id


def test_spouse_payload_requires_married_status(db_session):
    with pytest.raises(ValidationFailedError) as exc_info:
        upsert_member(db_session, _payload(spouse={"first_name": "Sita"}))
    assert exc_info.value.errors[0]["field"] == "spouse"


def test_children_inherit_family_parents_and_last_name(db_session):
    father = upsert_member(
        db_session,
        _payload(
            marital_status="Married",
            spouse={"first_name": "Sita"},
            children=[
                {"first_name": "Amit", "gender": "Male", "marital_status": "Single", "dob": "1990-05-01"},
                {"first_name": "Asha", "gender": "Female", "marital_status": "Single", "dob": "1992-07-01"},
            ],
        ),
    )

    children = db_session.execute(select(Member).where(Member.father_id == father.id)).scalars().all()
    assert {child.first_name for child in children} == {"Amit", "Asha"}
    for child in children:
        assert child.last_name == "Patil"
        assert child.family_id == father.family_id
        assert child.mother_id == father.spouse_id
        assert child.is_primary is False


def test_duplicate_child_is_conflict(db_session):
    dad = upsert_member(db_session, _payload(children=[{"first_name": "Amit", "gender": "Male", "marital_status": "Single", "dob": "1990-05-01"}]))

    with pytest.raises(ConflictError):
        upsert_member(
            db_session,
            _payload(first_name="amit", last_name="PATIL", father_id=dad.id, dob="1991-01-01"),
        )


def test_self_reference_is_conflict(db_session):
    member = upsert_member(db_session, _payload())

    with pytest.raises(ConflictError):
        upsert_member(db_session, MemberPayload(id=member.id, father_id=member.id))
    with pytest.raises(ConflictError):
        upsert_member(db_session, MemberPayload(id=member.id, marital_status="Married", spouse_id=member.id))


def test_missing_required_fields_are_listed(db_session):
    with pytest.raises(ValidationFailedError) as exc_info:
        upsert_member(db_session, MemberPayload(first_name="Ramesh", last_name="Patil", marital_status="Single"))

    assert [error["field"] for error in exc_info.value.errors] == ["gender", "dob"]


def test_missing_parent_reference_is_validation_error(db_session):
    with pytest.raises(ValidationFailedError):
        upsert_member(db_session, _payload(father_id=999))


def test_update_of_unknown_member_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        upsert_member(db_session, MemberPayload(id=404, first_name="Ghost"))


def test_link_existing_member_as_spouse(db_session):
    groom = upsert_member(db_session, _payload())
    bride = upsert_member(db_session, _payload(first_name="Meera", last_name="Joshi", gender="Female"))

    upsert_member(db_session, MemberPayload(id=groom.id, marital_status="Married", spouse_id=bride.id))

    assert groom.spouse_id == bride.id
    assert bride.spouse_id == groom.id
    assert bride.marital_status == MaritalStatusEnum.married


def test_second_active_marriage_is_conflict(db_session):
    husband, _ = _married_couple(db_session)
    other = upsert_member(db_session, _payload(first_name="Meera", last_name="Joshi", gender="Female"))

    with pytest.raises(ConflictError):
        upsert_member(db_session, MemberPayload(id=other.id, marital_status="Married", spouse_id=husband.id))


def test_divorce_ends_marriage_and_clears_links(db_session):
    husband, wife = _married_couple(db_session)

    upsert_member(db_session, MemberPayload(id=husband.id, marital_status="Divorced"))

    marriage = db_session.execute(select(Marriage)).scalar_one()
    assert marriage.status == MarriageStatusEnum.divorced
    assert marriage.ended_at is not None
    assert husband.spouse_id is None
    assert wife.spouse_id is None
    assert wife.marital_status == MaritalStatusEnum.divorced


def test_death_widows_the_partner(db_session):
    husband, wife = _married_couple(db_session)

    upsert_member(db_session, MemberPayload(id=husband.id, life_status="Deceased"))

    marriage = db_session.execute(select(Marriage)).scalar_one()
    assert marriage.status == MarriageStatusEnum.widowed
    assert wife.marital_status == MaritalStatusEnum.widowed
    assert wife.spouse_id is None
    assert husband.life_status == LifeStatusEnum.deceased


def test_relinking_divorced_pair_reactivates_marriage(db_session):
    husband, wife = _married_couple(db_session)
    upsert_member(db_session, MemberPayload(id=husband.id, marital_status="Divorced"))

    upsert_member(db_session, MemberPayload(id=husband.id, marital_status="Married", spouse_id=wife.id))

    marriage = db_session.execute(select(Marriage)).scalar_one()
    assert marriage.status == MarriageStatusEnum.active
    assert marriage.ended_at is None
    assert husband.spouse_id == wife.id


def test_marrying_root_member_founds_household(db_session):
    loner = upsert_member(db_session, _payload(family_id="Unassigned"))
    assert loner.family_id == "Unassigned"
    assert loner.is_primary is False

    upsert_member(db_session, MemberPayload(id=loner.id, marital_status="Married"))

    assert loner.family_id == "F0001"
    assert loner.is_primary is True


def test_married_member_is_hidden_from_matrimony(db_session):
    member = upsert_member(db_session, _payload(show_on_matrimony=True))
    assert member.show_on_matrimony is True

    upsert_member(db_session, MemberPayload(id=member.id, marital_status="Married"))

    assert member.show_on_matrimony is False


def test_context_overrides_family_and_parents(db_session):
    dad = upsert_member(db_session, _payload())
    context = UpsertContext(family_id=dad.family_id, father_id=dad.id, last_name="Patil")

    child = upsert_member(
        db_session,
        MemberPayload(first_name="Amit", gender="Male", marital_status="Single", dob="1990-05-01", family_id="F0099"),
        context,
    )

    assert child.family_id == dad.family_id
    assert child.father_id == dad.id
    assert child.last_name == "Patil"


def test_update_cannot_clear_required_fields(db_session):
    member = upsert_member(db_session, _payload())

    with pytest.raises(ValidationFailedError) as error:
        upsert_member(db_session, MemberPayload(id=member.id, first_name="  ", dob=None))

    assert [item["field"] for item in error.value.errors] == ["first_name", "dob"]
    assert member.first_name == "Ramesh"


def test_explicit_null_family_keeps_current_family(db_session):
    member = upsert_member(db_session, _payload())

    upsert_member(db_session, MemberPayload(id=member.id, family_id=None, occupation="Farmer"))

    assert member.family_id == "F0001"
    assert member.is_primary is True
    assert member.occupation == "Farmer"


def test_existing_spouse_joining_household_gives_up_primary(db_session):
    groom = upsert_member(db_session, _payload())
    bride = upsert_member(db_session, _payload(first_name="Meera", last_name="Joshi", gender="Female"))
    assert (groom.family_id, bride.family_id) == ("F0001", "F0002")
    assert bride.is_primary is True

    upsert_member(db_session, MemberPayload(id=groom.id, marital_status="Married", spouse={"id": bride.id}))

    assert bride.family_id == "F0001"
    assert bride.is_primary is False
    primaries = db_session.execute(
        select(Member.id).where(Member.family_id == "F0001", Member.is_primary.is_(True))
    ).scalars()
    assert list(primaries) == [groom.id]


def test_member_moving_into_empty_family_becomes_primary(db_session):
    upsert_member(db_session, _payload())
    brother = upsert_member(db_session, _payload(first_name="Suresh", family_id="F0001"))
    assert brother.is_primary is False

    upsert_member(db_session, MemberPayload(id=brother.id, family_id="F0007"))

    assert brother.family_id == "F0007"
    assert brother.is_primary is True
