import itertools
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from family_graph.core.config import settings
from family_graph.core.db import StoreConfig, build_engine, get_db
from family_graph.main import app
from family_graph.models.base import Base
from family_graph.models import entities  # noqa: F401
from family_graph.models.entities import GenderEnum, MaritalStatusEnum, Marriage, MarriageStatusEnum, Member
from family_graph.services.marriages import pair_key
from family_graph.services.members import refresh_full_name
from family_graph.services.stats import invalidate_dashboard_stats

settings.bcrypt_rounds = 4

engine = build_engine(StoreConfig(url="sqlite://"))
# Sessions share one in-memory connection; keep loaded state after commit so a
# test reading seeded rows never opens a transaction underneath a request.
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    invalidate_dashboard_stats()
    yield


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def forward_auth(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "forwardauth")


@pytest.fixture
def add_member(db_session):
    """Insert a member row directly, bypassing the upsert rules."""
    numbers = itertools.count(1)

    def _add(
        first_name: str,
        family_id: str = "Unassigned",
        gender: GenderEnum = GenderEnum.male,
        marital_status: MaritalStatusEnum = MaritalStatusEnum.single,
        **fields,
    ) -> Member:
        member = Member(
            member_id=fields.pop("member_id", f"M{next(numbers):04d}"),
            first_name=first_name,
            last_name=fields.pop("last_name", "Patil"),
            gender=gender,
            marital_status=marital_status,
            dob=fields.pop("dob", date(1980, 1, 1)),
            family_id=family_id,
            **fields,
        )
        refresh_full_name(member)
        db_session.add(member)
        db_session.flush()
        return member

    return _add


@pytest.fixture
def add_marriage(db_session):
    def _add(husband: Member, wife: Member, status: MarriageStatusEnum = MarriageStatusEnum.active) -> Marriage:
        marriage = Marriage(
            husband_id=husband.id,
            wife_id=wife.id,
            pair_key=pair_key(husband.id, wife.id),
            status=status,
        )
        db_session.add(marriage)
        db_session.flush()
        return marriage

    return _add
