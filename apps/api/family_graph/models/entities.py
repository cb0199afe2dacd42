from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from family_graph.models.base import Base


class GenderEnum(str, Enum):
    male = "Male"
    female = "Female"


class MaritalStatusEnum(str, Enum):
    single = "Single"
    married = "Married"
    divorced = "Divorced"
    widowed = "Widowed"


class LifeStatusEnum(str, Enum):
    alive = "Alive"
    deceased = "Deceased"


class MarriageStatusEnum(str, Enum):
    active = "Active"
    divorced = "Divorced"
    widowed = "Widowed"


class AccountRoleEnum(str, Enum):
    super_admin = "SuperAdmin"
    admin = "Admin"
    member = "Member"


def _value_enum(enum_cls: type[Enum], name: str) -> SqlEnum:
    return SqlEnum(enum_cls, name=name, values_callable=lambda cls: [item.value for item in cls])


gender_sql_enum = _value_enum(GenderEnum, "genderenum")
marital_status_sql_enum = _value_enum(MaritalStatusEnum, "maritalstatusenum")
life_status_sql_enum = _value_enum(LifeStatusEnum, "lifestatusenum")
marriage_status_sql_enum = _value_enum(MarriageStatusEnum, "marriagestatusenum")
account_role_sql_enum = _value_enum(AccountRoleEnum, "accountroleenum")

# familyId sentinels: "FNew" asks for a new family, "Unassigned" means none yet.
FAMILY_NEW = "FNew"
FAMILY_UNASSIGNED = "Unassigned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Household(Base):
    """Reservation of an allocated family identifier (F0001, ...)."""

    __tablename__ = "households"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    family_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    prefix: Mapped[str | None] = mapped_column(String(64))
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(255))
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    maiden_name: Mapped[str | None] = mapped_column(String(255))
    nickname: Mapped[str | None] = mapped_column(String(255))
    full_name: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    spouse_full_name: Mapped[str | None] = mapped_column(String(1024))

    gender: Mapped[GenderEnum] = mapped_column(gender_sql_enum, nullable=False)
    dob: Mapped[date] = mapped_column(Date, nullable=False)
    marital_status: Mapped[MaritalStatusEnum] = mapped_column(marital_status_sql_enum, nullable=False)
    life_status: Mapped[LifeStatusEnum] = mapped_column(life_status_sql_enum, default=LifeStatusEnum.alive)
    show_on_matrimony: Mapped[bool] = mapped_column(Boolean, default=False)
    blood_group: Mapped[str | None] = mapped_column(String(16))

    occupation: Mapped[str | None] = mapped_column(String(255))
    occupation_type: Mapped[str | None] = mapped_column(String(64))
    education: Mapped[str | None] = mapped_column(String(255))
    height: Mapped[str | None] = mapped_column(String(32))
    phone: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(String(255))

    pincode: Mapped[str | None] = mapped_column(String(16))
    state: Mapped[str | None] = mapped_column(String(255))
    district: Mapped[str | None] = mapped_column(String(255))
    taluka: Mapped[str | None] = mapped_column(String(255))
    village: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)

    photo_url: Mapped[str | None] = mapped_column(String(1024))

    # Legacy direct references. spouse_id is a write-through cache of the active Marriage.
    father_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    mother_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    spouse_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))

    family_id: Mapped[str] = mapped_column(String(32), nullable=False, default=FAMILY_NEW)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Marriage(Base):
    __tablename__ = "marriages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    husband_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    wife_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    # "<low id>:<high id>", unique per unordered pair.
    pair_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[MarriageStatusEnum] = mapped_column(marriage_status_sql_enum, default=MarriageStatusEnum.active)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime)


class UserAccount(Base):
    __tablename__ = "user_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    mobile: Mapped[str | None] = mapped_column(String(32))
    role: Mapped[AccountRoleEnum] = mapped_column(account_role_sql_enum, default=AccountRoleEnum.member)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    permissions: Mapped[str] = mapped_column(Text, default="[]")
    name: Mapped[str | None] = mapped_column(String(1024))
    member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


Index("ix_members_family_primary", Member.family_id, Member.is_primary)
Index("ix_members_father", Member.father_id)
Index("ix_members_mother", Member.mother_id)
Index("ix_members_name", Member.first_name, Member.last_name)
Index("ix_marriages_husband_status", Marriage.husband_id, Marriage.status)
Index("ix_marriages_wife_status", Marriage.wife_id, Marriage.status)
Index("ix_user_accounts_member", UserAccount.member_id)
Index("ix_user_accounts_role_verified", UserAccount.role, UserAccount.is_verified)
