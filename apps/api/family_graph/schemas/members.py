from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from family_graph.models.entities import GenderEnum, LifeStatusEnum, MaritalStatusEnum
from family_graph.schemas.accounts import AccountResponse, AccountSummary

_WHITESPACE = re.compile(r"\s+")

# Nested (personal_info / geography) paths accepted from older clients -> flat field.
_LEGACY_NESTED_PATHS: dict[tuple[str, ...], str] = {
    ("personal_info", "names", "first_name"): "first_name",
    ("personal_info", "names", "middle_name"): "middle_name",
    ("personal_info", "names", "last_name"): "last_name",
    ("personal_info", "names", "prefix"): "prefix",
    ("personal_info", "names", "maiden_name"): "maiden_name",
    ("personal_info", "names", "nickname"): "nickname",
    ("personal_info", "dob"): "dob",
    ("personal_info", "gender"): "gender",
    ("personal_info", "life_status"): "life_status",
    ("personal_info", "showOnMatrimony"): "show_on_matrimony",
    ("personal_info", "blood_group"): "blood_group",
    ("personal_info", "biodata", "education"): "education",
    ("personal_info", "biodata", "height"): "height",
    ("personal_info", "biodata", "occupation"): "occupation",
    ("personal_info", "biodata", "contact", "mobile"): "phone",
    ("personal_info", "biodata", "contact", "email"): "email",
    ("geography", "pincode"): "pincode",
    ("geography", "state"): "state",
    ("geography", "district"): "district",
    ("geography", "taluka"): "taluka",
    ("geography", "village"): "village",
    ("geography", "full_address"): "address",
}

_FLAT_ALIASES = {"mobile": "phone", "city": "taluka"}

_LEGACY_SPOUSE_FIELDS = {
    "spouse_name": "first_name",
    "spouse_middle_name": "middle_name",
    "spouse_last_name": "last_name",
    "spouse_prefix": "prefix",
    "spouse_gender": "gender",
    "spouse_dob": "dob",
    "spouse_photo_url": "photo_url",
}


def _dig(data: dict[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _flatten_legacy_shape(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    flat = dict(data)
    for alias, field in _FLAT_ALIASES.items():
        if alias in flat:
            value = flat.pop(alias)
            flat.setdefault(field, value)
    for path, field in _LEGACY_NESTED_PATHS.items():
        value = _dig(data, path)
        if value is not None:
            flat.setdefault(field, value)
    flat.pop("personal_info", None)
    flat.pop("geography", None)
    return flat


class MemberFields(BaseModel):
    """Writable member fields shared by members, spouses and children.

    Derived values (full names, spouse links) are not accepted from clients.
    """

    prefix: str | None = Field(default=None, max_length=64)
    first_name: str | None = Field(default=None, max_length=255)
    middle_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    maiden_name: str | None = Field(default=None, max_length=255)
    nickname: str | None = Field(default=None, max_length=255)

    gender: GenderEnum | None = None
    dob: date | None = None
    marital_status: MaritalStatusEnum | None = None
    life_status: LifeStatusEnum | None = None
    show_on_matrimony: bool | None = None
    blood_group: str | None = Field(default=None, max_length=16)

    occupation: str | None = Field(default=None, max_length=255)
    occupation_type: str | None = Field(default=None, max_length=64)
    education: str | None = Field(default=None, max_length=255)
    height: str | None = Field(default=None, max_length=32)
    phone: str | None = Field(default=None, max_length=32)
    email: EmailStr | None = None

    pincode: str | None = Field(default=None, max_length=16)
    state: str | None = Field(default=None, max_length=255)
    district: str | None = Field(default=None, max_length=255)
    taluka: str | None = Field(default=None, max_length=255)
    village: str | None = Field(default=None, max_length=255)
    address: str | None = None
    photo_url: str | None = Field(default=None, max_length=1024)

    father_id: int | None = None
    mother_id: int | None = None
    family_id: str | None = Field(default=None, max_length=32)
    is_primary: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_shape(cls, data: Any) -> Any:
        return _flatten_legacy_shape(data)

    @field_validator("*", mode="before")
    @classmethod
    def _clean_strings(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = _WHITESPACE.sub(" ", value).strip()
            return value or None
        return value


class SpousePayload(MemberFields):
    id: int | None = None


class MemberPayload(MemberFields):
    id: int | None = None
    # Links an existing member as spouse; goes through the marriage path.
    spouse_id: int | None = None
    spouse: SpousePayload | None = None
    children: list[MemberPayload] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _bundle_flat_spouse(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not data.get("spouse_name"):
            return data
        bundled = dict(data)
        spouse = {target: bundled.pop(source) for source, target in _LEGACY_SPOUSE_FIELDS.items() if source in bundled}
        if bundled.get("spouse") is None:
            bundled["spouse"] = spouse
        return bundled


class MatrimonyStatusUpdate(BaseModel):
    show_on_matrimony: bool


class MemberResponse(BaseModel):
    id: int
    member_id: str
    prefix: str | None
    first_name: str
    middle_name: str | None
    last_name: str
    maiden_name: str | None = None
    nickname: str | None = None
    full_name: str
    spouse_full_name: str | None
    gender: GenderEnum
    dob: date
    marital_status: MaritalStatusEnum
    life_status: LifeStatusEnum
    show_on_matrimony: bool
    blood_group: str | None = None
    occupation: str | None
    occupation_type: str | None = None
    education: str | None
    height: str | None
    phone: str | None
    email: str | None
    pincode: str | None = None
    state: str | None
    district: str | None
    taluka: str | None
    village: str | None
    address: str | None
    photo_url: str | None
    father_id: int | None
    mother_id: int | None
    spouse_id: int | None
    family_id: str
    is_primary: bool
    is_registered: bool = False
    created_at: datetime
    updated_at: datetime


class ProvisioningReportResponse(BaseModel):
    account_username: str | None = None
    account_verified: bool = False
    linked_caller: bool = False
    errors: list[str] = Field(default_factory=list)


class MemberCreateResponse(MemberResponse):
    provisioning: ProvisioningReportResponse | None = None


class MemberListResponse(BaseModel):
    items: list[MemberResponse]
    page: int
    total: int
    pages: int


class MemberSearchResponse(BaseModel):
    items: list[MemberResponse]


class SiblingsResponse(BaseModel):
    target_id: int
    member_id: str
    items: list[MemberResponse]


class FamilyViewResponse(BaseModel):
    target_id: int
    member_id: str
    family_id: str
    items: list[MemberResponse]


class MyFamilyEntry(BaseModel):
    member: MemberResponse
    account: AccountSummary | None = None


class MyFamilyResponse(BaseModel):
    family_id: str
    is_primary: bool
    members: list[MyFamilyEntry]


class CreateFamilyResponse(BaseModel):
    family_id: str
    member_id: int
    moved_children: int


class StatusCount(BaseModel):
    status: str
    count: int


class DashboardCounts(BaseModel):
    total: int
    male: int
    female: int
    married: int
    single_male: int
    single_female: int
    primary: int
    families: int


class DashboardStatsResponse(BaseModel):
    counts: DashboardCounts
    marital: list[StatusCount]
    recent_members: list[MemberResponse]


class MeResponse(BaseModel):
    account: AccountResponse
    member: MemberResponse | None = None
