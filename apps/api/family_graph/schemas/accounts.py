from pydantic import BaseModel, Field


class AccountSummary(BaseModel):
    username: str
    role: str
    permissions: list[str]
    is_verified: bool


class AccountResponse(BaseModel):
    id: int
    username: str
    email: str | None
    mobile: str | None
    role: str
    is_verified: bool
    is_active: bool
    permissions: list[str]
    name: str | None
    member_id: int | None


class AccountListResponse(BaseModel):
    items: list[AccountResponse]


class AccountApprove(BaseModel):
    role: str = Field(default="Member", pattern="^(SuperAdmin|Admin|Member)$")
    permissions: list[str] = Field(default_factory=list)
    member_id: int | None = None


class PermissionsUpdate(BaseModel):
    permissions: list[str]


class PermissionsResponse(BaseModel):
    member_id: str
    permissions: list[str]
