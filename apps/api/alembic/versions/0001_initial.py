"""initial family graph schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


gender_enum = postgresql.ENUM("Male", "Female", name="genderenum", create_type=False)
marital_status_enum = postgresql.ENUM(
    "Single", "Married", "Divorced", "Widowed", name="maritalstatusenum", create_type=False
)
life_status_enum = postgresql.ENUM("Alive", "Deceased", name="lifestatusenum", create_type=False)
marriage_status_enum = postgresql.ENUM(
    "Active", "Divorced", "Widowed", name="marriagestatusenum", create_type=False
)
account_role_enum = postgresql.ENUM("SuperAdmin", "Admin", "Member", name="accountroleenum", create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (gender_enum, marital_status_enum, life_status_enum, marriage_status_enum, account_role_enum):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "households",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("family_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("prefix", sa.String(length=64), nullable=True),
        sa.Column("first_name", sa.String(length=255), nullable=False),
        sa.Column("middle_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=False),
        sa.Column("maiden_name", sa.String(length=255), nullable=True),
        sa.Column("nickname", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=1024), nullable=False, server_default=""),
        sa.Column("spouse_full_name", sa.String(length=1024), nullable=True),
        sa.Column("gender", gender_enum, nullable=False),
        sa.Column("dob", sa.Date(), nullable=False),
        sa.Column("marital_status", marital_status_enum, nullable=False),
        sa.Column("life_status", life_status_enum, nullable=True, server_default="Alive"),
        sa.Column("show_on_matrimony", sa.Boolean(), nullable=True, server_default=sa.text("false")),
        sa.Column("blood_group", sa.String(length=16), nullable=True),
        sa.Column("occupation", sa.String(length=255), nullable=True),
        sa.Column("occupation_type", sa.String(length=64), nullable=True),
        sa.Column("education", sa.String(length=255), nullable=True),
        sa.Column("height", sa.String(length=32), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("pincode", sa.String(length=16), nullable=True),
        sa.Column("state", sa.String(length=255), nullable=True),
        sa.Column("district", sa.String(length=255), nullable=True),
        sa.Column("taluka", sa.String(length=255), nullable=True),
        sa.Column("village", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.String(length=1024), nullable=True),
        sa.Column("father_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("mother_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("spouse_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("family_id", sa.String(length=32), nullable=False, server_default="FNew"),
        sa.Column("is_primary", sa.Boolean(), nullable=True, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_members_family_primary", "members", ["family_id", "is_primary"], unique=False)
    op.create_index("ix_members_father", "members", ["father_id"], unique=False)
    op.create_index("ix_members_mother", "members", ["mother_id"], unique=False)
    op.create_index("ix_members_name", "members", ["first_name", "last_name"], unique=False)

    op.create_table(
        "marriages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("husband_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("wife_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("pair_key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("status", marriage_status_enum, nullable=True, server_default="Active"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_marriages_husband_status", "marriages", ["husband_id", "status"], unique=False)
    op.create_index("ix_marriages_wife_status", "marriages", ["wife_id", "status"], unique=False)

    op.create_table(
        "user_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("mobile", sa.String(length=32), nullable=True),
        sa.Column("role", account_role_enum, nullable=True, server_default="Member"),
        sa.Column("is_verified", sa.Boolean(), nullable=True, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("true")),
        sa.Column("permissions", sa.Text(), nullable=True, server_default="[]"),
        sa.Column("name", sa.String(length=1024), nullable=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_user_accounts_member", "user_accounts", ["member_id"], unique=False)
    op.create_index("ix_user_accounts_role_verified", "user_accounts", ["role", "is_verified"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_user_accounts_role_verified", table_name="user_accounts")
    op.drop_index("ix_user_accounts_member", table_name="user_accounts")
    op.drop_table("user_accounts")
    op.drop_index("ix_marriages_wife_status", table_name="marriages")
    op.drop_index("ix_marriages_husband_status", table_name="marriages")
    op.drop_table("marriages")
    op.drop_index("ix_members_name", table_name="members")
    op.drop_index("ix_members_mother", table_name="members")
    op.drop_index("ix_members_father", table_name="members")
    op.drop_index("ix_members_family_primary", table_name="members")
    op.drop_table("members")
    op.drop_table("households")

    bind = op.get_bind()
    for enum_type in (account_role_enum, marriage_status_enum, life_status_enum, marital_status_enum, gender_enum):
        enum_type.drop(bind, checkfirst=True)
