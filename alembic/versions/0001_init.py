"""init
Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("mobile_number", sa.String(length=15), nullable=False),
        sa.Column("otp", sa.String(length=255), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("full_name", sa.String(length=100), nullable=True),
        sa.Column("default_street_address_line_1", sa.String(length=255), nullable=True),
        sa.Column("default_street_address_line_2", sa.String(length=255), nullable=True),
        sa.Column("default_city", sa.String(length=100), nullable=True),
        sa.Column("default_state_province_region", sa.String(length=100), nullable=True),
        sa.Column("default_postal_code", sa.String(length=20), nullable=True),
        sa.Column("default_country", sa.String(length=100), nullable=True),
    )
    op.create_index("ix_users_mobile_number", "users", ["mobile_number"], unique=True)

def downgrade():
    op.drop_index("ix_users_mobile_number", table_name="users")
    op.drop_table("users")
