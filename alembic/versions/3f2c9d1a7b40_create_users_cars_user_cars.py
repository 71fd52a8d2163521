"""create users, cars and user_cars

Revision ID: 3f2c9d1a7b40
Revises:
Create Date: 2025-11-24 11:00:50.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql as pg

# revision identifiers, used by Alembic.
revision = "3f2c9d1a7b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cars",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("license_plate", sa.String(length=20), nullable=False),
        sa.Column("pin_code", sa.Text(), nullable=False),
        sa.Column("brand", sa.String(length=50), nullable=True),
        sa.Column("model", sa.String(length=50), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(length=30), nullable=True),
        sa.Column("vin", sa.String(length=17), nullable=True),
        sa.Column("car_image", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()")),
    )
    op.create_unique_constraint("uq_cars_license_plate", "cars", ["license_plate"])
    op.create_unique_constraint("uq_cars_vin", "cars", ["vin"])

    op.create_table(
        "users",
        sa.Column("id", pg.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column(
            "last_used_car_id",
            pg.UUID(as_uuid=True),
            sa.ForeignKey("cars.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()")),
    )
    op.create_unique_constraint("uq_users_email", "users", ["email"])

    op.create_table(
        "user_cars",
        sa.Column(
            "user_id",
            pg.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "car_id",
            pg.UUID(as_uuid=True),
            sa.ForeignKey("cars.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_user_cars_user_primary", "user_cars", ["user_id", "is_primary"])
    op.execute(
        "CREATE UNIQUE INDEX ux_user_cars_primary_per_user "
        "ON user_cars(user_id) WHERE is_primary = true"
    )


def downgrade() -> None:
    op.drop_index("ux_user_cars_primary_per_user", table_name="user_cars")
    op.drop_index("ix_user_cars_user_primary", table_name="user_cars")
    op.drop_table("user_cars")
    op.drop_constraint("uq_users_email", "users", type_="unique")
    op.drop_table("users")
    op.drop_constraint("uq_cars_vin", "cars", type_="unique")
    op.drop_constraint("uq_cars_license_plate", "cars", type_="unique")
    op.drop_table("cars")
