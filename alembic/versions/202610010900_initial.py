"""initial ledger schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "expenses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("year_month", sa.String(length=7), nullable=False),
        sa.Column("payer", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("memo", sa.Text(), nullable=False, server_default=""),
        sa.Column("place", sa.String(length=100), nullable=False, server_default=""),
        sa.Column(
            "visibility", sa.String(length=10), nullable=False, server_default=""
        ),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index(
        "ix_expenses_year_month_date", "expenses", ["year_month", "date"]
    )
    op.create_index("ix_expenses_payer", "expenses", ["payer"])

    op.create_table(
        "categories",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("color", sa.String(length=9), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_expense", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "exclude_from_breakdown",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "exclude_from_summary",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("owner", sa.String(length=255), nullable=False, server_default=""),
    )
    op.create_index("ix_categories_owner", "categories", ["owner"])

    op.create_table(
        "payers",
        sa.Column("id", sa.String(length=100), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "track_balance", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
    )

    op.create_table(
        "places",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "users",
        sa.Column("email", sa.String(length=255), primary_key=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "recurring_expenses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("category", sa.String(length=36), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("payer", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("place", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("memo", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "frequency",
            sa.Enum("monthly", "bimonthly", "yearly", name="frequency"),
            nullable=False,
        ),
        sa.Column("day_of_month", sa.Integer(), nullable=False),
        sa.Column("repeat_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_month", sa.String(length=7), nullable=False, server_default=""),
        sa.Column("end_month", sa.String(length=7), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_created_month", sa.String(length=7)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        sa.CheckConstraint(
            "day_of_month BETWEEN 1 AND 31", name="ck_recurring_day_of_month"
        ),
    )

    op.create_table(
        "monthly_summary_cache",
        sa.Column("month", sa.String(length=7), primary_key=True),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("by_category_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("refreshed_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("monthly_summary_cache")
    op.drop_table("recurring_expenses")
    op.drop_table("users")
    op.drop_table("places")
    op.drop_table("payers")
    op.drop_index("ix_categories_owner", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_expenses_payer", table_name="expenses")
    op.drop_index("ix_expenses_year_month_date", table_name="expenses")
    op.drop_table("expenses")
