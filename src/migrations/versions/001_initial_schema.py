"""Initial schema: projects, pools, accounts, distributions, maps and payroll.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(precision=14, scale=2)
PERCENT = sa.Numeric(precision=5, scale=2)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "projects",
        *_base_columns(),
        sa.Column("name", sa.String(length=255), nullable=False, comment="Project name"),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("serial_number", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("expense_counter", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("map_counter", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "employees",
        *_base_columns(),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "map_types",
        *_base_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "project_balances",
        *_base_columns(),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="LYD"),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("held", MONEY, nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_project_balances_project_id", "project_id"),
        sa.Index("idx_project_balance_currency", "project_id", "currency", unique=True),
    )

    op.create_table(
        "project_expenses",
        *_base_columns(),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("expense_type", sa.String(length=50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="LYD"),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("amount_paid", MONEY, nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("serial_number", sa.Integer(), nullable=True),
        sa.Column("payment_counter", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_project_expenses_project_id", "project_id"),
    )

    op.create_table(
        "expense_payments",
        *_base_columns(),
        sa.Column("expense_id", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("payment_method", sa.String(length=10), nullable=False),
        sa.Column("serial_number", sa.String(length=20), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["expense_id"], ["project_expenses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_expense_payments_expense_id", "expense_id"),
    )

    op.create_table(
        "project_percentage",
        *_base_columns(),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="LYD"),
        sa.Column("type", sa.String(length=10), nullable=False, comment="'cash' or 'bank'"),
        sa.Column("percentage", PERCENT, nullable=False, server_default="0", comment="Company fee rate"),
        sa.Column("period_percentage", MONEY, nullable=False, server_default="0"),
        sa.Column("total_percentage", MONEY, nullable=False, server_default="0"),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_project_percentage_project_id", "project_id"),
        sa.Index(
            "idx_pool_project_currency_type", "project_id", "currency", "type", unique=True
        ),
    )

    op.create_table(
        "project_percentage_logs",
        *_base_columns(),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("percentage", PERCENT, nullable=False, server_default="0"),
        sa.Column("distributed", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("expense_id", sa.Integer(), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.ForeignKeyConstraint(["expense_id"], ["project_expenses.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["expense_payments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_project_percentage_logs_project_id", "project_id"),
        sa.Index("idx_percentage_log_project_distributed", "project_id", "distributed"),
    )

    op.create_table(
        "accounts",
        *_base_columns(),
        sa.Column(
            "account_type",
            sa.String(length=20),
            nullable=False,
            server_default="employee",
            comment="'employee' or 'company'",
        ),
        sa.Column(
            "purpose",
            sa.String(length=20),
            nullable=False,
            server_default="main",
            comment="'main', 'discount' or 'held'",
        ),
        sa.Column(
            "employee_id",
            sa.Integer(),
            nullable=True,
            comment="FK to Employee if account_type='employee'",
        ),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="LYD"),
        sa.Column("bank_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("cash_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("bank_held", MONEY, nullable=False, server_default="0"),
        sa.Column("cash_held", MONEY, nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_accounts_employee_id", "employee_id"),
        sa.Index("idx_account_type_purpose", "account_type", "purpose", "currency"),
        sa.Index("idx_account_employee_currency", "employee_id", "currency"),
    )

    op.create_table(
        "distribution_runs",
        *_base_columns(),
        sa.Column("run_key", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False, comment="'percentage' or 'maps'"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
        sa.Column("last_completed_step", sa.String(length=50), nullable=True),
        sa.Column("failed_step", sa.String(length=50), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_key"),
        sa.Index("ix_distribution_runs_project_id", "project_id"),
    )

    op.create_table(
        "distribution_periods",
        *_base_columns(),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("type", sa.String(length=10), nullable=False, comment="'bank' or 'cash'"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="LYD"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.ForeignKeyConstraint(["run_id"], ["distribution_runs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_distribution_periods_project_id", "project_id"),
    )

    op.create_table(
        "period_line_items",
        *_base_columns(),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("participant_type", sa.String(length=20), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=True),
        sa.Column("bank_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("cash_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("bank_held", MONEY, nullable=False, server_default="0"),
        sa.Column("cash_held", MONEY, nullable=False, server_default="0"),
        sa.Column("discount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False),
        sa.Column("percentage", PERCENT, nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["period_id"], ["distribution_periods.id"]),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_period_line_items_period_id", "period_id"),
        sa.Index("idx_line_item_period_employee", "period_id", "employee_id"),
    )

    op.create_table(
        "held_records",
        *_base_columns(),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["distribution_periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_held_records_employee_id", "employee_id"),
    )

    op.create_table(
        "employee_discounts",
        *_base_columns(),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["distribution_periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_employee_discounts_employee_id", "employee_id"),
    )

    op.create_table(
        "company_discounts",
        *_base_columns(),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["period_id"], ["distribution_periods.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "payroll",
        *_base_columns(),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("pay_date", sa.Date(), nullable=False),
        sa.Column("total_salary", MONEY, nullable=False),
        sa.Column("basic_salary", MONEY, nullable=False, server_default="0"),
        sa.Column("percentage_salary", MONEY, nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_payroll_employee_id", "employee_id"),
        sa.Index("idx_payroll_status", "status"),
    )

    op.create_table(
        "maps_distributions",
        *_base_columns(),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("expense_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("payment_method", sa.String(length=10), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="LYD"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.ForeignKeyConstraint(["expense_id"], ["project_expenses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_maps_distributions_project_id", "project_id"),
    )

    op.create_table(
        "maps_distribution_items",
        *_base_columns(),
        sa.Column("distribution_id", sa.Integer(), nullable=False),
        sa.Column("map_type_id", sa.Integer(), nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("quantity", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("total", MONEY, nullable=False),
        sa.ForeignKeyConstraint(["distribution_id"], ["maps_distributions.id"]),
        sa.ForeignKeyConstraint(["map_type_id"], ["map_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_maps_distribution_items_distribution_id", "distribution_id"),
    )

    op.create_table(
        "maps_distribution_details",
        *_base_columns(),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("participant_type", sa.String(length=20), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=True),
        sa.Column("percentage", PERCENT, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.ForeignKeyConstraint(["item_id"], ["maps_distribution_items.id"]),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_maps_distribution_details_item_id", "item_id"),
    )

    op.create_table(
        "audit_logs",
        *_base_columns(),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    for table in (
        "audit_logs",
        "maps_distribution_details",
        "maps_distribution_items",
        "maps_distributions",
        "payroll",
        "company_discounts",
        "employee_discounts",
        "held_records",
        "period_line_items",
        "distribution_periods",
        "distribution_runs",
        "accounts",
        "project_percentage_logs",
        "project_percentage",
        "expense_payments",
        "project_expenses",
        "project_balances",
        "map_types",
        "employees",
        "projects",
    ):
        op.drop_table(table)
