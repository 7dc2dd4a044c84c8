"""Create the DataFlow schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

_DATA_SOURCE_TYPES = ("csv", "excel", "json", "parquet", "database")
_DATA_SOURCE_STATUSES = ("processing", "ready", "error")
_QUERY_STATUSES = ("running", "completed", "error")
_CHART_TYPES = ("bar", "line", "pie", "scatter", "heatmap", "treemap")
_COMPANY_STAGES = ("seed", "series_a", "series_b", "growth", "mature")


def _owner() -> sa.Column:
    return sa.Column(
        "user_id",
        sa.Integer(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)


def upgrade() -> None:
    op.create_table(
        "sessions",
        sa.Column("sid", sa.String(length=255), primary_key=True),
        sa.Column("sess", sa.JSON(), nullable=False),
        sa.Column("expire", sa.DateTime(timezone=True), nullable=False, index=True),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=True, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        _created_at(),
        _created_at("updated_at"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("size", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="suspended"),
        sa.Column("credits_per_hour", sa.Numeric(10, 3), nullable=False),
        sa.Column("nodes", sa.Integer(), nullable=False),
        sa.Column("auto_suspend", sa.Boolean(), nullable=False, server_default=sa.true()),
        _owner(),
        _created_at(),
    )

    op.create_table(
        "data_sources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.Enum(*_DATA_SOURCE_TYPES, name="data_source_type_enum"), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("schema", sa.JSON(), nullable=True),
        sa.Column("row_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column(
            "status",
            sa.Enum(*_DATA_SOURCE_STATUSES, name="data_source_status_enum"),
            nullable=False,
            server_default="processing",
        ),
        _owner(),
        _created_at(),
    )

    op.create_table(
        "query_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sql_query", sa.Text(), nullable=False),
        sa.Column("status", sa.Enum(*_QUERY_STATUSES, name="query_status_enum"), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("rows_returned", sa.Integer(), nullable=True),
        sa.Column("credits_used", sa.Numeric(10, 6), nullable=True),
        sa.Column(
            "warehouse_id",
            sa.Integer(),
            sa.ForeignKey("warehouses.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _owner(),
        _created_at("executed_at"),
    )

    op.create_table(
        "charts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.Enum(*_CHART_TYPES, name="chart_type_enum"), nullable=False),
        sa.Column("configuration", sa.JSON(), nullable=False),
        sa.Column(
            "data_source_id",
            sa.Integer(),
            sa.ForeignKey("data_sources.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _owner(),
        _created_at(),
    )

    op.create_table(
        "dashboards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("layout", sa.JSON(), nullable=False),
        _owner(),
        _created_at(),
    )

    op.create_table(
        "ai_conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("messages", sa.JSON(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=True),
        _owner(),
        _created_at(),
    )

    financial = [
        sa.Column(name, sa.Numeric(15, 2), nullable=True)
        for name in (
            "revenue",
            "ebitda",
            "net_income",
            "total_assets",
            "total_debt",
            "equity",
            "market_cap",
        )
    ]
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("sector", sa.Text(), nullable=False),
        sa.Column("region", sa.Text(), nullable=False),
        sa.Column("founded_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("employees", sa.Integer(), nullable=True),
        *financial,
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stage", sa.Enum(*_COMPANY_STAGES, name="company_stage_enum"), nullable=True),
        _owner(),
        _created_at(),
    )


def downgrade() -> None:
    for table in (
        "companies",
        "ai_conversations",
        "dashboards",
        "charts",
        "query_history",
        "data_sources",
        "warehouses",
        "users",
        "sessions",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        "company_stage_enum",
        "chart_type_enum",
        "query_status_enum",
        "data_source_status_enum",
        "data_source_type_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
