"""ORM models: the canonical declaration of every persisted entity.

Insert, update and select contracts are derived from these classes in
:mod:`dataflow.models.contracts`; column types, nullability, defaults and
foreign keys declared here are therefore the only place those facts live.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from dataflow.models.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


def _owner_column() -> Mapped[int | None]:
    return mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )


class CreatedAtMixin:
    """Creation timestamp shared by the owned tables."""

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class DataSourceType(str, Enum):
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"
    PARQUET = "parquet"
    DATABASE = "database"


class DataSourceStatus(str, Enum):
    """Ingestion lifecycle; ``processing`` is the only non-terminal state."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class QueryStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    SCATTER = "scatter"
    HEATMAP = "heatmap"
    TREEMAP = "treemap"


class CompanyStage(str, Enum):
    SEED = "seed"
    SERIES_A = "series_a"
    SERIES_B = "series_b"
    GROWTH = "growth"
    MATURE = "mature"


class AuthSession(Base):
    """Server-side session payload keyed by the cookie's opaque id."""

    __tablename__ = "sessions"

    sid: Mapped[str] = mapped_column(String(255), primary_key=True)
    sess: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    expire: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )


class User(Base):
    """Account that owns every other entity."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str | None] = mapped_column(
        Text, nullable=True, default="user", server_default="user"
    )
    is_active: Mapped[bool | None] = mapped_column(
        Boolean, nullable=True, default=True, server_default=true()
    )
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )


class Warehouse(Base, CreatedAtMixin):
    """Compute warehouse; its status is driven by an external controller."""

    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default="suspended", server_default="suspended"
    )
    credits_per_hour: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    nodes: Mapped[int] = mapped_column(Integer, nullable=False)
    auto_suspend: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    user_id: Mapped[int | None] = _owner_column()


class DataSource(Base, CreatedAtMixin):
    """Uploaded spreadsheet or registered external source."""

    __tablename__ = "data_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[DataSourceType] = mapped_column(
        _enum_column(DataSourceType, "data_source_type_enum"), nullable=False
    )
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Inferred column schema; the shape is not validated here.
    schema_definition: Mapped[dict[str, Any] | None] = mapped_column(
        "schema", JSON, nullable=True, info={"alias": "schema"}
    )
    row_count: Mapped[int | None] = mapped_column(
        Integer, nullable=True, default=0, server_default="0"
    )
    status: Mapped[DataSourceStatus] = mapped_column(
        _enum_column(DataSourceStatus, "data_source_status_enum"),
        nullable=False,
        default=DataSourceStatus.PROCESSING,
        server_default=DataSourceStatus.PROCESSING.value,
    )
    user_id: Mapped[int | None] = _owner_column()


class QueryHistory(Base):
    """One executed (or executing) warehouse query."""

    __tablename__ = "query_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sql_query: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[QueryStatus] = mapped_column(
        _enum_column(QueryStatus, "query_status_enum"), nullable=False
    )
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rows_returned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    credits_used: Mapped[Decimal | None] = mapped_column(Numeric(10, 6), nullable=True)
    warehouse_id: Mapped[int | None] = mapped_column(
        ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int | None] = _owner_column()
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Chart(Base, CreatedAtMixin):
    __tablename__ = "charts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[ChartType] = mapped_column(
        _enum_column(ChartType, "chart_type_enum"), nullable=False
    )
    configuration: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    data_source_id: Mapped[int | None] = mapped_column(
        ForeignKey("data_sources.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int | None] = _owner_column()


class Dashboard(Base, CreatedAtMixin):
    __tablename__ = "dashboards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    layout: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    user_id: Mapped[int | None] = _owner_column()


class AIConversation(Base, CreatedAtMixin):
    """Conversation with the assistant; ``messages`` only ever grows."""

    __tablename__ = "ai_conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    messages: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    user_id: Mapped[int | None] = _owner_column()


class Company(Base, CreatedAtMixin):
    """Portfolio company with optional, independently reported financials."""

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sector: Mapped[str] = mapped_column(Text, nullable=False)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    founded_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    employees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revenue: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    ebitda: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    net_income: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    total_assets: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    total_debt: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    equity: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    market_cap: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    stage: Mapped[CompanyStage | None] = mapped_column(
        _enum_column(CompanyStage, "company_stage_enum"), nullable=True
    )
    user_id: Mapped[int | None] = _owner_column()


FINANCIAL_FIELDS = (
    "revenue",
    "ebitda",
    "net_income",
    "total_assets",
    "total_debt",
    "equity",
    "market_cap",
)


__all__ = [
    "AIConversation",
    "Chart",
    "ChartType",
    "Company",
    "CompanyStage",
    "Dashboard",
    "DataSource",
    "DataSourceStatus",
    "DataSourceType",
    "FINANCIAL_FIELDS",
    "QueryHistory",
    "QueryStatus",
    "AuthSession",
    "User",
    "Warehouse",
    "utcnow",
]
