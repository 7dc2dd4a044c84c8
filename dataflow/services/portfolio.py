"""Pure helpers that turn a user's companies into dashboard aggregates."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, TypedDict

from sqlalchemy import select
from sqlalchemy.orm import Session

from dataflow.models.tables import FINANCIAL_FIELDS, Company

DEFAULT_TOP_PERFORMERS = 3


class DashboardMetrics(TypedDict):
    totalPortfolioValue: float
    activeInvestments: int
    averageIRR: float
    dataQualityScore: float


def _number(value: Decimal | float | int | None) -> float:
    return float(value) if value is not None else 0.0


def user_companies(session: Session, user_id: int) -> list[Company]:
    stmt = (
        select(Company)
        .where(Company.user_id == user_id)
        .order_by(Company.created_at, Company.id)
    )
    return list(session.execute(stmt).scalars())


def dashboard_metrics(companies: Sequence[Any]) -> DashboardMetrics:
    """Headline numbers; an empty portfolio yields zeros everywhere.

    ``averageIRR`` is the mean return on equity (net income / equity, in
    percent) over companies reporting both figures with non-zero equity.
    ``dataQualityScore`` is the share of populated financial fields.
    """

    if not companies:
        return {
            "totalPortfolioValue": 0.0,
            "activeInvestments": 0,
            "averageIRR": 0.0,
            "dataQualityScore": 0.0,
        }

    total_value = sum((_number(company.market_cap) for company in companies), 0.0)

    returns = [
        _number(company.net_income) / _number(company.equity) * 100
        for company in companies
        if company.net_income is not None and company.equity not in (None, 0)
    ]
    average_return = sum(returns) / len(returns) if returns else 0.0

    populated = sum(
        1
        for company in companies
        for name in FINANCIAL_FIELDS
        if getattr(company, name) is not None
    )
    quality = populated / (len(companies) * len(FINANCIAL_FIELDS)) * 100

    return {
        "totalPortfolioValue": round(total_value, 2),
        "activeInvestments": len(companies),
        "averageIRR": round(average_return, 2),
        "dataQualityScore": round(quality, 2),
    }


def _month(value: datetime | None) -> str:
    return value.strftime("%Y-%m") if value is not None else "unknown"


def portfolio_performance(companies: Sequence[Any]) -> dict[str, Any]:
    """Cumulative revenue and EBITDA by the month companies were added."""

    monthly: "OrderedDict[str, list[float]]" = OrderedDict()
    for company in sorted(
        companies, key=lambda item: (item.created_at is None, item.created_at or datetime.min)
    ):
        totals = monthly.setdefault(_month(company.created_at), [0.0, 0.0])
        totals[0] += _number(company.revenue)
        totals[1] += _number(company.ebitda)

    revenue: list[float] = []
    ebitda: list[float] = []
    running_revenue = running_ebitda = 0.0
    for month_revenue, month_ebitda in monthly.values():
        running_revenue += month_revenue
        running_ebitda += month_ebitda
        revenue.append(round(running_revenue, 2))
        ebitda.append(round(running_ebitda, 2))

    return {
        "labels": list(monthly),
        "datasets": [
            {"label": "Revenue", "data": revenue},
            {"label": "EBITDA", "data": ebitda},
        ],
    }


def sector_allocation(companies: Sequence[Any]) -> dict[str, Any]:
    """Share of companies per sector, in percent, in first-seen order."""

    counts: dict[str, int] = {}
    for company in companies:
        counts[company.sector] = counts.get(company.sector, 0) + 1
    total = len(companies)
    return {
        "labels": list(counts),
        "data": [round(count / total * 100, 2) for count in counts.values()],
    }


def ebitda_margin(company: Any) -> float | None:
    if company.ebitda is None or company.revenue in (None, 0):
        return None
    return _number(company.ebitda) / _number(company.revenue) * 100


def top_performers(
    companies: Sequence[Any], limit: int = DEFAULT_TOP_PERFORMERS
) -> list[dict[str, Any]]:
    """Companies ranked by EBITDA margin; those without a margin are skipped."""

    ranked = []
    for company in companies:
        margin = ebitda_margin(company)
        if margin is None:
            continue
        ranked.append(
            {
                "id": company.id,
                "name": company.name,
                "sector": company.sector,
                "performance": round(margin, 2),
                "value": _number(company.market_cap),
            }
        )
    ranked.sort(key=lambda item: (-item["performance"], item["id"]))
    return ranked[: max(limit, 0)]


__all__ = [
    "DEFAULT_TOP_PERFORMERS",
    "DashboardMetrics",
    "dashboard_metrics",
    "ebitda_margin",
    "portfolio_performance",
    "sector_allocation",
    "top_performers",
    "user_companies",
]
