"""Tests for the dashboard aggregate helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
import sys
from types import SimpleNamespace

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dataflow.models.tables import FINANCIAL_FIELDS
from dataflow.services.portfolio import (
    dashboard_metrics,
    portfolio_performance,
    sector_allocation,
    top_performers,
)


def _company(company_id: int, sector: str, created: datetime, **financials):
    values = {name: None for name in FINANCIAL_FIELDS}
    values.update({key: Decimal(str(value)) for key, value in financials.items()})
    return SimpleNamespace(
        id=company_id,
        name=f"Company {company_id}",
        sector=sector,
        created_at=created,
        **values,
    )


@pytest.fixture
def companies():
    return [
        _company(
            1,
            "Software",
            datetime(2024, 1, 15, tzinfo=timezone.utc),
            revenue=100,
            ebitda=30,
            net_income=20,
            equity=100,
            market_cap=500,
        ),
        _company(
            2,
            "Healthcare",
            datetime(2024, 1, 20, tzinfo=timezone.utc),
            revenue=200,
            ebitda=20,
            net_income=10,
            equity=200,
            market_cap=300,
        ),
        _company(3, "Software", datetime(2024, 3, 2, tzinfo=timezone.utc), market_cap=200),
    ]


def test_empty_portfolio_yields_zeros():
    assert dashboard_metrics([]) == {
        "totalPortfolioValue": 0.0,
        "activeInvestments": 0,
        "averageIRR": 0.0,
        "dataQualityScore": 0.0,
    }
    assert portfolio_performance([]) == {
        "labels": [],
        "datasets": [
            {"label": "Revenue", "data": []},
            {"label": "EBITDA", "data": []},
        ],
    }
    assert sector_allocation([]) == {"labels": [], "data": []}
    assert top_performers([]) == []


def test_dashboard_metrics(companies):
    metrics = dashboard_metrics(companies)

    assert metrics["totalPortfolioValue"] == 1000.0
    assert metrics["activeInvestments"] == 3
    # ROE of 20% and 5%.
    assert metrics["averageIRR"] == 12.5
    # 5 + 5 + 1 populated out of 21 financial fields.
    assert metrics["dataQualityScore"] == round(11 / 21 * 100, 2)


def test_portfolio_performance_is_cumulative_by_month(companies):
    performance = portfolio_performance(companies)

    assert performance["labels"] == ["2024-01", "2024-03"]
    assert performance["datasets"][0] == {"label": "Revenue", "data": [300.0, 300.0]}
    assert performance["datasets"][1] == {"label": "EBITDA", "data": [50.0, 50.0]}


def test_sector_allocation_percentages(companies):
    allocation = sector_allocation(companies)

    assert allocation["labels"] == ["Software", "Healthcare"]
    assert allocation["data"] == [66.67, 33.33]


def test_top_performers_rank_by_ebitda_margin(companies):
    performers = top_performers(companies)

    assert [item["id"] for item in performers] == [1, 2]
    assert performers[0]["performance"] == 30.0
    assert performers[0]["value"] == 500.0


def test_top_performers_respects_limit(companies):
    assert len(top_performers(companies, limit=1)) == 1
    assert top_performers(companies, limit=0) == []
