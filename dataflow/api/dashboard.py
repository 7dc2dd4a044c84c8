"""Portfolio aggregates shown on the dashboard."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from dataflow.api.common import login_required, require_user_id
from dataflow.models.db import session_scope
from dataflow.services import portfolio

bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _companies():
    with session_scope() as db_session:
        return portfolio.user_companies(db_session, require_user_id())


@bp.get("/metrics")
@login_required
def metrics():
    return jsonify(portfolio.dashboard_metrics(_companies()))


@bp.get("/portfolio-performance")
@login_required
def performance():
    return jsonify(portfolio.portfolio_performance(_companies()))


@bp.get("/sector-allocation")
@login_required
def sector_allocation():
    return jsonify(portfolio.sector_allocation(_companies()))


@bp.get("/top-performers")
@login_required
def top_performers():
    limit = request.args.get("limit", default=portfolio.DEFAULT_TOP_PERFORMERS, type=int)
    return jsonify(portfolio.top_performers(_companies(), limit=limit))
