"""Generic owner-scoped REST endpoints for contract-driven entities."""

from __future__ import annotations

from flask import Blueprint, jsonify

from dataflow.api.common import json_body, login_required, require_user_id
from dataflow.errors import RecordNotFound
from dataflow.models.contracts import CONTRACTS, contract_json_schema, serialize
from dataflow.models.db import session_scope
from dataflow.services.records import OwnedRecords

contracts_bp = Blueprint("contracts", __name__, url_prefix="/api/contracts")

# Entities served without any extra endpoints.
PLAIN_RESOURCES = ("warehouses", "charts", "dashboards", "companies")


def build_resource_blueprint(
    resource: str,
    records: OwnedRecords | None = None,
    *,
    url_prefix: str | None = None,
) -> Blueprint:
    """Return a blueprint exposing list/create/get/update/delete for ``resource``."""

    records = records or OwnedRecords(CONTRACTS[resource])
    record_contract = records.contracts.record
    bp = Blueprint(
        resource.replace("-", "_"),
        __name__,
        url_prefix=url_prefix or f"/api/{resource}",
    )

    @bp.get("")
    @login_required
    def list_records():
        with session_scope() as db_session:
            rows = records.list_owned(db_session, require_user_id())
            payload = [serialize(record_contract, row) for row in rows]
        return jsonify(payload)

    @bp.post("")
    @login_required
    def create_record():
        payload = json_body()
        with session_scope() as db_session:
            row = records.create(db_session, require_user_id(), payload)
            body = serialize(record_contract, row)
        return jsonify(body), 201

    @bp.get("/<int:record_id>")
    @login_required
    def get_record(record_id: int):
        with session_scope() as db_session:
            row = records.get(db_session, require_user_id(), record_id)
            body = serialize(record_contract, row)
        return jsonify(body)

    @bp.patch("/<int:record_id>")
    @login_required
    def update_record(record_id: int):
        payload = json_body()
        with session_scope() as db_session:
            row = records.update(db_session, require_user_id(), record_id, payload)
            body = serialize(record_contract, row)
        return jsonify(body)

    @bp.delete("/<int:record_id>")
    @login_required
    def delete_record(record_id: int):
        with session_scope() as db_session:
            records.delete(db_session, require_user_id(), record_id)
        return jsonify({"message": f"{records.label} {record_id} deleted"})

    return bp


@contracts_bp.get("/<entity>")
def describe_contract(entity: str):
    """JSON Schemas of an entity's insert, update and select contracts."""

    try:
        schemas = contract_json_schema(entity)
    except KeyError:
        raise RecordNotFound(f"Unknown entity '{entity}'") from None
    return jsonify(schemas)


def plain_resource_blueprints() -> list[Blueprint]:
    return [build_resource_blueprint(resource) for resource in PLAIN_RESOURCES]


__all__ = [
    "PLAIN_RESOURCES",
    "build_resource_blueprint",
    "contracts_bp",
    "plain_resource_blueprints",
]
