from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dataflow.errors import ContractViolation
from dataflow.models.contracts import (
    CONTRACTS,
    ChartInsert,
    CompanyInsert,
    DataSourceInsert,
    DataSourceRecord,
    PublicUser,
    UserInsert,
    WarehouseInsert,
    WarehouseUpdate,
    contract_json_schema,
    insert_contract,
    serialize,
    validate_payload,
    wire_name,
)
from dataflow.models.descriptors import (
    FieldSpec,
    SemanticType,
    declare_entity,
    describe_model,
)
from dataflow.models.tables import DataSource, DataSourceStatus, DataSourceType, Warehouse


def _warehouse_payload(**overrides):
    payload = {"name": "Analytics", "size": "M", "creditsPerHour": "2.5", "nodes": 4}
    payload.update(overrides)
    return payload


def _reasons(exc: ContractViolation) -> dict[str, str]:
    return {error.field: error.reason for error in exc.errors}


def test_describe_model_reports_required_fields():
    descriptor = describe_model(Warehouse)

    assert descriptor.required_fields == ("name", "size", "credits_per_hour", "nodes")
    assert descriptor["id"].generated is True
    assert descriptor["status"].default == "suspended"
    assert descriptor.foreign_keys == {"user_id": "users.id"}


def test_describe_model_is_cached():
    assert describe_model(Warehouse) is describe_model(Warehouse)


def test_declare_entity_rejects_enum_without_choices():
    with pytest.raises(ValueError, match="without choices"):
        declare_entity("Broken", {"kind": FieldSpec(type=SemanticType.ENUM)})


def test_declare_entity_rejects_empty_field_set():
    with pytest.raises(ValueError):
        declare_entity("Empty", {})


def test_insert_contract_rejects_unknown_omit_names():
    with pytest.raises(ValueError, match="Unknown field"):
        insert_contract(Warehouse, omit=("nope",))


def test_insert_contract_rejects_omit_and_pick_together():
    with pytest.raises(ValueError):
        insert_contract(Warehouse, omit=("id",), pick=("name",))


def test_missing_required_fields_are_reported():
    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(WarehouseInsert, {})

    reasons = _reasons(excinfo.value)
    assert {"name", "size", "nodes"} <= set(reasons)
    assert set(reasons.values()) == {"missing"}
    assert len(reasons) == 4


def test_defaults_and_nullables_may_be_omitted():
    contract = validate_payload(WarehouseInsert, _warehouse_payload())

    values = contract.to_values()
    assert values["credits_per_hour"] == Decimal("2.5")
    assert "status" not in values
    assert "auto_suspend" not in values


def test_snake_case_keys_are_accepted():
    contract = validate_payload(
        WarehouseInsert,
        {"name": "A", "size": "S", "credits_per_hour": 1, "nodes": 1},
    )

    assert contract.credits_per_hour == Decimal("1")


def test_negative_credits_are_accepted():
    contract = validate_payload(WarehouseInsert, _warehouse_payload(creditsPerHour="-2.5"))

    assert contract.credits_per_hour == Decimal("-2.5")


def test_integer_fields_are_strict():
    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(WarehouseInsert, _warehouse_payload(nodes="5"))

    assert _reasons(excinfo.value) == {"nodes": "wrong_type"}


def test_unknown_fields_are_rejected():
    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(WarehouseInsert, _warehouse_payload(color="blue"))

    assert _reasons(excinfo.value) == {"color": "unknown_field"}


def test_enum_fields_accept_only_declared_values():
    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(
            ChartInsert, {"name": "Revenue", "type": "donut", "configuration": {}}
        )

    assert _reasons(excinfo.value) == {"type": "constraint"}


def test_non_object_payload_is_rejected():
    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(WarehouseInsert, ["not", "a", "dict"])

    assert _reasons(excinfo.value) == {"body": "wrong_type"}


def test_update_contract_makes_every_field_optional():
    assert validate_payload(WarehouseUpdate, {}).to_values() == {}
    assert validate_payload(WarehouseUpdate, {"nodes": 8}).to_values() == {"nodes": 8}


def test_update_contract_rejects_null_for_required_columns():
    with pytest.raises(ContractViolation):
        validate_payload(WarehouseUpdate, {"name": None})


def test_user_insert_is_limited_to_credentials():
    assert set(UserInsert.model_fields) == {"username", "email", "password_hash"}
    assert "password_hash" not in PublicUser.model_fields


@pytest.mark.parametrize("resource", sorted(CONTRACTS))
def test_select_contract_covers_insert_contract(resource):
    contracts = CONTRACTS[resource]
    selected = set(contracts.record.model_fields)

    assert set(contracts.insert.model_fields) - {"password_hash"} <= selected
    assert "id" in selected


def test_data_source_schema_uses_wire_name():
    row = DataSource(
        id=7,
        name="Q1",
        type=DataSourceType.CSV,
        schema_definition={"Revenue": {"type": "number", "nullable": True}},
        row_count=3,
        status=DataSourceStatus.READY,
    )

    payload = serialize(DataSourceRecord, row)

    assert payload["schema"] == {"Revenue": {"type": "number", "nullable": True}}
    assert payload["rowCount"] == 3
    assert payload["status"] == "ready"
    assert payload["type"] == "csv"


def test_contract_json_schema_lists_required_wire_names():
    schemas = contract_json_schema("warehouses")

    assert schemas["entity"] == "Warehouse"
    assert set(schemas["insert"]["required"]) == {"name", "size", "creditsPerHour", "nodes"}
    assert "createdAt" in schemas["select"]["properties"]


def test_contract_json_schema_rejects_unknown_entity():
    with pytest.raises(KeyError):
        contract_json_schema("nope")


_SAMPLE_VALUES = {
    SemanticType.STRING: "sample",
    SemanticType.INTEGER: 1,
    SemanticType.BOOLEAN: True,
    SemanticType.DECIMAL: "1.5",
    SemanticType.TIMESTAMP: "2024-01-31T12:00:00Z",
    SemanticType.DOCUMENT: {},
}


def _required_payload(contract) -> dict:
    payload = {}
    for field_name in contract.entity.required_fields:
        if field_name not in contract.model_fields:
            continue
        spec = contract.entity[field_name]
        if spec.type is SemanticType.ENUM:
            value = next(iter(spec.choices)).value
        else:
            value = _SAMPLE_VALUES[spec.type]
        payload[wire_name(field_name, spec)] = value
    return payload


def _required_cases():
    for resource, contracts in sorted(CONTRACTS.items()):
        for field_name in contracts.insert.entity.required_fields:
            if field_name in contracts.insert.model_fields:
                yield pytest.param(resource, field_name, id=f"{resource}-{field_name}")


@pytest.mark.parametrize("resource", sorted(CONTRACTS))
def test_payload_with_every_required_field_is_accepted(resource):
    contract = CONTRACTS[resource].insert
    required = {
        name for name, info in contract.model_fields.items() if info.is_required()
    }

    assert required == {
        name for name in contract.entity.required_fields if name in contract.model_fields
    }
    validate_payload(contract, _required_payload(contract))


@pytest.mark.parametrize("resource, field_name", list(_required_cases()))
def test_payload_missing_one_required_field_is_rejected(resource, field_name):
    contract = CONTRACTS[resource].insert
    alias = wire_name(field_name, contract.entity[field_name])
    payload = _required_payload(contract)
    del payload[alias]

    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(contract, payload)

    assert _reasons(excinfo.value) == {alias: "missing"}


def test_timestamps_accept_iso_strings_only():
    base = {"name": "Acme", "sector": "Software", "region": "EU"}

    accepted = validate_payload(CompanyInsert, {**base, "foundedDate": "2015-06-01T00:00:00Z"})
    assert accepted.founded_date.year == 2015

    with pytest.raises(ContractViolation) as excinfo:
        validate_payload(CompanyInsert, {**base, "foundedDate": 5})
    assert _reasons(excinfo.value) == {"foundedDate": "wrong_type"}


def test_public_data_source_contracts_hide_the_stored_path():
    contracts = CONTRACTS["data-sources"]

    assert "file_path" not in contracts.insert.model_fields
    assert "file_path" not in contracts.update.model_fields
    assert "file_path" in DataSourceInsert.model_fields
