"""Insert, update and select contracts derived from entity descriptors.

Contracts are pydantic models generated with :func:`pydantic.create_model`
from a descriptor, so the writable and readable shapes of an entity can never
drift from its table declaration.  Wire names are camelCase; snake_case keys
are accepted on input as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Iterable, Mapping, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from dataflow.errors import ContractViolation, FieldError
from dataflow.models.descriptors import (
    SERVER_DEFAULT,
    EntityDescriptor,
    FieldSpec,
    SemanticType,
    describe_model,
)
from dataflow.models.tables import (
    AIConversation,
    Chart,
    Company,
    Dashboard,
    DataSource,
    QueryHistory,
    User,
    Warehouse,
)

_TYPE_ERROR_SUFFIXES = ("_type", "_parsing")
Document = dict[str, Any] | list[Any]
ModelT = TypeVar("ModelT", bound=BaseModel)


def _iso_timestamp(value: Any) -> Any:
    # Numbers would otherwise be read as Unix epochs.
    if isinstance(value, (str, datetime)):
        return value
    raise PydanticCustomError(
        "datetime_type", "Input should be an ISO-8601 datetime string"
    )


Timestamp = Annotated[datetime, BeforeValidator(_iso_timestamp)]


class WriteContract(BaseModel):
    """Base for insert and update contracts."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    entity: ClassVar[EntityDescriptor]

    def to_values(self) -> dict[str, Any]:
        """Column values keyed by attribute name, limited to what the caller sent.

        Omitted fields are left out so column defaults apply on insert and
        untouched columns stay as they are on update.
        """

        return self.model_dump(exclude_unset=True)


class ReadContract(BaseModel):
    """Base for select contracts; built from ORM rows, rendered camelCase."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    entity: ClassVar[EntityDescriptor]

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def wire_name(field_name: str, spec: FieldSpec) -> str:
    return spec.alias or to_camel(field_name)


def _resolve(entity: EntityDescriptor | type) -> EntityDescriptor:
    if isinstance(entity, EntityDescriptor):
        return entity
    return describe_model(entity)


def _select_fields(
    descriptor: EntityDescriptor,
    omit: Iterable[str] | None,
    pick: Iterable[str] | None,
) -> list[str]:
    if omit is not None and pick is not None:
        raise ValueError("Pass either omit or pick, not both")
    names = list(pick) if pick is not None else None
    excluded = set(omit or ())
    unknown = [
        name for name in (names or excluded) if name not in descriptor
    ]
    if unknown:
        raise ValueError(
            f"Unknown field(s) for {descriptor.name}: {', '.join(sorted(unknown))}"
        )
    if names is not None:
        return [name for name in descriptor.field_names if name in names]
    return [name for name in descriptor.field_names if name not in excluded]


def _strict_annotation(spec: FieldSpec) -> Any:
    if spec.type is SemanticType.STRING:
        return StrictStr
    if spec.type is SemanticType.INTEGER:
        return StrictInt
    if spec.type is SemanticType.BOOLEAN:
        return StrictBool
    if spec.type is SemanticType.DECIMAL:
        return Annotated[
            Decimal,
            Field(max_digits=spec.precision, decimal_places=spec.scale),
        ]
    if spec.type is SemanticType.TIMESTAMP:
        return Timestamp
    if spec.type is SemanticType.DOCUMENT:
        return Document
    return spec.choices


def _read_annotation(spec: FieldSpec) -> Any:
    annotation = {
        SemanticType.STRING: str,
        SemanticType.INTEGER: int,
        SemanticType.BOOLEAN: bool,
        SemanticType.DECIMAL: Decimal,
        SemanticType.TIMESTAMP: datetime,
        SemanticType.DOCUMENT: Any,
    }.get(spec.type, spec.choices)
    return annotation | None if spec.nullable else annotation


def _insert_default(spec: FieldSpec) -> Any:
    if spec.required:
        return ...
    if spec.has_default and spec.default is not SERVER_DEFAULT:
        return spec.default
    return None


def insert_contract(
    entity: EntityDescriptor | type,
    *,
    omit: Iterable[str] | None = None,
    pick: Iterable[str] | None = None,
    name: str | None = None,
) -> type[WriteContract]:
    """Derive the validation contract for payloads that create a row."""

    descriptor = _resolve(entity)
    definitions: dict[str, Any] = {}
    for field_name in _select_fields(descriptor, omit, pick):
        spec = descriptor[field_name]
        annotation = _strict_annotation(spec)
        if spec.nullable:
            annotation = annotation | None
        definitions[field_name] = (
            annotation,
            Field(_insert_default(spec), alias=wire_name(field_name, spec)),
        )

    contract = create_model(
        name or f"{descriptor.name}Insert", __base__=WriteContract, **definitions
    )
    contract.entity = descriptor
    return contract


def update_contract(
    entity: EntityDescriptor | type,
    *,
    omit: Iterable[str] | None = None,
    pick: Iterable[str] | None = None,
    name: str | None = None,
) -> type[WriteContract]:
    """Derive a PATCH contract: every field optional, ``null`` only where nullable."""

    descriptor = _resolve(entity)
    definitions: dict[str, Any] = {}
    for field_name in _select_fields(descriptor, omit, pick):
        spec = descriptor[field_name]
        annotation = _strict_annotation(spec)
        if spec.nullable:
            annotation = annotation | None
        definitions[field_name] = (
            annotation,
            Field(None, alias=wire_name(field_name, spec)),
        )

    contract = create_model(
        name or f"{descriptor.name}Update", __base__=WriteContract, **definitions
    )
    contract.entity = descriptor
    return contract


def select_contract(
    entity: EntityDescriptor | type,
    *,
    omit: Iterable[str] | None = None,
    name: str | None = None,
) -> type[ReadContract]:
    """Derive the full read shape of an entity."""

    descriptor = _resolve(entity)
    definitions: dict[str, Any] = {}
    for field_name in _select_fields(descriptor, omit, None):
        spec = descriptor[field_name]
        definitions[field_name] = (
            _read_annotation(spec),
            Field(None, alias=wire_name(field_name, spec)),
        )

    contract = create_model(
        name or f"{descriptor.name}Record", __base__=ReadContract, **definitions
    )
    contract.entity = descriptor
    return contract


def _reason(error_type: str) -> str:
    if error_type == "missing":
        return "missing"
    if error_type == "extra_forbidden":
        return "unknown_field"
    if error_type.endswith(_TYPE_ERROR_SUFFIXES) or error_type == "is_instance_of":
        return "wrong_type"
    return "constraint"


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Collapse pydantic errors to one entry per failing field and reason."""

    errors: list[FieldError] = []
    seen: set[tuple[str, str]] = set()
    for error in exc.errors():
        location = error.get("loc") or ("body",)
        field = str(location[0])
        reason = _reason(error.get("type", ""))
        if (field, reason) in seen:
            continue
        seen.add((field, reason))
        errors.append(FieldError(field=field, reason=reason, message=error.get("msg", "")))
    return errors


def validate_payload(contract: type[ModelT], payload: Any) -> ModelT:
    """Run ``contract`` against ``payload`` or raise :class:`ContractViolation`."""

    if not isinstance(payload, Mapping):
        raise ContractViolation.single(
            "body", "wrong_type", "Request body must be a JSON object"
        )
    try:
        return contract.model_validate(dict(payload))
    except ValidationError as exc:
        raise ContractViolation(field_errors(exc)) from exc


def serialize(contract: type[ReadContract], row: Any) -> dict[str, Any]:
    return contract.model_validate(row).to_json()


@dataclass(frozen=True, slots=True)
class EntityContracts:
    """The contracts of one entity, grouped for the generic resource layer."""

    model: type
    insert: type[WriteContract]
    update: type[WriteContract] | None
    record: type[ReadContract]

    def json_schema(self) -> dict[str, Any]:
        schemas: dict[str, Any] = {
            "entity": self.record.entity.name,
            "insert": self.insert.model_json_schema(by_alias=True),
            "select": self.record.model_json_schema(by_alias=True, mode="serialization"),
        }
        if self.update is not None:
            schemas["update"] = self.update.model_json_schema(by_alias=True)
        return schemas


_GENERATED = ("id", "created_at")
_NOT_UPDATABLE = ("id", "created_at", "user_id")

UserInsert = insert_contract(User, pick=("username", "email", "password_hash"))
UserRecord = select_contract(User)
PublicUser = select_contract(User, omit=("password_hash",), name="PublicUser")

WarehouseInsert = insert_contract(Warehouse, omit=_GENERATED)
WarehouseUpdate = update_contract(Warehouse, omit=_NOT_UPDATABLE)
WarehouseRecord = select_contract(Warehouse)

# Only ingestion may point a row at a stored file.
DataSourceInsert = insert_contract(DataSource, omit=_GENERATED)
DataSourceCreate = insert_contract(
    DataSource, omit=(*_GENERATED, "file_path"), name="DataSourceCreate"
)
DataSourceUpdate = update_contract(DataSource, omit=(*_NOT_UPDATABLE, "file_path"))
DataSourceRecord = select_contract(DataSource)

QueryHistoryInsert = insert_contract(QueryHistory, omit=("id", "executed_at"))
QueryHistoryRecord = select_contract(QueryHistory)

ChartInsert = insert_contract(Chart, omit=_GENERATED)
ChartUpdate = update_contract(Chart, omit=_NOT_UPDATABLE)
ChartRecord = select_contract(Chart)

DashboardInsert = insert_contract(Dashboard, omit=_GENERATED)
DashboardUpdate = update_contract(Dashboard, omit=_NOT_UPDATABLE)
DashboardRecord = select_contract(Dashboard)

AIConversationInsert = insert_contract(AIConversation, omit=_GENERATED)
AIConversationUpdate = update_contract(AIConversation, pick=("context",))
AIConversationRecord = select_contract(AIConversation)

CompanyInsert = insert_contract(Company, omit=_GENERATED)
CompanyUpdate = update_contract(Company, omit=_NOT_UPDATABLE)
CompanyRecord = select_contract(Company)

CONTRACTS: dict[str, EntityContracts] = {
    "users": EntityContracts(User, UserInsert, None, PublicUser),
    "warehouses": EntityContracts(Warehouse, WarehouseInsert, WarehouseUpdate, WarehouseRecord),
    "data-sources": EntityContracts(
        DataSource, DataSourceCreate, DataSourceUpdate, DataSourceRecord
    ),
    "query-history": EntityContracts(
        QueryHistory, QueryHistoryInsert, None, QueryHistoryRecord
    ),
    "charts": EntityContracts(Chart, ChartInsert, ChartUpdate, ChartRecord),
    "dashboards": EntityContracts(Dashboard, DashboardInsert, DashboardUpdate, DashboardRecord),
    "ai-conversations": EntityContracts(
        AIConversation, AIConversationInsert, AIConversationUpdate, AIConversationRecord
    ),
    "companies": EntityContracts(Company, CompanyInsert, CompanyUpdate, CompanyRecord),
}


def contract_json_schema(entity: str) -> dict[str, Any]:
    """Insert, update and select JSON Schemas for an entity's REST name."""

    try:
        contracts = CONTRACTS[entity]
    except KeyError as exc:
        raise KeyError(f"Unknown entity '{entity}'") from exc
    return contracts.json_schema()


__all__ = [
    "AIConversationInsert",
    "AIConversationRecord",
    "AIConversationUpdate",
    "CONTRACTS",
    "ChartInsert",
    "ChartRecord",
    "ChartUpdate",
    "CompanyInsert",
    "CompanyRecord",
    "CompanyUpdate",
    "DashboardInsert",
    "DashboardRecord",
    "DashboardUpdate",
    "DataSourceCreate",
    "DataSourceInsert",
    "DataSourceRecord",
    "DataSourceUpdate",
    "EntityContracts",
    "PublicUser",
    "QueryHistoryInsert",
    "QueryHistoryRecord",
    "ReadContract",
    "UserInsert",
    "UserRecord",
    "WarehouseInsert",
    "WarehouseRecord",
    "WarehouseUpdate",
    "WriteContract",
    "contract_json_schema",
    "field_errors",
    "insert_contract",
    "select_contract",
    "serialize",
    "update_contract",
    "validate_payload",
    "wire_name",
]
