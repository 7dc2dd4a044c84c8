"""Owner-scoped create/read/update/delete driven by an entity's contracts."""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from dataflow.errors import ContractViolation, RecordNotFound, ReferenceNotFound
from dataflow.models.contracts import EntityContracts, WriteContract, validate_payload
from dataflow.models.db import Base
from dataflow.models.descriptors import describe_model

_LOGGER = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

# Every owned table carries this column.
_OWNER_COLUMN = "user_id"


def _model_for_table(table_name: str) -> type[Base] | None:
    for mapper in Base.registry.mappers:
        if mapper.local_table.name == table_name:
            return mapper.class_
    return None


class OwnedRecords(Generic[ModelT]):
    """CRUD over one entity, restricted to rows whose ``user_id`` matches.

    Rows owned by another user behave exactly like missing rows.
    """

    def __init__(self, contracts: EntityContracts, *, order_by: str = "created_at") -> None:
        self.contracts = contracts
        self.model: type[ModelT] = contracts.model
        self.descriptor = describe_model(self.model)
        self.order_by = order_by

    @property
    def label(self) -> str:
        return self.descriptor.name

    def list_owned(self, session: Session, user_id: int) -> list[ModelT]:
        column = getattr(self.model, self.order_by)
        stmt = (
            select(self.model)
            .where(getattr(self.model, _OWNER_COLUMN) == user_id)
            .order_by(column.desc(), self.model.id.desc())
        )
        return list(session.execute(stmt).scalars())

    def get(self, session: Session, user_id: int, record_id: int) -> ModelT:
        record = session.get(self.model, record_id)
        if record is None or getattr(record, _OWNER_COLUMN) != user_id:
            raise RecordNotFound(f"{self.label} {record_id} not found")
        return record

    def create(
        self,
        session: Session,
        user_id: int,
        payload: Any,
        *,
        contract: type[WriteContract] | None = None,
    ) -> ModelT:
        """Insert a row owned by ``user_id``; ``contract`` overrides the insert contract."""

        values = validate_payload(contract or self.contracts.insert, payload).to_values()
        if values.get(_OWNER_COLUMN) not in (None, user_id):
            raise ContractViolation.single(
                "userId", "constraint", "userId must be the authenticated user"
            )
        values[_OWNER_COLUMN] = user_id
        self.check_references(session, user_id, values)

        record = self.model(**values)
        session.add(record)
        session.flush()
        _LOGGER.info("Created %s %s for user %s", self.label, record.id, user_id)
        return record

    def update(
        self, session: Session, user_id: int, record_id: int, payload: Any
    ) -> ModelT:
        if self.contracts.update is None:
            raise ContractViolation.single(
                "body", "constraint", f"{self.label} records cannot be updated"
            )
        record = self.get(session, user_id, record_id)
        values = validate_payload(self.contracts.update, payload).to_values()
        self.check_references(session, user_id, values)
        for key, value in values.items():
            setattr(record, key, value)
        session.flush()
        return record

    def delete(self, session: Session, user_id: int, record_id: int) -> ModelT:
        record = self.get(session, user_id, record_id)
        session.delete(record)
        session.flush()
        _LOGGER.info("Deleted %s %s for user %s", self.label, record_id, user_id)
        return record

    def check_references(
        self, session: Session, user_id: int, values: dict[str, Any]
    ) -> None:
        """Reject foreign keys naming rows that are missing or owned by others."""

        for field_name, target in self.descriptor.foreign_keys.items():
            if field_name == _OWNER_COLUMN or values.get(field_name) is None:
                continue
            table_name = target.split(".", 1)[0]
            referenced_model = _model_for_table(table_name)
            if referenced_model is None:
                continue
            referenced = session.get(referenced_model, values[field_name])
            if referenced is None or getattr(referenced, _OWNER_COLUMN, user_id) != user_id:
                raise ReferenceNotFound(
                    f"{referenced_model.__name__} {values[field_name]} not found",
                    constraint=f"fk_{self.descriptor.table}_{field_name}",
                )


__all__ = ["OwnedRecords"]
