"""Data-source lifecycle: monotonic status and file-backed ingestion."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from dataflow.errors import InvalidTransition, RecordNotFound, UpstreamError
from dataflow.models.contracts import (
    CONTRACTS,
    DataSourceInsert,
    DataSourceUpdate,
    validate_payload,
)
from dataflow.models.tables import DataSource, DataSourceStatus, DataSourceType
from dataflow.services.ingestion import (
    CleaningReport,
    IngestionError,
    IngestionResult,
    QualitySummary,
    clean_frame,
    export_csv,
    infer_schema,
    is_stored_upload,
    preview_file,
    profile_file,
    quality_summary,
    read_frame,
    write_frame,
)
from dataflow.services.records import OwnedRecords
from dataflow.services.validators import CleaningInput

_LOGGER = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[DataSourceStatus, frozenset[DataSourceStatus]] = {
    DataSourceStatus.PROCESSING: frozenset(
        {DataSourceStatus.READY, DataSourceStatus.ERROR}
    ),
    DataSourceStatus.READY: frozenset(),
    DataSourceStatus.ERROR: frozenset(),
}


def check_transition(current: DataSourceStatus, target: DataSourceStatus) -> None:
    """Raise :class:`InvalidTransition` unless ``current -> target`` is allowed.

    Re-asserting the current status is not a transition and passes.
    """

    current = DataSourceStatus(current)
    target = DataSourceStatus(target)
    if current is target or target in ALLOWED_TRANSITIONS[current]:
        return
    raise InvalidTransition(
        f"Cannot move data source from {current.value} to {target.value}",
        constraint="data_source_status_transition",
    )


class DataSourceRecords(OwnedRecords[DataSource]):
    """Owned data sources with status rules and stored-file cleanup.

    Only files under ``upload_dir`` are ever read, rewritten or removed.
    """

    def __init__(self, upload_dir: Path) -> None:
        super().__init__(CONTRACTS["data-sources"])
        self.upload_dir = Path(upload_dir)

    def update(
        self, session: Session, user_id: int, record_id: int, payload: Any
    ) -> DataSource:
        record = self.get(session, user_id, record_id)
        values = validate_payload(DataSourceUpdate, payload).to_values()
        if values.get("status") is not None:
            check_transition(record.status, values["status"])
        self.check_references(session, user_id, values)
        for key, value in values.items():
            setattr(record, key, value)
        session.flush()
        return record

    def delete(self, session: Session, user_id: int, record_id: int) -> DataSource:
        record = super().delete(session, user_id, record_id)
        if record.file_path and is_stored_upload(Path(record.file_path), self.upload_dir):
            Path(record.file_path).unlink(missing_ok=True)
        return record

    def ingest(
        self,
        session: Session,
        user_id: int,
        *,
        stored_path: Path,
        original_name: str,
        source_type: DataSourceType,
    ) -> tuple[DataSource, IngestionResult | None, str | None]:
        """Create a ``processing`` row for a stored file and parse it.

        Returns the row, the profile when parsing succeeded and the parser's
        message when it did not; the row ends ``ready`` or ``error``.
        """

        record = self.create(
            session,
            user_id,
            {
                "name": Path(original_name).stem or original_name,
                "type": source_type.value,
                "fileName": original_name,
                "filePath": str(stored_path),
                "status": DataSourceStatus.PROCESSING.value,
            },
            contract=DataSourceInsert,
        )

        try:
            result = profile_file(stored_path, source_type)
        except IngestionError as exc:
            _LOGGER.warning("Ingestion of %s failed: %s", original_name, exc)
            check_transition(record.status, DataSourceStatus.ERROR)
            record.status = DataSourceStatus.ERROR
            session.flush()
            return record, None, str(exc)

        check_transition(record.status, DataSourceStatus.READY)
        record.schema_definition = dict(result.schema)
        record.row_count = result.row_count
        record.status = DataSourceStatus.READY
        session.flush()
        _LOGGER.info(
            "Ingested %s: %s rows, %s columns",
            original_name,
            result.row_count,
            len(result.columns),
        )
        return record, result, None

    def _stored_file(self, record: DataSource) -> tuple[Path, DataSourceType]:
        path = Path(record.file_path) if record.file_path else None
        if path is None or not is_stored_upload(path, self.upload_dir) or not path.exists():
            raise RecordNotFound(f"Data source {record.id} has no stored file")
        return path, DataSourceType(record.type)

    def preview(self, session: Session, user_id: int, record_id: int) -> dict[str, Any]:
        path, source_type = self._stored_file(self.get(session, user_id, record_id))
        try:
            return preview_file(path, source_type)
        except IngestionError as exc:
            raise UpstreamError(str(exc)) from exc

    def quality(self, session: Session, user_id: int, record_id: int) -> QualitySummary:
        path, source_type = self._stored_file(self.get(session, user_id, record_id))
        try:
            return quality_summary(read_frame(path, source_type))
        except IngestionError as exc:
            raise UpstreamError(str(exc)) from exc

    def clean(
        self, session: Session, user_id: int, record_id: int, payload: Any
    ) -> tuple[DataSource, CleaningReport, QualitySummary]:
        """Rewrite the stored file with a cleaned copy and refresh the row."""

        options = validate_payload(CleaningInput, payload)
        record = self.get(session, user_id, record_id)
        path, source_type = self._stored_file(record)
        try:
            frame, report = clean_frame(
                read_frame(path, source_type),
                fill_missing=options.fill_missing,
                remove_outliers=options.remove_outliers,
                remove_duplicates=options.remove_duplicates,
            )
            write_frame(path, source_type, frame)
        except IngestionError as exc:
            raise UpstreamError(str(exc)) from exc

        record.schema_definition = dict(infer_schema(frame))
        record.row_count = int(len(frame))
        session.flush()
        _LOGGER.info(
            "Cleaned data source %s: %s values filled, %s outliers and %s duplicates removed",
            record.id,
            report.filled_values,
            report.removed_outliers,
            report.removed_duplicates,
        )
        return record, report, quality_summary(frame)

    def export(self, session: Session, user_id: int, record_id: int) -> tuple[str, str]:
        """Return ``(csv_text, download_name)`` for a stored file."""

        record = self.get(session, user_id, record_id)
        path, source_type = self._stored_file(record)
        stem = Path(record.file_name or record.name).stem or f"data-source-{record.id}"
        try:
            return export_csv(path, source_type), f"{stem}.csv"
        except IngestionError as exc:
            raise UpstreamError(str(exc)) from exc


__all__ = ["ALLOWED_TRANSITIONS", "DataSourceRecords", "check_transition"]
