"""Data-source endpoints: metadata CRUD plus upload, preview, cleaning and download."""

from __future__ import annotations

from pathlib import Path

from flask import Blueprint, Response, current_app, jsonify, request

from dataflow.api.common import login_required, require_user_id
from dataflow.api.resources import build_resource_blueprint
from dataflow.errors import ContractViolation
from dataflow.models.contracts import DataSourceRecord, serialize
from dataflow.models.db import session_scope
from dataflow.services.data_sources import DataSourceRecords
from dataflow.services.ingestion import source_type_for, store_upload


def create_blueprint(upload_dir: Path) -> Blueprint:
    records = DataSourceRecords(upload_dir)
    bp = build_resource_blueprint("data-sources", records)

    @bp.post("/upload")
    @login_required
    def upload():
        upload_file = request.files.get("file")
        if upload_file is None or not upload_file.filename:
            raise ContractViolation.single("file", "missing", "No file uploaded")
        source_type = source_type_for(upload_file.filename)
        stored_path, original_name = store_upload(upload_file, records.upload_dir)

        try:
            with session_scope() as db_session:
                record, result, failure = records.ingest(
                    db_session,
                    require_user_id(),
                    stored_path=stored_path,
                    original_name=original_name,
                    source_type=source_type,
                )
                body = {"dataSource": serialize(DataSourceRecord, record)}
        except Exception:
            # No row points at the file once the transaction rolled back.
            stored_path.unlink(missing_ok=True)
            current_app.logger.warning("Discarded upload %s after a failed ingest", original_name)
            raise

        if failure is not None:
            body["message"] = failure
            return jsonify(body), 400
        body.update(result.to_dict())
        return jsonify(body), 201

    @bp.get("/<int:record_id>/preview")
    @login_required
    def preview(record_id: int):
        with session_scope() as db_session:
            payload = records.preview(db_session, require_user_id(), record_id)
        return jsonify(payload)

    @bp.get("/<int:record_id>/quality")
    @login_required
    def quality(record_id: int):
        with session_scope() as db_session:
            payload = records.quality(db_session, require_user_id(), record_id)
        return jsonify(payload)

    @bp.post("/<int:record_id>/clean")
    @login_required
    def clean(record_id: int):
        options = request.get_json(silent=True)
        with session_scope() as db_session:
            record, report, summary = records.clean(
                db_session, require_user_id(), record_id, options or {}
            )
            body = {
                "dataSource": serialize(DataSourceRecord, record),
                "cleaning": report.to_dict(),
                "quality": summary,
            }
        return jsonify(body)

    @bp.get("/<int:record_id>/download")
    @login_required
    def download(record_id: int):
        with session_scope() as db_session:
            text, filename = records.export(db_session, require_user_id(), record_id)
        return Response(
            text,
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return bp


__all__ = ["create_blueprint"]
