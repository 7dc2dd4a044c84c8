"""Tests for file parsing and profiling."""

from __future__ import annotations

import json
from pathlib import Path
import sys

import pandas as pd
import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dataflow.errors import ContractViolation
from dataflow.models.tables import DataSourceType
from dataflow.services.ingestion import (
    IngestionError,
    clean_frame,
    export_csv,
    is_stored_upload,
    preview_file,
    profile_file,
    read_frame,
    source_type_for,
    write_frame,
)


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "companies.csv"
    path.write_text("name,revenue,active\nAcme,10.5,true\nGlobex,,false\n", encoding="utf-8")
    return path


def test_source_type_for_known_extensions():
    assert source_type_for("report.CSV") is DataSourceType.CSV
    assert source_type_for("book.xlsx") is DataSourceType.EXCEL
    assert source_type_for("legacy.xls") is DataSourceType.EXCEL
    assert source_type_for("dump.json") is DataSourceType.JSON
    assert source_type_for("table.parquet") is DataSourceType.PARQUET


def test_source_type_for_rejects_other_extensions():
    with pytest.raises(ContractViolation) as excinfo:
        source_type_for("notes.txt")

    assert excinfo.value.errors[0].field == "file"


def test_profile_csv_infers_schema_and_quality(csv_file: Path):
    result = profile_file(csv_file, DataSourceType.CSV)

    assert result.row_count == 2
    assert result.columns == ["name", "revenue", "active"]
    assert result.schema == {
        "name": {"type": "string", "nullable": False},
        "revenue": {"type": "number", "nullable": True},
        "active": {"type": "boolean", "nullable": False},
    }
    assert result.sample_rows[0] == {"name": "Acme", "revenue": 10.5, "active": True}
    assert result.sample_rows[1]["revenue"] is None
    assert result.quality["complete_rows"] == 1
    assert result.quality["null_counts"] == {"name": 0, "revenue": 1, "active": 0}


def test_profile_json_accepts_single_object(tmp_path: Path):
    path = tmp_path / "single.json"
    path.write_text(json.dumps({"name": "Acme", "employees": 12}), encoding="utf-8")

    result = profile_file(path, DataSourceType.JSON)

    assert result.row_count == 1
    assert result.schema["employees"]["type"] == "number"


def test_sample_rows_are_limited(tmp_path: Path):
    path = tmp_path / "many.json"
    path.write_text(json.dumps([{"n": index} for index in range(30)]), encoding="utf-8")

    result = profile_file(path, DataSourceType.JSON)
    preview = preview_file(path, DataSourceType.JSON)

    assert len(result.sample_rows) == 5
    assert len(preview["rows"]) == 20
    assert preview["totalRows"] == 30


def test_malformed_json_raises_ingestion_error(tmp_path: Path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(IngestionError, match="Failed to process json file"):
        profile_file(path, DataSourceType.JSON)


def test_export_csv_round_trips_columns(csv_file: Path):
    text = export_csv(csv_file, DataSourceType.CSV)

    assert text.splitlines()[0] == "name,revenue,active"


def test_clean_frame_fills_with_mean_and_mode():
    frame = pd.DataFrame(
        {"revenue": [10.0, None, 20.0], "sector": ["Software", None, "Software"]}
    )

    cleaned, report = clean_frame(frame)

    assert cleaned["revenue"].tolist() == [10.0, 15.0, 20.0]
    assert cleaned["sector"].tolist() == ["Software"] * 3
    assert report.filled_values == 2
    assert frame["revenue"].isna().sum() == 1


def test_clean_frame_leaves_fully_empty_columns_alone():
    frame = pd.DataFrame({"revenue": [1.0, 2.0], "notes": [None, None]})

    cleaned, report = clean_frame(frame)

    assert cleaned["notes"].isna().all()
    assert report.filled_values == 0


def test_clean_frame_drops_iqr_outliers():
    frame = pd.DataFrame({"revenue": [10, 11, 12, 13, 1000]})

    cleaned, report = clean_frame(frame, fill_missing=False, remove_outliers=True)

    assert cleaned["revenue"].tolist() == [10, 11, 12, 13]
    assert report.removed_outliers == 1


def test_write_frame_round_trips_json(tmp_path: Path):
    path = tmp_path / "rows.json"
    frame = pd.DataFrame([{"name": "Acme", "employees": 12}])

    write_frame(path, DataSourceType.JSON, frame)

    assert read_frame(path, DataSourceType.JSON).to_dict("records") == [
        {"name": "Acme", "employees": 12}
    ]


def test_is_stored_upload_rejects_escaping_paths(tmp_path: Path):
    upload_dir = tmp_path / "uploads"

    assert is_stored_upload(upload_dir / "a.csv", upload_dir)
    assert not is_stored_upload(upload_dir / ".." / "a.csv", upload_dir)
    assert not is_stored_upload(tmp_path / "a.csv", upload_dir)
