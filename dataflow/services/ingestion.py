"""Spreadsheet parsing and lightweight profiling of uploaded files."""

from __future__ import annotations

import json
import logging
import uuid
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypedDict

import pandas as pd
from pandas.api import types as ptypes
from slugify import slugify
from werkzeug.datastructures import FileStorage

from dataflow.errors import ContractViolation
from dataflow.models.tables import DataSourceType

_LOGGER = logging.getLogger(__name__)

SAMPLE_ROWS = 5
PREVIEW_ROWS = 20
EXTENSION_TYPES: dict[str, DataSourceType] = {
    ".csv": DataSourceType.CSV,
    ".xlsx": DataSourceType.EXCEL,
    ".xls": DataSourceType.EXCEL,
    ".json": DataSourceType.JSON,
    ".parquet": DataSourceType.PARQUET,
}


class IngestionError(Exception):
    """The file could not be parsed; the message is the parser's own."""


class ColumnSchema(TypedDict):
    type: str
    nullable: bool


class QualitySummary(TypedDict):
    total_rows: int
    complete_rows: int
    completeness_pct: float
    null_counts: dict[str, int]


@dataclass(slots=True)
class IngestionResult:
    schema: dict[str, ColumnSchema]
    row_count: int
    columns: list[str]
    sample_rows: list[dict[str, Any]] = field(default_factory=list)
    quality: QualitySummary | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": self.schema,
            "rowCount": self.row_count,
            "columns": self.columns,
            "sampleRows": self.sample_rows,
            "quality": self.quality,
        }


def source_type_for(filename: str) -> DataSourceType:
    """Return the data-source type for an upload name or reject the extension."""

    suffix = Path(filename).suffix.lower()
    try:
        return EXTENSION_TYPES[suffix]
    except KeyError:
        raise ContractViolation.single(
            "file",
            "constraint",
            "Only CSV, Excel, JSON, and Parquet files are allowed",
        ) from None


def store_upload(upload: FileStorage, upload_dir: Path) -> tuple[Path, str]:
    """Persist an uploaded file under a slugified, collision-free name.

    Returns the stored path and the original file name.
    """

    original_name = upload.filename or ""
    if not original_name:
        raise ContractViolation.single("file", "missing", "No file uploaded")
    source_type_for(original_name)

    suffix = Path(original_name).suffix.lower()
    stem = slugify(Path(original_name).stem) or "upload"
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / f"{uuid.uuid4().hex[:12]}-{stem}{suffix}"
    upload.save(target)
    _LOGGER.info("Stored upload %s as %s", original_name, target.name)
    return target, original_name


def is_stored_upload(path: Path, upload_dir: Path) -> bool:
    """Whether ``path`` resolves to a file inside ``upload_dir``."""

    return path.resolve().is_relative_to(upload_dir.resolve())


def read_frame(path: Path, source_type: DataSourceType) -> pd.DataFrame:
    """Load a stored file into a DataFrame, raising :class:`IngestionError`."""

    try:
        if source_type is DataSourceType.CSV:
            return pd.read_csv(path)
        if source_type is DataSourceType.EXCEL:
            return pd.read_excel(path)
        if source_type is DataSourceType.PARQUET:
            return pd.read_parquet(path)
        if source_type is DataSourceType.JSON:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            # A single object is treated as a one-row table.
            return pd.DataFrame(data if isinstance(data, list) else [data])
    except (ValueError, OSError, ImportError, zipfile.BadZipFile) as exc:
        raise IngestionError(f"Failed to process {source_type.value} file: {exc}") from exc
    raise IngestionError(f"Unsupported file type: {source_type.value}")


def _column_type(series: pd.Series) -> str:
    if ptypes.is_bool_dtype(series):
        return "boolean"
    if ptypes.is_numeric_dtype(series):
        return "number"
    if ptypes.is_datetime64_any_dtype(series):
        return "date"
    return "string"


def infer_schema(frame: pd.DataFrame) -> dict[str, ColumnSchema]:
    """Map each column to ``{"type", "nullable"}``."""

    return {
        str(column): {
            "type": _column_type(frame[column]),
            "nullable": bool(frame[column].isna().any()),
        }
        for column in frame.columns
    }


def quality_summary(frame: pd.DataFrame) -> QualitySummary:
    total = int(len(frame))
    complete = int(frame.dropna().shape[0]) if total else 0
    return {
        "total_rows": total,
        "complete_rows": complete,
        "completeness_pct": round(complete / total * 100, 2) if total else 0.0,
        "null_counts": {
            str(column): int(count) for column, count in frame.isna().sum().items()
        },
    }


def frame_records(frame: pd.DataFrame, limit: int | None = None) -> list[dict[str, Any]]:
    """JSON-safe row dictionaries; ``NaN`` becomes ``None``."""

    subset = frame if limit is None else frame.head(limit)
    return json.loads(subset.to_json(orient="records", date_format="iso"))


def profile_file(path: Path, source_type: DataSourceType) -> IngestionResult:
    frame = read_frame(path, source_type)
    return IngestionResult(
        schema=infer_schema(frame),
        row_count=int(len(frame)),
        columns=[str(column) for column in frame.columns],
        sample_rows=frame_records(frame, SAMPLE_ROWS),
        quality=quality_summary(frame),
    )


def preview_file(path: Path, source_type: DataSourceType) -> dict[str, Any]:
    frame = read_frame(path, source_type)
    return {
        "columns": [str(column) for column in frame.columns],
        "rows": frame_records(frame, PREVIEW_ROWS),
        "totalRows": int(len(frame)),
    }


def export_csv(path: Path, source_type: DataSourceType) -> str:
    return read_frame(path, source_type).to_csv(index=False)


OUTLIER_IQR_FACTOR = 1.5


@dataclass(slots=True)
class CleaningReport:
    filled_values: int = 0
    removed_outliers: int = 0
    removed_duplicates: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "filledValues": self.filled_values,
            "removedOutliers": self.removed_outliers,
            "removedDuplicates": self.removed_duplicates,
        }


def _is_measure(series: pd.Series) -> bool:
    return ptypes.is_numeric_dtype(series) and not ptypes.is_bool_dtype(series)


def clean_frame(
    frame: pd.DataFrame,
    *,
    fill_missing: bool = True,
    remove_outliers: bool = False,
    remove_duplicates: bool = False,
) -> tuple[pd.DataFrame, CleaningReport]:
    """Return a cleaned copy of ``frame`` and what was changed.

    Missing numbers are filled with the column mean (two decimals), other
    missing values with the column mode.  Outliers are rows holding a value
    outside ``OUTLIER_IQR_FACTOR`` interquartile ranges of its column.
    """

    cleaned = frame.copy()
    report = CleaningReport()

    if fill_missing:
        for column in cleaned.columns:
            series = cleaned[column]
            missing = int(series.isna().sum())
            if not missing or missing == len(series):
                continue
            if _is_measure(series):
                fill_value = round(float(series.mean()), 2)
            else:
                fill_value = series.mode(dropna=True).iloc[0]
            cleaned[column] = series.fillna(fill_value)
            report.filled_values += missing

    if remove_outliers and len(cleaned):
        keep = pd.Series(True, index=cleaned.index)
        for column in cleaned.columns:
            series = cleaned[column]
            if not _is_measure(series):
                continue
            q1, q3 = series.quantile(0.25), series.quantile(0.75)
            spread = (q3 - q1) * OUTLIER_IQR_FACTOR
            keep &= series.between(q1 - spread, q3 + spread) | series.isna()
        report.removed_outliers = int((~keep).sum())
        cleaned = cleaned[keep]

    if remove_duplicates:
        before = len(cleaned)
        cleaned = cleaned.drop_duplicates()
        report.removed_duplicates = before - len(cleaned)

    return cleaned.reset_index(drop=True), report


def write_frame(path: Path, source_type: DataSourceType, frame: pd.DataFrame) -> None:
    """Overwrite a stored file with ``frame`` in its own format."""

    try:
        if source_type is DataSourceType.CSV:
            frame.to_csv(path, index=False)
        elif source_type is DataSourceType.EXCEL:
            # Legacy .xls cannot be written; openpyxl output is still readable.
            frame.to_excel(path, index=False, engine="openpyxl")
        elif source_type is DataSourceType.PARQUET:
            frame.to_parquet(path, index=False)
        elif source_type is DataSourceType.JSON:
            frame.to_json(path, orient="records", date_format="iso")
        else:
            raise IngestionError(f"Unsupported file type: {source_type.value}")
    except (ValueError, OSError, ImportError) as exc:
        raise IngestionError(f"Failed to write {source_type.value} file: {exc}") from exc


__all__ = [
    "CleaningReport",
    "EXTENSION_TYPES",
    "IngestionError",
    "IngestionResult",
    "OUTLIER_IQR_FACTOR",
    "PREVIEW_ROWS",
    "SAMPLE_ROWS",
    "clean_frame",
    "export_csv",
    "frame_records",
    "infer_schema",
    "is_stored_upload",
    "preview_file",
    "profile_file",
    "quality_summary",
    "read_frame",
    "source_type_for",
    "store_upload",
    "write_frame",
]
