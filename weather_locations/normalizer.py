"""
Workbook normalizer.

An uploaded workbook carries one sheet per observation day ("Day 1" .. "Day 5").
Every sheet has one row per location with administrative names, coordinates
and that day's weather values. This module folds those rows into one
LocationRecord per location with the day's values in the matching day-slot.

Nothing here touches the database; the output is handed to the merge engine.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence
import io
import logging
import math

from openpyxl import load_workbook
import xlrd

from .records import (
    DAY_SLOTS,
    DailyObservation,
    InvalidCoordinateError,
    LocationKey,
    LocationRecord,
    parse_coordinate,
)

logger = logging.getLogger(__name__)


DEFAULT_DAY_SHEETS = tuple(f"Day {n}" for n in range(1, DAY_SLOTS + 1))

LEGACY_EXTENSIONS = (".xls",)
SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm") + LEGACY_EXTENSIONS

ADMIN_COLUMNS = ("state", "district", "block", "village")
COORD_COLUMNS = ("latitude", "longitude")
WEATHER_COLUMNS = ("rain", "Tmax", "Tmin", "RH", "Wind_Speed")
CANONICAL_COLUMNS = ADMIN_COLUMNS + COORD_COLUMNS + WEATHER_COLUMNS

_COLUMN_BY_TOKEN = {c.casefold(): c for c in CANONICAL_COLUMNS}


class IngestError(RuntimeError):
    """Raised when an uploaded workbook cannot be turned into location records."""
    pass


class UnsupportedFormatError(IngestError):
    pass


class DecodeError(IngestError):
    pass


class EmptyResultError(IngestError):
    pass


def _cell_text(value: Any) -> str:
    """
    Render a loosely typed cell as text.

    openpyxl returns numbers as int/float, so 10.0 becomes "10" and
    13.0337 stays "13.0337" (shortest repr).
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _decimal_text(value: Any) -> str:
    """Weather value as a decimal string; blanks and junk become "0"."""
    text = _cell_text(value)
    # float() accepts "1_000"; a spreadsheet cell like that is junk
    if not text or isinstance(value, bool) or "_" in text:
        return "0"
    try:
        number = float(text)
    except ValueError:
        return "0"
    if not math.isfinite(number):
        return "0"
    return text


def _sheet_token(name: str) -> str:
    return "".join(str(name).split()).casefold()


def normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Reconcile header casing for one row.

    "Latitude", "LATITUDE " and "latitude" all feed the canonical "latitude"
    column. For names and coordinates the exact canonical spelling wins
    whenever that column exists, even if the cell is blank. Weather columns
    take the first non-blank value, canonical spelling first. Columns that
    are missing altogether come back as "".
    """
    exact: Dict[str, List[Any]] = {c: [] for c in CANONICAL_COLUMNS}
    variants: Dict[str, List[Any]] = {c: [] for c in CANONICAL_COLUMNS}
    for header, value in row.items():
        if header is None:
            continue
        stripped = str(header).strip()
        column = _COLUMN_BY_TOKEN.get(stripped.casefold())
        if column is None:
            continue
        (exact if stripped == column else variants)[column].append(value)

    out: Dict[str, Any] = {}
    for column in CANONICAL_COLUMNS:
        if exact[column] and column not in WEATHER_COLUMNS:
            out[column] = exact[column][0]
            continue
        candidates = exact[column] + variants[column]
        out[column] = next((v for v in candidates if _cell_text(v)), "")
    return out


def _observation(day: int, row: Mapping[str, Any]) -> DailyObservation:
    return DailyObservation(
        day=day,
        rain=_decimal_text(row["rain"]),
        tmax=_decimal_text(row["Tmax"]),
        tmin=_decimal_text(row["Tmin"]),
        rh=_decimal_text(row["RH"]),
        wind_speed=_decimal_text(row["Wind_Speed"]),
    )


def normalize_sheets(
    sheets: Mapping[str, Iterable[Mapping[str, Any]]],
    day_sheets: Sequence[str] = DEFAULT_DAY_SHEETS,
) -> List[LocationRecord]:
    """
    Fold per-day sheets into location records.

    The day-slot of a row is the position of its sheet within `day_sheets`
    (first name -> slot 1), not any day column inside the row. Sheet names
    are compared ignoring case and whitespace. Rows with missing or
    out-of-range coordinates are skipped. When the same location appears
    twice for the same day, the later row wins. Locations with no populated
    slot are dropped. Output keeps first-appearance order.
    """
    if len(day_sheets) > DAY_SLOTS:
        raise ValueError(f"At most {DAY_SLOTS} day sheets are supported, got {len(day_sheets)}.")

    by_token: Dict[str, str] = {}
    for name in sheets:
        by_token.setdefault(_sheet_token(name), name)

    identity: Dict[LocationKey, Dict[str, str]] = {}
    slots: Dict[LocationKey, List[Optional[DailyObservation]]] = {}
    skipped = 0

    for index, expected in enumerate(day_sheets):
        day = index + 1
        actual = by_token.get(_sheet_token(expected))
        if actual is None:
            logger.debug("Workbook has no sheet for %r (day %d)", expected, day)
            continue

        for raw in sheets[actual]:
            row = normalize_row(raw)
            try:
                lat = parse_coordinate(row["latitude"], 90.0)
                lng = parse_coordinate(row["longitude"], 180.0)
            except InvalidCoordinateError as e:
                skipped += 1
                logger.debug("Skipping row on sheet %r: %s", actual, e)
                continue

            names = {c: _cell_text(row[c]) for c in ADMIN_COLUMNS}
            key = LocationKey.build(names["state"], names["district"], names["block"], names["village"], lat, lng)
            if key not in identity:
                # names and coordinates are fixed by the first row seen
                identity[key] = {
                    **names,
                    "latitude": _cell_text(row["latitude"]),
                    "longitude": _cell_text(row["longitude"]),
                }
                slots[key] = [None] * DAY_SLOTS
            slots[key][day - 1] = _observation(day, row)

    records = [
        LocationRecord(daily=tuple(slots[key]), **fields)
        for key, fields in identity.items()
        if any(slot is not None for slot in slots[key])
    ]
    logger.debug("Normalized %d location(s), skipped %d row(s)", len(records), skipped)
    return records


def _sheet_rows(rows: Iterator[Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Header row + value rows -> row dicts.

    Fully blank rows are dropped and short rows are padded with "".
    """
    header = next(rows, None) or ()
    columns = [str(h).strip() if h is not None else None for h in header]

    records: List[Dict[str, Any]] = []
    for values in rows:
        if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
            continue
        record: Dict[str, Any] = {}
        for i, column in enumerate(columns):
            if not column or column in record:
                continue
            value = values[i] if i < len(values) else None
            record[column] = "" if value is None else value
        records.append(record)
    return records


def read_workbook(data: bytes, legacy: bool = False) -> Dict[str, List[Dict[str, Any]]]:
    """
    Decode a workbook payload into {sheet name: [row dict, ...]}.

    .xlsx/.xlsm go through openpyxl; legacy .xls (legacy=True) through xlrd.
    The first row of each sheet is the header.
    """
    if legacy:
        book = xlrd.open_workbook(file_contents=data)
        try:
            return {
                sheet.name: _sheet_rows(sheet.row_values(i) for i in range(sheet.nrows))
                for sheet in book.sheets()
            }
        finally:
            book.release_resources()

    wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        return {ws.title: _sheet_rows(ws.iter_rows(values_only=True)) for ws in wb.worksheets}
    finally:
        wb.close()


def normalize_workbook(
    data: bytes,
    file_name: str,
    day_sheets: Sequence[str] = DEFAULT_DAY_SHEETS,
) -> List[LocationRecord]:
    """
    Uploaded file -> list of LocationRecord.

    Raises:
    - UnsupportedFormatError: the file name is not an Excel workbook
    - DecodeError: the bytes could not be read as a workbook
    - EmptyResultError: no row with valid coordinates was found
    """
    name = (file_name or "").strip().lower()
    if not name.endswith(SUPPORTED_EXTENSIONS):
        raise UnsupportedFormatError(
            "Unsupported file format. Please upload an Excel file "
            f"({', '.join(SUPPORTED_EXTENSIONS)})."
        )

    try:
        sheets = read_workbook(data, legacy=name.endswith(LEGACY_EXTENSIONS))
    except Exception as exc:
        raise DecodeError(f"Error processing Excel file: {exc}") from exc

    records = normalize_sheets(sheets, day_sheets)
    if not records:
        raise EmptyResultError(
            "Could not find valid location data in the Excel file. Please ensure it has "
            f"sheets named {', '.join(repr(s) for s in day_sheets)} with latitude and longitude columns."
        )

    logger.info("Parsed %s: %d location(s) from %d sheet(s)", file_name, len(records), len(sheets))
    return records
