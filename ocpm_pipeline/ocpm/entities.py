"""
Entity catalog builder: events (PE2), attributes and objects (A2O) and the
general settings block (General).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import ATTRIBUTE_OBJECT_SHEET, EVENT_OBJECT_SHEET, GENERAL_SHEET
from .io import require_sheet
from .transforms import alnum_name, cell, frame_rows, is_blank, is_empty_row, new_id

logger = logging.getLogger(__name__)


class ColumnNotFoundError(ValueError):
    """A required header is absent from a sheet."""


def _header_index(header: List[Any]) -> Dict[str, int]:
    return {str(h).strip().lower(): i for i, h in enumerate(header) if not is_blank(h)}


def build_events(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """
    Build event records from the PE2 sheet.

    The activity column (header "activity", else column A) names the event;
    the automation column (header "automation", else column B) is scaled x100.
    """
    rows = frame_rows(df)
    if not rows:
        return []
    headers = _header_index(rows[0])
    activity_col = headers.get("activity", 0)
    automation_col = headers.get("automation", 1)

    events = []
    for row in rows[1:]:
        if is_empty_row(row):
            continue
        name = alnum_name(cell(row, activity_col))
        if not name:
            continue
        automation = cell(row, automation_col)
        try:
            automation = float(automation) * 100 if not is_blank(automation) else None
        except (TypeError, ValueError):
            logger.warning(f"Non-numeric automation '{automation}' for event '{name}', leaving empty")
            automation = None
        events.append({"id": new_id(), "name": name, "automation": automation})
    return events


def build_attributes_and_objects(df: pd.DataFrame, sheet_name: str = ATTRIBUTE_OBJECT_SHEET):
    """
    Build attribute and object records from the A2O matrix.

    Returns:
        Tuple of (attributes, objects)

    Raises:
        ColumnNotFoundError: when no header cell reads "attribute"
    """
    rows = frame_rows(df)
    header = rows[0] if rows else []
    attribute_col = next(
        (i for i, h in enumerate(header) if not is_blank(h) and str(h).strip().lower() == "attribute"),
        None,
    )
    if attribute_col is None:
        raise ColumnNotFoundError(f"Column 'attribute' not found in sheet '{sheet_name}'")

    attributes = []
    for row in rows[1:]:
        value = cell(row, attribute_col)
        if is_blank(value):
            continue
        attributes.append({
            "id": new_id(),
            "name": alnum_name(str(value).strip()),
            "defaultItem": False,
            "items": [],
            "distributionItems": [],
            "attributeMetadataItems": [],
        })

    objects = []
    for value in header[1:]:
        if is_blank(value):
            continue
        objects.append({"id": new_id(), "name": alnum_name(str(value).strip())})
    return attributes, objects


def _to_millis(value: Any) -> Optional[int]:
    """YYYYMMDD (number or text) -> local-midnight epoch milliseconds."""
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return int(datetime(value.year, value.month, value.day).timestamp() * 1000)
    text = str(int(value)) if isinstance(value, float) else str(value).strip()
    try:
        day = datetime.strptime(text[:8], "%Y%m%d")
    except ValueError:
        logger.warning(f"Unparseable date '{value}' in General sheet")
        return None
    return int(day.timestamp() * 1000)


def build_general(df: Optional[pd.DataFrame]) -> Dict[str, Any]:
    """Read start/end dates, time unit and case count from the first General row."""
    rows = frame_rows(df) if df is not None else []
    if len(rows) < 2:
        return {}
    header = [str(h).strip() if not is_blank(h) else "" for h in rows[0]]
    row = dict(zip(header, rows[1]))

    cases = row.get("Cases")
    unit = row.get("Unit")
    return {
        "startDate": _to_millis(row.get("Start")),
        "endDate": _to_millis(row.get("End")),
        "timeUnit": str(unit).strip().upper() if not is_blank(unit) else None,
        "nCases": int(float(cases)) if not is_blank(cases) else None,
    }


def build_entities(sheets: Dict[str, pd.DataFrame], params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the entity catalog document.

    Args:
        sheets: Raw workbook sheets
        params: Parameters from config.load_params()

    Returns:
        {"general": ..., "entitiesDefinitions": {...}}
    """
    names = (params or {}).get("sheets", {})
    event_sheet = names.get("event_objects", EVENT_OBJECT_SHEET)
    a2o_sheet = names.get("attribute_objects", ATTRIBUTE_OBJECT_SHEET)
    general_sheet = names.get("general", GENERAL_SHEET)

    events = build_events(require_sheet(sheets, event_sheet))
    attributes, objects = build_attributes_and_objects(require_sheet(sheets, a2o_sheet), a2o_sheet)

    if general_sheet not in sheets:
        logger.warning(f"Sheet '{general_sheet}' not found, general settings left empty")
    general = build_general(sheets.get(general_sheet))

    logger.info(f"  Events: {len(events)}, attributes: {len(attributes)}, objects: {len(objects)}")
    return {
        "general": general,
        "entitiesDefinitions": {
            "activities": None,
            "events": events,
            "attributes": attributes,
            "objects": objects,
        },
    }
