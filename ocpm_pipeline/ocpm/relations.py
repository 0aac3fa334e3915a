#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM Relations Module
Builds the ocpmRelations fragments from the matrix sheets:
  - attribute -> object (A2O)
  - event -> object (PE2)
  - object -> object (O2O)

Each builder seeds records from the entity catalog, reads one matrix sheet,
and maps object names to catalog object ids (unmatched names are kept and
reported).
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .catalog import EntityCatalog, ReconciliationReport
from .config import (
    ATTRIBUTE_OBJECT_SHEET,
    EVENT_OBJECT_SHEET,
    MAX_OBJECT_RANGE,
    OBJECT_OBJECT_SHEET,
)
from .io import EmptySheetError, require_sheet
from .transforms import (
    activity_key,
    alnum_name,
    cell,
    cell_text,
    frame_rows,
    is_identifier,
    match_key,
    new_id,
    relation_key,
    tidy_number,
    to_float,
)

logger = logging.getLogger(__name__)

HAS_ONE = "HAS_ONE"
HAS_MANY = "HAS_MANY"


def _uniq(seq: List[Any]) -> List[Any]:
    seen = set()
    ordered = []
    for val in seq:
        if val in seen:
            continue
        seen.add(val)
        ordered.append(val)
    return ordered


def _header_names(header: List[Any]) -> List[str]:
    return [cell_text(h).strip() for h in header]


def _is_flag(value: Any, flag: str) -> bool:
    return cell_text(value).strip().lower() == flag


def _sheet_rows(sheets: Dict[str, pd.DataFrame], sheet_name: str) -> List[List[Any]]:
    rows = frame_rows(require_sheet(sheets, sheet_name))
    if not rows:
        raise EmptySheetError(f"Sheet '{sheet_name}' appears to be empty")
    return rows


# ---------------------------------------------------------------------------
# ATTRIBUTE -> OBJECT
# ---------------------------------------------------------------------------

def build_attribute_objects(
    sheets: Dict[str, pd.DataFrame],
    catalog: EntityCatalog,
    sheet_name: str = ATTRIBUTE_OBJECT_SHEET,
) -> Tuple[Dict[str, Any], ReconciliationReport]:
    """
    Map catalog attributes to the objects they are attached to.

    A2O layout: column A names the attribute, header cells B.. name objects,
    a cell equal to 1 attaches the column's object to the row's attribute.
    """
    report = ReconciliationReport()
    attributes = [
        {"id": a.id, "name": a.name, "targetObjects": [], "available": True}
        for a in catalog.attributes
    ]
    by_key: Dict[str, Dict[str, Any]] = {}
    for attr in attributes:
        by_key.setdefault(match_key(attr["name"]), attr)

    rows = _sheet_rows(sheets, sheet_name)
    headers = _header_names(rows[0])
    for row in rows[1:]:
        key = match_key(cell(row, 0))
        if not key:
            continue
        entry = by_key.get(key)
        if entry is None:
            logger.debug(f"A2O row '{cell(row, 0)}' matches no catalog attribute")
            continue
        targets = [
            headers[j]
            for j in range(1, min(len(row), len(headers)))
            if headers[j] and _is_flag(row[j], "1")
        ]
        entry["targetObjects"] = _uniq(targets)
        entry["available"] = len(entry["targetObjects"]) > 0

    object_index = catalog.index("objects", match_key)
    for attr in attributes:
        replaced = []
        for name in attr["targetObjects"]:
            found = object_index.get(match_key(name))
            if found:
                replaced.append(found)
            else:
                report.add("object", name)
                replaced.append(name)
        attr["targetObjects"] = _uniq(replaced)

    return {"ocpmRelations": {"attributes": attributes}}, report


# ---------------------------------------------------------------------------
# EVENT -> OBJECT
# ---------------------------------------------------------------------------

def build_event_objects(
    sheets: Dict[str, pd.DataFrame],
    catalog: EntityCatalog,
    sheet_name: str = EVENT_OBJECT_SHEET,
) -> Tuple[Dict[str, Any], ReconciliationReport]:
    """
    Attach object cardinalities to catalog events.

    PE2 layout: column A names the activity, column B is automation, header
    cells C.. name objects. A positive cell adds the object with range
    min/max equal to the value (capped at 9); 1 is HAS_ONE, more is HAS_MANY.
    """
    report = ReconciliationReport()
    events = [
        {"id": e.id, "name": re.sub(r"\s+", "", e.name), "objects": []}
        for e in catalog.events
    ]
    by_key: Dict[str, Dict[str, Any]] = {}
    for ev in events:
        by_key.setdefault(activity_key(ev["name"]), ev)

    rows = _sheet_rows(sheets, sheet_name)
    headers = _header_names(rows[0])
    for row in rows[1:]:
        key = activity_key(cell(row, 0))
        event = by_key.get(key) if key else None
        if event is None:
            continue
        for c in range(2, len(row)):
            value = to_float(row[c])
            if value is None or value <= 0:
                continue
            header = cell(headers, c)
            if not header:
                logger.debug(f"PE2 column {c + 1} has a value but no object header, skipping")
                continue
            range_val = tidy_number(min(value, MAX_OBJECT_RANGE))
            event["objects"].append({
                "id": new_id(),
                "ocpmObjectId": header,
                "type": HAS_ONE if range_val == 1 else HAS_MANY,
                "rangeMin": range_val,
                "rangeMax": range_val,
            })

    object_index = catalog.index("objects", activity_key)
    if not object_index:
        logger.warning("No objects in entity catalog, skipping ocpmObjectId->ID replacement")
        return {"ocpmRelations": {"events": events}}, report

    for ev in events:
        for obj in ev["objects"]:
            current = obj["ocpmObjectId"]
            if is_identifier(current):
                continue
            found = object_index.get(activity_key(current))
            if found:
                obj["ocpmObjectId"] = found
            else:
                report.add("object", current)
                logger.debug(f"No object ID for header '{current}' (event: {ev['name']}), keeping original")

    return {"ocpmRelations": {"events": events}}, report


# ---------------------------------------------------------------------------
# OBJECT -> OBJECT
# ---------------------------------------------------------------------------

def _find_object(by_key: Dict[str, Dict[str, Any]], raw: Any) -> Optional[Dict[str, Any]]:
    key = relation_key(raw)
    if not key:
        return None
    found = by_key.get(key)
    if found is not None:
        return found
    soft = alnum_name(key)
    for k, obj in by_key.items():
        if alnum_name(k) == soft:
            return obj
    return None


def build_object_objects(
    sheets: Dict[str, pd.DataFrame],
    catalog: EntityCatalog,
    sheet_name: str = OBJECT_OBJECT_SHEET,
) -> Tuple[Dict[str, Any], ReconciliationReport]:
    """
    Build object-to-object relations.

    O2O layout: column A names the owning object; in its row, cells "1" mark
    source columns and "n" mark target columns. Every source x target pair
    becomes one HAS_MANY relation.
    """
    report = ReconciliationReport()
    objects = [
        {"id": o.id, "items": [], "relations": [], "name": o.name}
        for o in catalog.objects
    ]
    by_key: Dict[str, Dict[str, Any]] = {}
    for obj in objects:
        by_key.setdefault(relation_key(obj["name"]), obj)
    seen_by_obj = {obj["id"]: set() for obj in objects}

    rows = _sheet_rows(sheets, sheet_name)
    headers = _header_names(rows[0])
    for row in rows[1:]:
        obj = _find_object(by_key, cell(row, 0))
        if obj is None:
            continue

        sources, targets = [], []
        for c in range(1, len(headers)):
            if not headers[c]:
                continue
            if _is_flag(cell(row, c), "1"):
                sources.append(headers[c])
            elif _is_flag(cell(row, c), "n"):
                targets.append(headers[c])
        if not sources or not targets:
            continue

        seen = seen_by_obj[obj["id"]]
        for s in sources:
            for t in targets:
                key = (s, t, HAS_MANY)
                if key in seen:
                    continue
                obj["relations"].append({
                    "id": new_id(),
                    "sourceEntityId": s,
                    "targetEntityId": t,
                    "cardinality": HAS_MANY,
                })
                seen.add(key)

    object_index = catalog.index("objects", relation_key)
    for obj in objects:
        for rel in obj["relations"]:
            for field in ("sourceEntityId", "targetEntityId"):
                found = object_index.get(relation_key(rel[field]))
                if found:
                    rel[field] = found
                else:
                    report.add("object", rel[field])

    return {"ocpmRelations": {"objects": objects}}, report
