#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
OCPM Dataset Module
Assembles the entity catalog, variants, case table and relation fragments
into one dataset document.
"""

import copy
import logging
import time
from typing import Any, Dict, List, Optional

from .catalog import CatalogError
from .config import (
    DDG_TYPE,
    DEFAULT_GENERAL_WINDOW_DAYS,
    DEFAULT_N_CASES,
    DEFAULT_TIME_UNIT,
)

logger = logging.getLogger(__name__)

LAST_STEP_SAVED = "ocpmRelations"
DAY_MILLIS = 24 * 60 * 60 * 1000


def get_section(fragment: Any, key: str) -> List[Any]:
    """
    Pull a relation list out of a fragment.

    Accepts {"ocpmRelations": {key: [...]}}, {key: [...]} or a bare list;
    anything else yields [].
    """
    if not fragment:
        return []
    if isinstance(fragment, list):
        return copy.deepcopy(fragment)
    if isinstance(fragment, dict):
        wrapped = fragment.get("ocpmRelations")
        if isinstance(wrapped, dict) and isinstance(wrapped.get(key), list):
            return copy.deepcopy(wrapped[key])
        if isinstance(fragment.get(key), list):
            return copy.deepcopy(fragment[key])
    return []


def normalize_variants(fragment: Any) -> Dict[str, List[Any]]:
    if not fragment:
        return {"items": [], "randomConfigs": []}
    if isinstance(fragment, list):
        return {"items": list(fragment), "randomConfigs": []}
    if isinstance(fragment, dict):
        inner = fragment.get("variants")
        source = inner if isinstance(inner, dict) else fragment
        return {
            "items": source.get("items") or [],
            "randomConfigs": source.get("randomConfigs") or [],
        }
    return {"items": [], "randomConfigs": []}


def entities_definitions(entities: Dict[str, Any]) -> Dict[str, Any]:
    """Nested or flat entity catalog -> entitiesDefinitions block."""
    defs = entities.get("entitiesDefinitions")
    if not isinstance(defs, dict):
        defs = entities

    def as_list(key):
        value = defs.get(key)
        return value if isinstance(value, list) else []

    return {
        "activities": defs.get("activities"),
        "events": as_list("events"),
        "attributes": as_list("attributes"),
        "objects": as_list("objects"),
    }


def default_general(now_millis: Optional[int] = None) -> Dict[str, Any]:
    now = int(time.time() * 1000) if now_millis is None else now_millis
    return {
        "startDate": now - DEFAULT_GENERAL_WINDOW_DAYS * DAY_MILLIS,
        "endDate": now,
        "timeUnit": DEFAULT_TIME_UNIT,
        "nCases": DEFAULT_N_CASES,
    }


class ObjectNameMapper:
    """Exact-name -> id remapping against the catalog objects."""

    def __init__(self, objects: List[Any]):
        self.ids = set()
        self.by_name: Dict[str, str] = {}
        for obj in objects:
            if not isinstance(obj, dict):
                continue
            if obj.get("id"):
                self.ids.add(obj["id"])
            if obj.get("name") and obj.get("id"):
                self.by_name.setdefault(obj["name"], obj["id"])
        self.remapped = 0

    def __call__(self, value: Any) -> Any:
        if not value or value in self.ids or value not in self.by_name:
            return value
        self.remapped += 1
        return self.by_name[value]


def remap_object_names(events: List[Any], objects: List[Any], attributes: List[Any], mapper: ObjectNameMapper) -> None:
    for ev in events:
        for ob in (ev.get("objects") or []) if isinstance(ev, dict) else []:
            if isinstance(ob, dict) and ob.get("ocpmObjectId"):
                ob["ocpmObjectId"] = mapper(ob["ocpmObjectId"])

    for obj in objects:
        for rel in (obj.get("relations") or []) if isinstance(obj, dict) else []:
            if not isinstance(rel, dict):
                continue
            for field in ("sourceEntityId", "targetEntityId"):
                if rel.get(field):
                    rel[field] = mapper(rel[field])

    for attr in attributes:
        if isinstance(attr, dict) and isinstance(attr.get("targetObjects"), list):
            attr["targetObjects"] = [mapper(x) for x in attr["targetObjects"]]


def assemble_dataset(
    dataset_id: str,
    name: str,
    data_pool: str,
    data_model: str,
    entities: Any,
    variants: Any,
    case_table: Any,
    event_objects: Any,
    object_objects: Any,
    attribute_objects: Any,
    now_millis: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Compose the dataset document.

    Args:
        dataset_id: Dataset identifier (--id or NEW_ID)
        name: Dataset name
        data_pool: Target data pool
        data_model: Target data model
        entities: Entity catalog document
        variants: Variants fragment
        case_table: Case table fragment
        event_objects: Event -> object fragment
        object_objects: Object -> object fragment
        attribute_objects: Attribute -> object fragment
        now_millis: Clock override for the default general window

    Returns:
        Dataset document
    """
    if not isinstance(entities, dict):
        raise CatalogError("Entity catalog must be a JSON object")

    definitions = entities_definitions(entities)
    general = entities.get("general")
    if not isinstance(general, dict) or not general:
        logger.info("No general settings in entity catalog, using default window")
        general = default_general(now_millis)

    ocpm_events = get_section(event_objects, "events")
    ocpm_objects = get_section(object_objects, "objects")
    ocpm_attributes = get_section(attribute_objects, "attributes")

    mapper = ObjectNameMapper(definitions["objects"])
    remap_object_names(ocpm_events, ocpm_objects, ocpm_attributes, mapper)
    if mapper.remapped:
        logger.info(f"  Remapped {mapper.remapped} object names to ids")

    creator = case_table.get("caseTableCreator") if isinstance(case_table, dict) else None
    if not isinstance(creator, dict) or "dimensionList" not in creator:
        creator = case_table if isinstance(case_table, dict) else {}
    dimension_list = creator.get("dimensionList")
    selected = creator.get("selectedDimensions")

    return {
        "lastStepSaved": LAST_STEP_SAVED,
        "dataSetConfig": {
            "id": dataset_id,
            "name": name,
            "ddgType": DDG_TYPE,
            "dataPool": data_pool,
            "dataModel": data_model,
        },
        "general": general,
        "entitiesDefinitions": definitions,
        "variants": normalize_variants(variants),
        "caseTableCreator": {
            "dimensionList": dimension_list if isinstance(dimension_list, list) else [],
            "selectedDimensions": selected if isinstance(selected, list) else [],
        },
        "ocpmRelations": {
            "events": ocpm_events,
            "objects": ocpm_objects,
            "attributes": ocpm_attributes,
        },
    }
