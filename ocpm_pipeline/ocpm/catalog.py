"""
Read-only catalog lookups.

Catalogs are parsed once at pipeline start into frozen structures whose name
indexes are exposed as MappingProxyType views; resolution stages only read
them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .transforms import match_key

logger = logging.getLogger(__name__)

KeyFn = Callable[[Any], str]


class CatalogError(ValueError):
    """The entity catalog does not have the structure a lookup needs."""


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    name: str


def _entries(records: Iterable[Any], kind: str) -> Tuple[CatalogEntry, ...]:
    out: List[CatalogEntry] = []
    for rec in records:
        if not isinstance(rec, dict) or rec.get("id") in (None, "") or rec.get("name") is None:
            logger.debug(f"Skipping malformed {kind} record: {rec!r}")
            continue
        out.append(CatalogEntry(id=str(rec["id"]), name=str(rec["name"])))
    return tuple(out)


def build_name_index(entries: Iterable[CatalogEntry], key: KeyFn = match_key, kind: str = "entry") -> Mapping[str, str]:
    """
    Build a read-only key -> id index.

    First match wins when two names share a key; the collision is logged.
    """
    index: Dict[str, str] = {}
    for entry in entries:
        k = key(entry.name)
        if not k:
            continue
        if k in index:
            logger.debug(f"Catalog {kind} name collision on '{entry.name}', keeping {index[k]}")
            continue
        index[k] = entry.id
    return MappingProxyType(index)


@dataclass(frozen=True)
class EntityCatalog:
    attributes: Tuple[CatalogEntry, ...] = ()
    events: Tuple[CatalogEntry, ...] = ()
    objects: Tuple[CatalogEntry, ...] = ()
    general: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    attribute_index: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_document(cls, document: Any) -> "EntityCatalog":
        """
        Parse an entity catalog document.

        Lists are read from the entitiesDefinitions wrapper when present,
        otherwise from the top level. Missing lists are empty; a list-valued
        key holding anything else is fatal.
        """
        if not isinstance(document, dict):
            raise CatalogError("Entity catalog must be a JSON object")
        wrapper = document.get("entitiesDefinitions")
        defs = wrapper if isinstance(wrapper, dict) else document

        parsed: Dict[str, Tuple[CatalogEntry, ...]] = {}
        for kind in ("attributes", "events", "objects"):
            records = defs.get(kind)
            if records is None:
                records = []
            if not isinstance(records, list):
                raise CatalogError(f"Entity catalog '{kind}' must be a list, got {type(records).__name__}")
            parsed[kind] = _entries(records, kind)

        general = document.get("general")
        return cls(
            attributes=parsed["attributes"],
            events=parsed["events"],
            objects=parsed["objects"],
            general=MappingProxyType(dict(general) if isinstance(general, dict) else {}),
            attribute_index=build_name_index(parsed["attributes"], match_key, "attribute"),
        )

    def index(self, kind: str, key: KeyFn = match_key) -> Mapping[str, str]:
        """Build a name index over attributes, events or objects with a given key."""
        entries = getattr(self, kind, None)
        if entries is None:
            raise CatalogError(f"Unknown catalog list: {kind}")
        return build_name_index(entries, key, kind.rstrip("s"))


@dataclass(frozen=True)
class VariantCatalog:
    groups: Tuple[CatalogEntry, ...] = ()
    group_index: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_document(cls, document: Any) -> Optional["VariantCatalog"]:
        """
        Parse a variant catalog of shape {"groups": [...]}; nested "groups"
        lists inside a group are flattened. Returns None when the shape does
        not match.
        """
        if not isinstance(document, dict) or not isinstance(document.get("groups"), list):
            return None
        records: List[Any] = []
        _collect_groups(document["groups"], records)
        groups = _entries(records, "variant group")
        return cls(groups=groups, group_index=build_name_index(groups, match_key, "variant group"))


def _collect_groups(groups: List[Any], out: List[Any]) -> None:
    for group in groups:
        out.append(group)
        if isinstance(group, dict) and isinstance(group.get("groups"), list):
            _collect_groups(group["groups"], out)


@dataclass
class ReconciliationReport:
    """Names left unresolved, per reference kind, in first-seen order."""

    unresolved: Dict[str, List[str]] = field(default_factory=dict)

    def add(self, kind: str, name: Any) -> None:
        bucket = self.unresolved.setdefault(kind, [])
        value = "" if name is None else str(name)
        if value not in bucket:
            bucket.append(value)

    def count(self, kind: Optional[str] = None) -> int:
        if kind is not None:
            return len(self.unresolved.get(kind, []))
        return sum(len(v) for v in self.unresolved.values())

    def log_summary(self, sample_size: int = 10) -> None:
        if not self.count():
            logger.info("All catalog references resolved")
            return
        for kind, names in self.unresolved.items():
            if not names:
                continue
            sample = ", ".join(names[:sample_size])
            more = f" (+{len(names) - sample_size} more)" if len(names) > sample_size else ""
            logger.warning(f"Unresolved {kind} references: {len(names)} -> {sample}{more}")
