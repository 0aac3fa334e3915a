"""
Case-table data model.

Dimensions own items and typed column descriptors. Item distributions and
metadata values are aligned with the owning dimension's descriptor lists by
position, so descriptor lists are never reordered once items exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .transforms import match_key, new_id

Number = Union[int, float]


class DistributionType(str, Enum):
    VARIANT = "VARIANT"
    ATTRIBUTE = "ATTRIBUTE"


@dataclass
class Distribution:
    distribution_item_id: str
    value: Optional[Number] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"distributionItemId": self.distribution_item_id, "value": self.value}


@dataclass
class MetadataValue:
    metadata_column_id: str
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"attributeMetadataItemId": self.metadata_column_id, "value": self.value}


@dataclass
class DistributionItem:
    type: DistributionType
    alias: str
    referenced_id: Optional[str] = None
    referenced_item_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    # Worksheet column the descriptor was parsed from; not serialized
    source_column: Optional[int] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "referencedId": self.referenced_id,
            "referencedItemId": self.referenced_item_id,
            "alias": self.alias,
        }


@dataclass
class MetadataColumn:
    name: str
    id: str = field(default_factory=new_id)
    source_column: Optional[int] = field(default=None, compare=False)
    header: Optional[str] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Item:
    value: str
    std_distribution: Optional[Number] = None
    distributions: List[Distribution] = field(default_factory=list)
    attributes_metadata: List[MetadataValue] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "value": self.value,
            "stdDistribution": self.std_distribution,
            "distributions": [d.to_dict() for d in self.distributions],
            "attributesMetadata": [m.to_dict() for m in self.attributes_metadata],
        }


@dataclass
class Dimension:
    name: str
    referenced_id: Optional[str] = None
    default_item: bool = False
    items: List[Item] = field(default_factory=list)
    distribution_items: List[DistributionItem] = field(default_factory=list)
    attribute_metadata_items: List[MetadataColumn] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def find_item(self, key: str) -> Optional[Item]:
        """Return the first item whose match key equals key."""
        for item in self.items:
            if match_key(item.value) == key:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "defaultItem": self.default_item,
            "items": [i.to_dict() for i in self.items],
            "distributionItems": [d.to_dict() for d in self.distribution_items],
            "attributeMetadataItems": [m.to_dict() for m in self.attribute_metadata_items],
            "referencedId": self.referenced_id,
        }
