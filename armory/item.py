# armory/item.py
"""
Represents a single catalog item and normalizes the raw catalog payload.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Any, Optional, List, Mapping, Union

from .definitions import item_defs
from .errors import MalformedCatalogError

log = logging.getLogger(__name__)

Number = Union[int, float]


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a stat
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class ItemRecord:
    """
    An immutable catalog entry: its name, its category and its numeric stats.
    """
    name: str
    category: str
    stats: Mapping[str, Number] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the stats mapping so a fetched record can never change.
        object.__setattr__(self, "category", self.category.lower())
        object.__setattr__(self, "stats", MappingProxyType(dict(self.stats)))

    @property
    def folded_name(self) -> str:
        return self.name.casefold()

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "category": self.category, "stats": dict(self.stats)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemRecord":
        """Rebuilds a record stored with to_dict()."""
        stats = data.get("stats") or {}
        return cls(
            name=str(data["name"]),
            category=str(data["category"]),
            stats={k: v for k, v in stats.items() if _is_number(v)},
        )

    @classmethod
    def from_payload(cls, raw: Dict[str, Any], key: Optional[str] = None) -> Optional["ItemRecord"]:
        """
        Builds a record from one item object of the remote catalog.
        Returns None if the object has no usable name or category.
        """
        name = raw.get(item_defs.NAME_FIELD) or key or raw.get(item_defs.INTERNAL_NAME_FIELD)
        category = _extract_category(raw)
        if not isinstance(name, str) or not name.strip() or not category:
            return None
        return cls(name=name.strip(), category=category, stats=_extract_stats(raw))

    def __hash__(self) -> int:
        return hash((self.name, self.category))

    def __repr__(self) -> str:
        return f"<ItemRecord {self.name!r} ({self.category})>"


def _extract_category(raw: Dict[str, Any]) -> Optional[str]:
    for field_name in (*item_defs.SUBTYPE_FIELDS, item_defs.TYPE_FIELD):
        value = raw.get(field_name)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return None


def _extract_stats(raw: Dict[str, Any]) -> Dict[str, Number]:
    """Collects top-level numeric fields plus the numeric parts of nested stat blocks."""
    stats: Dict[str, Number] = {}
    for stat_name, value in raw.items():
        if stat_name in item_defs.NON_STAT_FIELDS:
            continue
        if _is_number(value):
            stats[stat_name] = value

    for block_name in item_defs.NESTED_STAT_FIELDS:
        block = raw.get(block_name)
        if not isinstance(block, dict):
            continue
        for stat_name, value in block.items():
            # Ranged identifications look like {"min": 3, "raw": 5, "max": 7}
            if isinstance(value, dict):
                value = value.get("raw")
            if _is_number(value):
                stats[stat_name] = value
    return stats


def normalize_payload(payload: Any) -> List[ItemRecord]:
    """
    Turns either catalog shape (a list of items, or a name -> item mapping)
    into one ordered list of ItemRecords.
    """
    if isinstance(payload, list):
        entries = [(None, raw) for raw in payload]
    elif isinstance(payload, dict):
        entries = list(payload.items())
    else:
        raise MalformedCatalogError(f"Catalog payload must be a list or an object, got {type(payload).__name__}.")

    records: List[ItemRecord] = []
    skipped = 0
    for key, raw in entries:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        record = ItemRecord.from_payload(raw, key if isinstance(key, str) else None)
        if record is None:
            skipped += 1
            continue
        records.append(record)

    if skipped:
        log.warning("Skipped %d catalog entries with no usable name or type.", skipped)
    return records
