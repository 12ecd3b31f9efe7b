# armory/build.py
"""
Turns a finished per-slot selection into resolved items and a stat summary.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Union

from .catalog import Catalog
from .definitions import slots as slot_defs
from .item import ItemRecord
from . import matcher

log = logging.getLogger(__name__)

StatBreakdown = Dict[str, Union[int, float]]


@dataclass
class BuildResult:
    breakdown: StatBreakdown = field(default_factory=dict)
    items: List[ItemRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def add_stats(breakdown: StatBreakdown, item: ItemRecord):
    """Sums an item's numeric stats into the breakdown."""
    for stat_name, value in item.stats.items():
        breakdown[stat_name] = breakdown.get(stat_name, 0) + value


class BuildAssembler:
    """Deterministic for a given catalog snapshot and selection."""

    def assemble(self, catalog: Optional[Catalog], selection: Mapping[str, str]) -> BuildResult:
        # Unknown slots are a configuration bug, fail before doing any work.
        for slot_id in selection:
            slot_defs.get_slot(slot_id)

        result = BuildResult()
        for slot in slot_defs.ALL_SLOTS:
            text = (selection.get(slot.slot_id) or "").strip()
            if not text:
                continue
            found = matcher.exact_matches(catalog, matcher.normalize_query(text), slot.categories)
            if not found:
                result.warnings.append(f"unresolved slot: {slot.slot_id}")
                log.debug("Could not resolve %r for slot %s.", text, slot.slot_id)
                continue
            item = found[0]
            result.items.append(item)
            add_stats(result.breakdown, item)
        return result
