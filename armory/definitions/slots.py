# armory/definitions/slots.py
"""
Central definition for all loadout equipment slots.
This provides a canonical, ordered list for building and saving a loadout.
"""
from dataclasses import dataclass
from typing import Dict, Tuple

from . import item_defs
from ..errors import InvalidSlotError


@dataclass(frozen=True)
class SlotDefinition:
    slot_id: str
    categories: Tuple[str, ...]

    def __post_init__(self):
        if not self.categories:
            raise ValueError(f"Slot '{self.slot_id}' must accept at least one category.")


# --- SLOT CONSTANTS ---
WEAPON = "weapon"
HELMET = "helmet"
CHESTPLATE = "chestplate"
LEGGINGS = "leggings"
BOOTS = "boots"
RING = "ring"
BRACELET = "bracelet"
NECKLACE = "necklace"

# --- CANONICAL LIST OF ALL SLOTS ---
# The order dictates the order items are resolved and listed in a build.
ALL_SLOTS: Tuple[SlotDefinition, ...] = (
    SlotDefinition(WEAPON, item_defs.WEAPON_CATEGORIES),
    SlotDefinition(HELMET, (item_defs.HELMET,)),
    SlotDefinition(CHESTPLATE, (item_defs.CHESTPLATE,)),
    SlotDefinition(LEGGINGS, (item_defs.LEGGINGS,)),
    SlotDefinition(BOOTS, (item_defs.BOOTS,)),
    SlotDefinition(RING, (item_defs.RING,)),
    SlotDefinition(BRACELET, (item_defs.BRACELET,)),
    SlotDefinition(NECKLACE, (item_defs.NECKLACE,)),
)

_SLOTS_BY_ID: Dict[str, SlotDefinition] = {slot.slot_id: slot for slot in ALL_SLOTS}


def is_valid_slot(slot_id: str) -> bool:
    """Checks if a given slot id is a defined equipment slot."""
    return slot_id in _SLOTS_BY_ID


def get_slot(slot_id: str) -> SlotDefinition:
    """Returns the slot definition, raising InvalidSlotError for unknown ids."""
    try:
        return _SLOTS_BY_ID[slot_id]
    except KeyError:
        raise InvalidSlotError(slot_id) from None


def categories_for(slot_id: str) -> Tuple[str, ...]:
    return get_slot(slot_id).categories
