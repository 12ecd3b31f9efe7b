# armory/definitions/item_defs.py
"""
Central definitions for item categories and catalog field names.
"""
from typing import FrozenSet, Tuple

# --- Item Category Constants ---
BOW = "bow"
WAND = "wand"
DAGGER = "dagger"
SPEAR = "spear"
RELIK = "relik"
HELMET = "helmet"
CHESTPLATE = "chestplate"
LEGGINGS = "leggings"
BOOTS = "boots"
RING = "ring"
BRACELET = "bracelet"
NECKLACE = "necklace"

WEAPON_CATEGORIES: Tuple[str, ...] = (BOW, WAND, DAGGER, SPEAR, RELIK)

# --- Catalog Payload Fields ---
NAME_FIELD = "name"
INTERNAL_NAME_FIELD = "internalName"
TYPE_FIELD = "type"

# More specific category fields win over the generic 'type' (e.g. type "weapon", weaponType "bow").
SUBTYPE_FIELDS: Tuple[str, ...] = ("weaponType", "armourType", "armorType", "accessoryType")

# Nested mappings whose numeric values are flattened into an item's stats.
NESTED_STAT_FIELDS: Tuple[str, ...] = ("identifications", "base")

# Numeric fields that describe the item rather than contribute to a build.
NON_STAT_FIELDS: FrozenSet[str] = frozenset({
    NAME_FIELD, INTERNAL_NAME_FIELD, TYPE_FIELD, *SUBTYPE_FIELDS,
    "id", "tier", "rarity", "level", "powderSlots", "dropRestriction",
})
