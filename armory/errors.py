# armory/errors.py
"""
Custom errors for the armory.
CatalogCache and PersistenceAdapter classify and absorb most of these;
only InvalidSlotError is expected to reach callers.
"""


class ArmoryError(Exception):
    """Base error for the armory."""
    pass


# --- Catalog ---

class NetworkError(ArmoryError):
    """A catalog fetch failed. Transient, retried by the catalog cache."""
    pass


class MalformedCatalogError(NetworkError):
    """The catalog endpoint answered with a payload of the wrong shape."""
    pass


class CatalogUnavailable(ArmoryError):
    """Every refresh attempt failed and no catalog could be loaded."""
    pass


# --- Configuration ---

class InvalidSlotError(ArmoryError, KeyError):
    """An unknown slot id was used. Indicates a configuration bug."""

    def __init__(self, slot_id: str):
        super().__init__(slot_id)
        self.slot_id = slot_id

    def __str__(self) -> str:
        return f"unknown slot: {self.slot_id!r}"


# --- Persistence ---

class PersistenceError(ArmoryError):
    """The durable key/value store could not be read or written."""
    pass
