# armory/search.py
"""
Debounces raw per-slot input into settled queries and applies match results
in sequence order, so a slow, stale lookup can never overwrite a newer one.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from .definitions import slots as slot_defs
from .errors import CatalogUnavailable
from . import matcher

if TYPE_CHECKING:
    from .catalog import CatalogCache
    from .events import EventBus
    from .persistence import PersistenceAdapter

log = logging.getLogger(__name__)

ResultListener = Callable[[str, "SearchResult"], None]


class Validity(Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"   # empty input, or no catalog to check against


class SearchState(Enum):
    IDLE = auto()
    PENDING = auto()
    SETTLED = auto()
    SUPERSEDED = auto()


@dataclass(frozen=True)
class Query:
    slot_id: str
    raw_text: str
    normalized_text: str
    sequence: int


@dataclass(frozen=True)
class SearchResult:
    validity: Validity = Validity.UNKNOWN
    suggestions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"validity": self.validity.value, "suggestions": list(self.suggestions)}


class SlotSearch:
    """Debounce and sequencing state of a single slot."""

    def __init__(self, definition: slot_defs.SlotDefinition):
        self.definition = definition
        self.state = SearchState.IDLE
        self.timer: Optional[asyncio.Task] = None
        self.last_sequence = 0      # last sequence number handed out
        self.applied_sequence = 0   # highest sequence whose result was applied
        self.result = SearchResult()
        self.waiters: List[asyncio.Future] = []


class SearchCoordinator:
    """
    Per-slot state machine: IDLE -> PENDING -> (SETTLED | SUPERSEDED).

    Every keystroke cancels the slot's pending debounce task. Once a task
    survives the quiet window it takes the next sequence number; its result
    is only applied if no higher sequence has been applied in the meantime.
    """

    def __init__(
        self,
        cache: "CatalogCache",
        *,
        persistence: Optional["PersistenceAdapter"] = None,
        events: Optional["EventBus"] = None,
        listener: Optional[ResultListener] = None,
        debounce_seconds: float = 0.3,
        suggestion_limit: int = 5,
        match=matcher.match,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cache = cache
        self.persistence = persistence
        self.events = events
        self.listener = listener
        self.debounce_seconds = debounce_seconds
        self.suggestion_limit = suggestion_limit
        self._match = match
        self._sleep = sleep

        self.selection: Dict[str, str] = {}
        self._slots: Dict[str, SlotSearch] = {}
        self._tasks: Set[asyncio.Task] = set()

    # --- Public API ---

    def on_input(self, slot_id: str, raw_text: str):
        """Handles one raw input event for a slot. Must be called from the event loop."""
        slot = self._slot(slot_id)
        self.selection[slot_id] = raw_text
        self._cancel_timer(slot)

        normalized = matcher.normalize_query(raw_text)
        if not normalized:
            # Anything still in flight for this slot is now stale.
            slot.last_sequence += 1
            slot.applied_sequence = slot.last_sequence
            slot.state = SearchState.IDLE
            waiters, slot.waiters = slot.waiters, []
            self._publish(slot, SearchResult())
            self._resolve(waiters, slot.result)
            self._spawn(self._save_selection())
            return

        slot.state = SearchState.PENDING
        slot.timer = self._spawn(self._debounce(slot, raw_text, normalized))

    async def search(self, slot_id: str, raw_text: str) -> SearchResult:
        """
        Feeds one input and waits for the result of the query it produces.
        If later input supersedes it inside the quiet window, the caller gets
        the result of the query that replaced it.
        """
        slot = self._slot(slot_id)
        waiter = asyncio.get_running_loop().create_future()
        slot.waiters.append(waiter)
        self.on_input(slot_id, raw_text)
        return await waiter

    def result(self, slot_id: str) -> SearchResult:
        """The result currently shown for a slot."""
        return self._slot(slot_id).result

    def state(self, slot_id: str) -> SearchState:
        return self._slot(slot_id).state

    def load_selection(self, selection: Dict[str, str]):
        """Seeds the selection (e.g. a saved build) without searching."""
        for slot_id, text in selection.items():
            if slot_defs.is_valid_slot(slot_id):
                self.selection[slot_id] = text
            else:
                log.warning("Ignoring saved text for unknown slot %r.", slot_id)

    async def close(self):
        """Cancels every pending debounce and in-flight match."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for slot in self._slots.values():
            for waiter in slot.waiters:
                waiter.cancel()
            slot.waiters.clear()

    # --- Internals ---

    def _slot(self, slot_id: str) -> SlotSearch:
        slot = self._slots.get(slot_id)
        if slot is None:
            slot = SlotSearch(slot_defs.get_slot(slot_id))
            self._slots[slot_id] = slot
        return slot

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_timer(self, slot: SlotSearch):
        if slot.timer and not slot.timer.done():
            slot.timer.cancel()
            slot.state = SearchState.SUPERSEDED
            log.debug("Debounce for slot %s superseded.", slot.definition.slot_id)
        slot.timer = None

    async def _debounce(self, slot: SlotSearch, raw_text: str, normalized: str):
        await self._sleep(self.debounce_seconds)

        # The quiet window passed: from here on this is a real query and can
        # no longer be cancelled by typing, only outranked.
        slot.timer = None
        slot.last_sequence += 1
        query = Query(slot.definition.slot_id, raw_text, normalized, slot.last_sequence)
        # Callers waiting on this text, or on text it superseded, now belong to this query.
        waiters, slot.waiters = slot.waiters, []
        try:
            await self._settle(slot, query, waiters)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

    async def _settle(self, slot: SlotSearch, query: Query, waiters: List[asyncio.Future]):
        try:
            catalog = await self.cache.snapshot()
        except CatalogUnavailable:
            result = SearchResult(Validity.UNKNOWN)
        else:
            found = self._match(catalog, query.normalized_text, slot.definition.categories)
            if found and matcher.is_exact(found[0], query.raw_text):
                validity = Validity.VALID
            else:
                validity = Validity.INVALID
            result = SearchResult(validity, matcher.suggestion_names(found, self.suggestion_limit))

        # A stale query still answers its own callers; it just is not shown.
        self._resolve(waiters, result)
        if query.sequence <= slot.applied_sequence:
            log.debug(
                "Dropping stale result #%d for slot %s (already showing #%d).",
                query.sequence, query.slot_id, slot.applied_sequence,
            )
            self._emit("search.superseded", slot=query.slot_id, sequence=query.sequence)
            return

        slot.applied_sequence = query.sequence
        if slot.timer is None:
            slot.state = SearchState.SETTLED
        self._publish(slot, result)
        self._emit(
            "search.settled",
            slot=query.slot_id,
            sequence=query.sequence,
            validity=result.validity.value,
            suggestions=len(result.suggestions),
        )
        await self._save_selection()

    def _publish(self, slot: SlotSearch, result: SearchResult):
        slot.result = result
        if self.listener:
            try:
                self.listener(slot.definition.slot_id, result)
            except Exception:
                log.exception("Search listener failed for slot %s.", slot.definition.slot_id)

    @staticmethod
    def _resolve(waiters: List[asyncio.Future], result: SearchResult):
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(result)

    async def _save_selection(self):
        if self.persistence:
            await self.persistence.save_build(dict(self.selection))

    def _emit(self, event: str, **fields):
        if self.events:
            self.events.emit(event, **fields)
