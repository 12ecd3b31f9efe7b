# armory/matcher.py
"""
Resolves a query against the categories a slot accepts.
Pure functions over a Catalog snapshot: no I/O and no state.
"""
from typing import Iterable, List, Optional, Sequence, Tuple

import config
from .catalog import Catalog
from .item import ItemRecord


def normalize_query(text: str) -> str:
    """Trims and case-folds raw input."""
    return text.strip().casefold()


def candidates(catalog: Optional[Catalog], categories: Sequence[str]) -> List[ItemRecord]:
    """All items of the given categories, in category order then catalog order."""
    if catalog is None:
        return []
    pool: List[ItemRecord] = []
    for category in categories:
        pool.extend(catalog.category_items(category))
    return pool


def exact_matches(catalog: Optional[Catalog], normalized_query: str, categories: Sequence[str]) -> Tuple[ItemRecord, ...]:
    if len(normalized_query) < config.MIN_QUERY_LENGTH:
        return ()
    return tuple(item for item in candidates(catalog, categories) if item.folded_name == normalized_query)


def match(catalog: Optional[Catalog], normalized_query: str, categories: Sequence[str]) -> Tuple[ItemRecord, ...]:
    """
    Returns the exact name matches if there are any, otherwise every item
    whose name contains the query. Queries shorter than MIN_QUERY_LENGTH
    match nothing. Callers truncate to their display limit.
    """
    if len(normalized_query) < config.MIN_QUERY_LENGTH:
        return ()
    pool = candidates(catalog, categories)
    exact = tuple(item for item in pool if item.folded_name == normalized_query)
    if exact:
        return exact
    return tuple(item for item in pool if normalized_query in item.folded_name)


def is_exact(item: ItemRecord, raw_text: str) -> bool:
    return item.folded_name == normalize_query(raw_text)


def suggestion_names(items: Iterable[ItemRecord], limit: int = config.SUGGESTION_LIMIT) -> Tuple[str, ...]:
    names: List[str] = []
    for item in items:
        if len(names) >= limit:
            break
        names.append(item.name)
    return tuple(names)
