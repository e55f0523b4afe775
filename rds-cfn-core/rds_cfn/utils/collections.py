"""
Tools to analyze and manipulate python collections (dicts, lists, sets).
"""

from typing import Dict, Iterable, Iterator, List, TypeVar

ItemType = TypeVar("ItemType")


def remove_none_values_from_dict(dict: Dict) -> Dict:
    return {k: v for (k, v) in dict.items() if v is not None}


def select_attributes(obj: Dict, attributes: List[str]) -> Dict:
    """Select a subset of attributes from the given dict (returns a copy)"""
    attributes = attributes if isinstance(attributes, list) else [attributes]
    return {k: v for k, v in obj.items() if k in attributes}


def chunked(items: Iterable[ItemType], size: int) -> Iterator[List[ItemType]]:
    """
    Splits the given items into consecutive lists of at most ``size`` elements.

    >>> list(chunked([1, 2, 3, 4, 5], 2))
    [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"Invalid chunk size: {size}")
    chunk = []
    for item in items:
        chunk.append(item)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk
