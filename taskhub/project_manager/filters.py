"""
Filter vocabulary understood by the repositories.

A filter is a mapping of field name to match. A plain value means equality;
the classes below cover the other cases. ``AnyOf`` combines whole filters
with OR and may be used in place of a mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Collection, Mapping, Union


@dataclass(frozen=True)
class In:
    """Field value is one of ``values``."""

    values: Collection[Any]


@dataclass(frozen=True)
class Exists:
    """Field is set (``True``) or null (``False``)."""

    present: bool = True


@dataclass(frozen=True)
class Contains:
    """Collection relationship holds the entity with this id."""

    id: str


@dataclass(frozen=True)
class AnyOf:
    """At least one of the filters matches."""

    filters: tuple[Mapping[str, Any], ...]

    def __init__(self, *filters: Mapping[str, Any]):
        object.__setattr__(self, "filters", tuple(filters))


Filter = Union[Mapping[str, Any], AnyOf]
