"""
Field projection of stored lookup results.
"""

from typing import Iterable, Optional

from ..domain.fields import ALL_FIELDS, FIELD_SCHEMA
from ..domain.models import Location


_ALL = frozenset(ALL_FIELDS)


def selects_all(fields: Optional[Iterable[str]]) -> bool:
    """True for an empty selection or one covering the whole vocabulary."""
    if not fields:
        return True
    return _ALL.issubset(fields)


def project(result: Location, fields: Optional[Iterable[str]]) -> Location:
    """Restrict ``result`` to ``fields``.

    A full selection returns ``result`` itself; anything else yields a new
    Location carrying only the named attributes. Names outside the schema are
    ignored, validation happens before a request reaches the cache.
    """
    if selects_all(fields):
        return result

    values = {}
    for name in fields:
        attribute = FIELD_SCHEMA.get(name)
        if attribute is not None:
            values[attribute] = getattr(result, attribute)
    return Location(**values)
