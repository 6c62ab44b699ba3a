"""Coercion of loosely typed list fields from YAML and JSON documents."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


def string_list(value: object, limit: int | None = None) -> list[str] | None:
    """Return the scalar members of a list as strings, capped at ``limit``.

    Numbers are kept as their text form so ``labels: [123]`` survives a
    YAML 1.2 load. Booleans, ``None`` and nested containers are dropped.
    Non-list input yields ``None`` so callers can apply their own default.

    Examples
    --------
    >>> string_list(["a", 1, None, "b"], 10)
    ['a', '1', 'b']

    """
    if not isinstance(value, list):
        return None
    members = [
        str(entry)
        for entry in value
        if isinstance(entry, str | int | float) and not isinstance(entry, bool)
    ]
    return members if limit is None else members[:limit]


def non_list_fields(config: cabc.Mapping[str, object], *keys: str) -> list[str]:
    """Return the ``keys`` set in ``config`` to a value that is not a list."""
    return [
        key
        for key in keys
        if config.get(key) is not None and not isinstance(config.get(key), list)
    ]
