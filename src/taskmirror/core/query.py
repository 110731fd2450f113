# src/taskmirror/core/query.py

from __future__ import annotations

"""
Conjunctive query predicates.

A query is a list of Predicate; a document matches when every predicate
matches. Missing fields never match anything except "!=".
"""

import operator
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Callable

_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, allowed: value in allowed,
}


@dataclass(frozen=True, slots=True)
class Predicate:
    field: str
    op: str
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data or data[self.field] is None:
            return self.op == "!=" and self.value is not None
        try:
            return bool(_OPS[self.op](data[self.field], self.value))
        except TypeError:
            # Range comparison across incompatible types (e.g. str < float).
            return False


def where(field: str, op: str, value: Any) -> Predicate:
    if op not in _OPS:
        raise ValueError(f"Unsupported operator: {op!r}")
    if op == "in":
        value = tuple(value)
    return Predicate(field=field, op=op, value=value)


def matches_all(data: dict[str, Any], predicates: Iterable[Predicate]) -> bool:
    return all(p.matches(data) for p in predicates)
