"""
Filter and ordering values accepted by repositories.

A predicate is a SQLAlchemy boolean expression (``Truck.is_active == True``),
a callable taking the model class and returning one
(``lambda m: m.truck_number.startswith("T-")``), or a list/tuple of either,
AND-ed together. Predicates always compile into the store-side WHERE clause.
Orderings follow the same shape with column expressions
(``Truck.id``, ``Truck.created_date.desc()``).
"""

import re
from typing import Any, Callable, Optional, Sequence, Type, Union
from sqlalchemy import and_, text
from sqlalchemy.sql import ClauseElement, ColumnElement
from framework.exceptions.errors import ArgumentError

Predicate = Union[
    ColumnElement,
    Callable[[Type[Any]], ColumnElement],
    Sequence[Union[ColumnElement, Callable[[Type[Any]], ColumnElement]]],
]
OrderBy = Union[Any, Callable[[Type[Any]], Any], Sequence[Any]]

_POSITIONAL_PLACEHOLDER = re.compile(r"\{(\d+)\}")


def _resolve(model: Type[Any], value: Any) -> Any:
    if callable(value) and not isinstance(value, ClauseElement) and not hasattr(value, "__clause_element__"):
        return value(model)
    return value


def build_criteria(model: Type[Any], predicate: Optional[Predicate]) -> Optional[ColumnElement]:
    """Turn a predicate value into one WHERE criterion, or None for "all"."""
    if predicate is None:
        return None
    if isinstance(predicate, (list, tuple)):
        clauses = [_resolve(model, p) for p in predicate]
        if not clauses:
            return None
        return clauses[0] if len(clauses) == 1 else and_(*clauses)
    return _resolve(model, predicate)


def resolve_columns(model: Type[Any], selector: Any) -> list:
    """Columns of a projection: one expression, a sequence, or a callable returning either."""
    columns = _resolve(model, selector)
    if isinstance(columns, (list, tuple)):
        return [_resolve(model, c) for c in columns]
    return [columns]


def apply_filter(statement, model: Type[Any], predicate: Optional[Predicate]):
    criteria = build_criteria(model, predicate)
    if criteria is None:
        return statement
    return statement.where(criteria)


def apply_ordering(statement, model: Type[Any], order_by: Optional[OrderBy]):
    if order_by is None:
        return statement
    if isinstance(order_by, (list, tuple)):
        return statement.order_by(*[_resolve(model, o) for o in order_by])
    return statement.order_by(_resolve(model, order_by))


def bind_positional(sql: str, parameters: tuple):
    """Rewrite {0}, {1}... placeholders into bound parameters."""
    binds = {f"p{index}": value for index, value in enumerate(parameters)}

    def _replace(match):
        index = int(match.group(1))
        if index >= len(parameters):
            raise ArgumentError(
                f"SQL references parameter {{{index}}} but only {len(parameters)} were supplied",
                argument="parameters",
            )
        return f":p{index}"

    return text(_POSITIONAL_PLACEHOLDER.sub(_replace, sql)), binds
