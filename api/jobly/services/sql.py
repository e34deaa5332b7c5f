"""Parameterized SQL fragments built from sparse request payloads.

Both translators are pure: they never touch the database and never place a
caller-supplied value into SQL text. Values travel in ``params``/``values``
and are bound positionally to the ``$n`` placeholders asyncpg understands.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jobly.services.errors import (
    InvalidFilterValueError,
    NoFieldsToUpdateError,
    RepositoryValidationError,
    UnrecognizedFilterError,
)

JOB_FILTER_KEYS = ("title", "minSalary", "hasEquity")
SQL_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
# salary is an int4 column.
INT4_MIN = -(2**31)
INT4_MAX = 2**31 - 1


@dataclass(slots=True, frozen=True)
class SetClause:
    sql: str
    values: list[Any]

    @property
    def next_placeholder(self) -> str:
        return f"${len(self.values) + 1}"


@dataclass(slots=True, frozen=True)
class WhereClause:
    sql: str
    params: list[Any]

    def render(self) -> str:
        return f"where {self.sql}" if self.sql else ""


def sql_for_partial_update(data: Mapping[str, Any], column_map: Mapping[str, str]) -> SetClause:
    """Build the ``SET`` list for an ``UPDATE`` from a sparse field map.

    Keys are numbered in insertion order, so ``{"firstName": "Aliya", "age": 32}``
    with ``{"firstName": "first_name"}`` becomes ``"first_name"=$1, "age"=$2``
    with values ``["Aliya", 32]``. Fields missing from ``column_map`` use their
    own name as the column name.
    """
    if not data:
        raise NoFieldsToUpdateError()

    assignments: list[str] = []
    values: list[Any] = []
    for position, (field, value) in enumerate(data.items(), start=1):
        column = column_map.get(field, field)
        if not SQL_IDENTIFIER_RE.match(column):
            raise RepositoryValidationError(f"invalid column name: {column!r}")
        assignments.append(f'"{column}"=${position}')
        values.append(value)

    return SetClause(sql=", ".join(assignments), values=values)


def sql_for_job_filters(filters: Mapping[str, Any]) -> WhereClause:
    """Build the ``WHERE`` body for a job search.

    Recognized filters are ``title`` (case-insensitive substring),
    ``minSalary`` (inclusive lower bound) and ``hasEquity`` (``"true"`` for
    nonzero equity, ``"false"`` for exactly zero, anything else ignored).
    Clauses are emitted in that order regardless of the order of ``filters``.
    """
    unrecognized = [name for name in filters if name not in JOB_FILTER_KEYS]
    if unrecognized:
        raise UnrecognizedFilterError(unrecognized)

    conditions: list[str] = []
    params: list[Any] = []

    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    if "title" in filters:
        conditions.append(f"title ILIKE '%' || {bind(str(filters['title']))} || '%'")

    if "minSalary" in filters:
        min_salary = _parse_int_filter("minSalary", filters["minSalary"])
        conditions.append(f"salary >= {bind(min_salary)}")

    has_equity = filters.get("hasEquity")
    if has_equity == "true":
        conditions.append("equity > 0")
    elif has_equity == "false":
        conditions.append("equity = 0")

    return WhereClause(sql=" AND ".join(conditions), params=params)


def _parse_int_filter(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidFilterValueError(f"{name} must be an integer")
    if isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip())
        except ValueError as exc:
            raise InvalidFilterValueError(f"{name} must be an integer") from exc
    if not INT4_MIN <= parsed <= INT4_MAX:
        raise InvalidFilterValueError(f"{name} is out of range")
    return parsed
