"""
Backend-agnostic query filter.

A ``QueryFilter`` is the only vocabulary the managers use to express read
intent to a repository: an ordered list of ANDed ``Condition`` triples, an
optional ordering expression and optional limit/offset. Both models dump to
the wire shape ``{"conditions": [{"field", "operator", "value"}], "order_by",
"limit", "offset"}`` and validate back from it.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from services.music_school_service.enums import ComparisonOperator

_ORDER_TERM = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)(?:\s+(asc|desc))?\s*$", re.IGNORECASE)


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)
    operator: ComparisonOperator
    value: Any = None

    @model_validator(mode="after")
    def check_operand(self) -> Condition:
        if self.operator.is_unary and self.value is not None:
            raise ValueError(f"Operator {self.operator.value} takes no value")
        if not self.operator.is_unary and self.value is None:
            raise ValueError(
                f"Operator {self.operator.value} requires a value; use IS NULL / IS NOT NULL"
            )
        return self

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the condition against a plain row mapping with SQL NULL semantics."""
        actual = row.get(self.field)
        op = self.operator

        if op is ComparisonOperator.IS_NULL:
            return actual is None
        if op is ComparisonOperator.IS_NOT_NULL:
            return actual is not None
        if actual is None:
            return False

        expected = self.value
        if op is ComparisonOperator.EQ:
            return bool(actual == expected)
        if op is ComparisonOperator.NE:
            return bool(actual != expected)
        if op is ComparisonOperator.LT:
            return bool(actual < expected)
        if op is ComparisonOperator.LE:
            return bool(actual <= expected)
        if op is ComparisonOperator.GT:
            return bool(actual > expected)
        if op is ComparisonOperator.GE:
            return bool(actual >= expected)
        pattern = _like_to_regex(str(expected), ignore_case=op is ComparisonOperator.ILIKE)
        return pattern.fullmatch(str(actual)) is not None


class QueryFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    conditions: list[Condition] = Field(default_factory=list)
    order_by: str | None = None
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_order_by(self) -> QueryFilter:
        self.order_keys()
        return self

    def where(
        self, field: str, operator: ComparisonOperator | str, value: Any = None
    ) -> QueryFilter:
        """Return a copy with one more condition appended."""
        condition = Condition(field=field, operator=ComparisonOperator(operator), value=value)
        return self.model_copy(update={"conditions": [*self.conditions, condition]})

    def order_keys(self) -> list[tuple[str, bool]]:
        """Parse ``order_by`` into ``(field, descending)`` pairs."""
        if not self.order_by or not self.order_by.strip():
            return []
        keys: list[tuple[str, bool]] = []
        for term in self.order_by.split(","):
            match = _ORDER_TERM.match(term)
            if match is None:
                raise ValueError(f"Invalid order_by term: {term.strip()!r}")
            direction = (match.group(2) or "asc").lower()
            keys.append((match.group(1), direction == "desc"))
        return keys

    def referenced_fields(self) -> set[str]:
        fields = {condition.field for condition in self.conditions}
        fields.update(name for name, _ in self.order_keys())
        return fields


def _like_to_regex(pattern: str, ignore_case: bool = False) -> re.Pattern[str]:
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL | re.IGNORECASE if ignore_case else re.DOTALL
    return re.compile("".join(parts), flags)


class UnknownFieldError(ValueError):
    """A filter names fields the queried entity does not have."""

    def __init__(self, entity: str, fields: set[str]) -> None:
        self.entity = entity
        self.fields = sorted(fields)
        super().__init__(f"Unknown filter fields for {entity}: {', '.join(self.fields)}")


def ensure_known_fields(query_filter: QueryFilter, entity: str, known: frozenset[str]) -> None:
    unknown = query_filter.referenced_fields() - known
    if unknown:
        raise UnknownFieldError(entity, unknown)
