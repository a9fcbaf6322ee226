from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Tuple

from sqlalchemy import Select

from reports.timeframe import TimeWindow


def _not_null(column: Any, _value: Any) -> Any:
    return column.is_not(None)


OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "gt": operator.gt,
    "lte": operator.le,
    "gte": operator.ge,
    "not_null": _not_null,
}


@dataclass(frozen=True)
class Constraint:
    """
    Single predicate over a model attribute.

    ``field`` is a mapped attribute name, or ``relationship.attribute`` for a
    predicate on a related model (the relationship is joined).
    """

    field: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unknown operator '{self.op}' (expected one of {sorted(OPERATORS)})")


@dataclass(frozen=True)
class MetricFilter:
    """
    Immutable conjunction of constraints.

    Combinators return new filters and never drop an existing constraint, so
    merge order does not matter and repeating a constraint is a no-op.
    """

    constraints: FrozenSet[Constraint] = field(default_factory=frozenset)

    def where(self, field_name: str, op: str, value: Any = None) -> "MetricFilter":
        return MetricFilter(self.constraints | {Constraint(field_name, op, value)})

    def merge(self, *others: "MetricFilter") -> "MetricFilter":
        constraints = self.constraints
        for other in others:
            constraints = constraints | other.constraints
        return MetricFilter(constraints)

    def with_time_window(self, field_name: str, window: TimeWindow) -> "MetricFilter":
        utc = window.as_utc()
        return self.where(field_name, "gt", utc.start).where(field_name, "lt", utc.end)

    def with_status(self, status: str) -> "MetricFilter":
        return self.where("status", "eq", status)

    def with_type(self, type_: str) -> "MetricFilter":
        return self.where("type", "eq", type_)

    def with_collective_type(self, type_: str) -> "MetricFilter":
        return self.where("collective.type", "eq", type_)

    def excluding(self, collective_id: int) -> "MetricFilter":
        return self.where("collective_id", "ne", collective_id)

    def not_null(self, field_name: str) -> "MetricFilter":
        return self.where(field_name, "not_null")

    def sorted_constraints(self) -> List[Constraint]:
        # Stable order so the same filter always compiles to the same SQL.
        return sorted(self.constraints, key=lambda c: (c.field, c.op, repr(c.value)))

    def relationships(self) -> List[str]:
        return sorted({c.field.split(".", 1)[0] for c in self.constraints if "." in c.field})

    def apply(self, stmt: Select, model: Any) -> Select:
        """
        Add this filter's WHERE clauses to ``stmt``, joining any relationship
        referenced by a dotted field.

        Raises:
            AttributeError: If a field is not mapped on ``model``
        """
        joined: Dict[str, Any] = {}
        for rel_name in self.relationships():
            rel = getattr(model, rel_name)
            stmt = stmt.join(rel)
            joined[rel_name] = rel.property.mapper.class_

        clauses = []
        for c in self.sorted_constraints():
            if "." in c.field:
                rel_name, attr = c.field.split(".", 1)
                column = getattr(joined[rel_name], attr)
            else:
                column = getattr(model, c.field)
            clauses.append(OPERATORS[c.op](column, c.value))

        if clauses:
            stmt = stmt.where(*clauses)
        return stmt

    def describe(self) -> Iterable[Tuple[str, str, Any]]:
        return [(c.field, c.op, c.value) for c in self.sorted_constraints()]


EMPTY = MetricFilter()
