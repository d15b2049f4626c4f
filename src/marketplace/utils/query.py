from dataclasses import dataclass, replace
from typing import Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class QuerySpec:
    """
    Immutable description of a list query.

    Each modifier returns a new spec, so a base spec can be shared and
    specialised per request. build() composes the pieces in a fixed order:
    WHERE conditions (AND-ed in the order they were added), ORDER BY, then
    LIMIT/OFFSET last.

        spec = (QuerySpec(select(orders))
                .where(orders.c.buyer_id == buyer_id)
                .order(orders.c.created_at.desc())
                .paginate(page=2, limit=10))
        rows = conn.execute(spec.build())
        total = conn.execute(spec.count()).scalar_one()
    """
    base: Select
    conditions: Tuple[ColumnElement, ...] = ()
    order_by: Tuple[ColumnElement, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None

    def where(self, condition: ColumnElement) -> "QuerySpec":
        return replace(self, conditions=self.conditions + (condition,))

    def order(self, *clauses: ColumnElement) -> "QuerySpec":
        return replace(self, order_by=self.order_by + tuple(clauses))

    def paginate(self, page: int, limit: int) -> "QuerySpec":
        if page < 1:
            raise ValueError("page must be at least 1")
        if limit < 1:
            raise ValueError("limit must be at least 1")
        return replace(self, limit=limit, offset=(page - 1) * limit)

    def build(self) -> Select:
        stmt = self.base
        for condition in self.conditions:
            stmt = stmt.where(condition)
        if self.order_by:
            stmt = stmt.order_by(*self.order_by)
        if self.limit is not None:
            stmt = stmt.limit(self.limit)
        if self.offset is not None:
            stmt = stmt.offset(self.offset)
        return stmt

    def count(self) -> Select:
        """SELECT count(*) over the filtered base, ignoring order and pagination"""
        filtered = self.base
        for condition in self.conditions:
            filtered = filtered.where(condition)
        return select(func.count()).select_from(filtered.subquery())
