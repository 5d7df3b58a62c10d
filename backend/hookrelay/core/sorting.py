"""Shared sorting utilities for repository queries."""

from __future__ import annotations

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from hookrelay.core.database import Base


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    order_by: str | None,
    default_field: str = "created_at",
    default_direction: str = "desc",
) -> Query:  # type: ignore[type-arg]
    """Apply ordering to a SQLAlchemy query.

    Args:
        query: The SQLAlchemy query to sort.
        model: The SQLAlchemy model class.
        order_by: Sort string in "field:direction" format (e.g. "event:asc").
            Unknown fields fall back to default_field.
        default_field: Default column to sort by.
        default_direction: Default sort direction ("asc" or "desc").

    Returns:
        The query with ordering applied. Ties are broken by primary key in
        the same direction so paging stays stable.
    """
    field = default_field
    direction = default_direction

    if order_by:
        parts = order_by.split(":", 1)
        candidate_field = parts[0]
        candidate_direction = parts[1] if len(parts) > 1 else "asc"

        if candidate_field in model.__table__.columns:
            field = candidate_field
            direction = candidate_direction if candidate_direction in ("asc", "desc") else default_direction

    order_func = asc if direction == "asc" else desc
    return query.order_by(order_func(getattr(model, field)), order_func(model.id))
