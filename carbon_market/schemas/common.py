"""Pydantic schemas shared by the paginated list endpoints."""

import math

from pydantic import BaseModel


class Pagination(BaseModel):
    """Page metadata returned alongside every paginated list."""
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)
