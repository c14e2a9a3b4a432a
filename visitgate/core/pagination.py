"""Pagination helpers for list endpoints."""


from fastapi import Query
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class PaginationParams:
    """FastAPI dependency for `?page=1&limit=10&order=desc` (newest first by default)."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-based)"),
        limit: int = Query(default=10, ge=1, le=100, description="Items per page"),
        order: str = Query(default="desc", pattern="^(asc|desc)$", description="Creation-time order"),
    ):
        self.page = page
        self.limit = limit
        self.order = order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int
    has_next: bool = False
    has_prev: bool = False

    model_config = {"populate_by_name": True, "alias_generator": to_camel}
