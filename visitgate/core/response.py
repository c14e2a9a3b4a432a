"""Response envelopes: `{ data: ... }` for one record, `{ data: [...], meta: {...} }` for pages."""


import math
from typing import Generic, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from visitgate.core.pagination import PageMeta, PaginationParams

T = TypeVar("T")


class _Envelope(BaseModel):
    model_config = {"populate_by_name": True, "alias_generator": to_camel}


class DataResponse(_Envelope, Generic[T]):
    data: T


class ListResponse(_Envelope, Generic[T]):
    data: list[T]
    meta: PageMeta


def paginated(items: list, total: int, pagination: PaginationParams) -> dict:
    """Wrap one page of pre-approvals or visits for ListResponse.

    An empty result still reports one page so clients can render "page 1 of 1".
    """
    pages = max(math.ceil(total / pagination.limit), 1)
    return {
        "data": items,
        "meta": PageMeta(
            total=total,
            page=pagination.page,
            limit=pagination.limit,
            pages=pages,
            has_next=pagination.page < pages,
            has_prev=pagination.page > 1,
        ),
    }
