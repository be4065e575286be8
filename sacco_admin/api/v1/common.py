"""Helpers shared by the v1 routers"""

import uuid
from typing import Callable, List, TypeVar
from fastapi import HTTPException
from sacco_admin.api.v1.schemas import PaginatedEnvelope, Pagination
from sacco_admin.domain.models import Page

T = TypeVar("T")


def parse_id(value: str, label: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} format")


def paginated(page: Page, to_schema: Callable[[object], T]) -> PaginatedEnvelope[T]:
    items: List[T] = [to_schema(item) for item in page.items]
    return PaginatedEnvelope(
        data=items,
        pagination=Pagination(
            page=page.page,
            limit=page.limit,
            total=page.total,
            total_pages=page.total_pages,
        ),
    )
