"""Pagination math shared by every listing"""

import math
from typing import List, TypeVar
from sacco_admin.domain.models import Page

T = TypeVar("T")


def offset_for(page: int, limit: int) -> int:
    """1-based page index to row offset"""
    return (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0


def build_page(items: List[T], total: int, page: int, limit: int) -> Page[T]:
    return Page(
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )
