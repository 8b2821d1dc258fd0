import math

from pydantic import BaseModel
from sqlalchemy.orm import Query

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class MessageResponse(BaseModel):
    message: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: str | None = None


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)


def paginate(query: Query, page: int, limit: int) -> tuple[list, Pagination]:
    """Return one page of query results with its pagination block."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, build_pagination(page, limit, total)
