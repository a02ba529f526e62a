"""
Shared API schema helpers.

The web client speaks camelCase JSON; models accept either spelling on
input and serialize with camelCase aliases.
"""

from fastapi import Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

MAX_PAGE_SIZE = 100


class CamelModel(BaseModel):
    """Base for request and response schemas."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PageParams:
    """
    Dependency for page/limit query parameters.

    page is 1-based; limit is capped at 100.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1),
    ):
        self.page = page
        self.limit = min(limit, MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def pagination(self, total: int) -> Pagination:
        return Pagination(
            page=self.page,
            limit=self.limit,
            total=total,
            total_pages=(total + self.limit - 1) // self.limit,
        )

