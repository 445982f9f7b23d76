# /app/models/common_model.py

import math
from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 200


class CamelModel(BaseModel):
    """
    Base for every API model: snake_case in Python, camelCase on the wire.
    Either spelling is accepted on input.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(CamelModel):
    message: str


class PageParams(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Page(CamelModel, Generic[T]):
    """One page of a list endpoint plus what a client needs to ask for the next one."""
    items: List[T]
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, items: List[T], total: int, params: PageParams) -> "Page[T]":
        return cls(
            items=items,
            page=params.page,
            limit=params.limit,
            total=total,
            total_pages=math.ceil(total / params.limit) if total else 0,
        )
