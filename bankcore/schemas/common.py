"""
Shared schema building blocks.
"""

import math
from typing import Annotated, Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from bankcore.core.formatting import format_account_number

T = TypeVar("T")

# Stored as 12 digits, always rendered NNNN-NNNN-NNNN
AccountNumber = Annotated[str, PlainSerializer(format_account_number, return_type=str)]


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case accepted on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Page(CamelModel, Generic[T]):
    """Paged list response."""
    content: List[T]
    total_elements: int
    total_pages: int
    size: int
    number: int

    @classmethod
    def build(cls, content, total_elements: int, page: int, size: int):
        return cls(
            content=content,
            total_elements=total_elements,
            total_pages=math.ceil(total_elements / size) if size else 0,
            size=size,
            number=page,
        )


class ErrorResponse(BaseModel):
    kind: str
    message: str
