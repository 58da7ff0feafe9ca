"""
Pydantic schemas for favorite recipients.
"""

from pydantic import Field
from datetime import datetime
from typing import Optional

from bankcore.schemas.common import AccountNumber, CamelModel


class FavoriteRequest(CamelModel):
    account_number: str = Field(..., min_length=12, max_length=14)
    nickname: str = Field(..., min_length=1, max_length=50)
    memo: Optional[str] = Field(None, max_length=200)


class FavoriteUpdateRequest(CamelModel):
    nickname: Optional[str] = Field(None, min_length=1, max_length=50)
    memo: Optional[str] = Field(None, max_length=200)


class FavoriteResponse(CamelModel):
    favorite_id: int
    account_number: AccountNumber
    # None once the target account no longer exists
    account_owner_name: Optional[str]
    nickname: str
    memo: Optional[str]
    created_at: datetime
