"""
Dependencies shared by the routers.
"""

from typing import Callable, Optional, Type, TypeVar

from fastapi import Header, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bankcore.services.guard import idempotency_guard

ResultT = TypeVar("ResultT", bound=BaseModel)

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
REPLAYED_HEADER = "Idempotent-Replayed"


def idempotency_key(
    key: Optional[str] = Header(None, alias=IDEMPOTENCY_KEY_HEADER),
) -> Optional[str]:
    return key.strip() if key and key.strip() else None


def run_idempotent(
    db: Session,
    response: Response,
    account_id: int,
    operation: str,
    key: Optional[str],
    fn: Callable[[], ResultT],
    schema: Type[ResultT],
) -> ResultT:
    """Execute ``fn`` through the idempotency guard and flag replays on the response."""
    result, replayed = idempotency_guard.execute(db, account_id, operation, key, fn, schema)
    if replayed:
        response.headers[REPLAYED_HEADER] = "true"
    return result
