"""Simple-password hashing and bearer token helpers.

Token issuance belongs to the external auth service; ``create_access_token``
exists so that service and the test-suite mint tokens the same way this
service verifies them.
"""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from bankcore.core.config import settings
from bankcore.core.exceptions import Unauthorized
from bankcore.database import get_db
from bankcore.models.account import Account

bearer_scheme = HTTPBearer(auto_error=False)
provisioning_key_scheme = APIKeyHeader(name="X-Provisioning-Key", auto_error=False)


def hash_simple_password(simple_password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.SIMPLE_PASSWORD_BCRYPT_ROUNDS)
    return bcrypt.hashpw(simple_password.encode("ascii"), salt).decode("ascii")


def check_simple_password(simple_password: str, hashed: str) -> bool:
    return bcrypt.checkpw(simple_password.encode("ascii"), hashed.encode("ascii"))


def create_access_token(account_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(account_id), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> int:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise Unauthorized() from exc

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise Unauthorized() from exc


def get_current_account_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> int:
    if credentials is None:
        raise Unauthorized("Not authenticated")
    account_id = decode_access_token(credentials.credentials)
    if db.get(Account, account_id) is None:
        raise Unauthorized("Account does not exist")
    return account_id


def require_provisioning_key(
    api_key: Optional[str] = Depends(provisioning_key_scheme),
) -> None:
    """Account provisioning is reserved for the onboarding service."""
    expected = settings.PROVISIONING_API_KEY
    if not api_key or not expected or not hmac.compare_digest(api_key, expected):
        raise Unauthorized("Provisioning key required")
