"""Bearer-token identity for the chatbot endpoints.

Tokens are HS256 JWTs issued by the storefront: `sub` carries the user id and
`username` the display name.
"""

from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from config import UTC
from config.settings import settings
from errors import Unauthorized

security = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    user_id: str
    username: Optional[str] = None


def verify_token(token: str) -> Identity:
    cfg = settings.auth
    try:
        payload = jwt.decode(token, cfg.jwt_secret, algorithms=[cfg.jwt_algorithm])
    except jwt.InvalidTokenError as e:
        raise Unauthorized("Invalid token", reason=type(e).__name__) from e
    sub = payload.get("sub")
    if sub is None or str(sub).strip() == "":
        raise Unauthorized("Invalid token", reason="missing subject")
    return Identity(user_id=str(sub), username=payload.get("username"))


def issue_token(user_id: str, username: Optional[str] = None, ttl: timedelta = timedelta(hours=6)) -> str:
    cfg = settings.auth
    claims = {"sub": str(user_id), "exp": datetime.now(UTC) + ttl}
    if username:
        claims["username"] = username
    return jwt.encode(claims, cfg.jwt_secret, algorithm=cfg.jwt_algorithm)


def optional_identity(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[Identity]:
    """Identity of the caller, or None when no valid token was sent."""
    if not creds:
        return None
    try:
        return verify_token(creds.credentials)
    except Unauthorized:
        return None


def require_identity(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Identity:
    if not creds:
        raise Unauthorized("Missing credentials")
    return verify_token(creds.credentials)
