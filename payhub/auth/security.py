import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Iterable

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from ..services.permissions import Actor, ADMIN, AGENT, SUBCON_ADMIN, WORKER


http_bearer = HTTPBearer(auto_error=False)

KNOWN_ROLES = {ADMIN, AGENT, SUBCON_ADMIN, WORKER}


def create_access_token(
    user_id: str,
    role: str,
    company_id: Optional[str] = None,
    company_ids: Optional[Iterable[str]] = None,
    worker_id: Optional[str] = None,
) -> str:
    """Issue a bearer token carrying the actor claims (tooling and tests; login lives elsewhere)."""
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "company_id": str(company_id) if company_id else None,
        "company_ids": [str(c) for c in company_ids or []],
        "worker_id": str(worker_id) if worker_id else None,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.jwt_ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def actor_from_claims(payload: dict) -> Actor:
    role = payload.get("role")
    if role not in KNOWN_ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid role")
    user_id_raw = payload.get("sub")
    try:
        user_id = str(uuid.UUID(str(user_id_raw)))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    return Actor(
        user_id=user_id,
        role=role,
        company_id=payload.get("company_id"),
        company_ids=frozenset(payload.get("company_ids") or []),
        worker_id=payload.get("worker_id"),
    )


def get_current_actor(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Actor:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return actor_from_claims(decode_token(creds.credentials))
