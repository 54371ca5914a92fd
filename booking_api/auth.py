import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    customer_id: int
    role: str


def create_access_token(customer_id: int, role: str = ADMIN_ROLE, expires_in: timedelta = timedelta(hours=24)) -> str:
    payload = {
        "customerId": customer_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Principal:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    customer_id = claims.get("customerId")
    if customer_id is None:
        raise HTTPException(status_code=401, detail="Token carries no customer")

    return Principal(customer_id=int(customer_id), role=claims.get("role", ""))


def get_principal(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return decode_token(credentials.credentials)


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal
