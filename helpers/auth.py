import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import JWT_SECRET_KEY, JWT_ALGORITHM, JWT_ACCESS_TOKEN_EXPIRE_MINUTES
from models.auth_model import TokenData

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed token carrying the user id in ``sub``; used by tests and local tooling"""
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.now(timezone.utc) + lifetime})
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

def decode_access_token(token: Optional[str]) -> Optional[TokenData]:
    """
    Read the caller identity from a bearer token.
    Returns None when the token is missing, expired or invalid.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return TokenData(user_id=str(user_id))
