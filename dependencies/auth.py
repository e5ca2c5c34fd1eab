# dependencies/auth.py
from fastapi import Depends
from typing import Annotated, Optional

from config import oauth2_scheme_optional
from helpers.auth import decode_access_token
from utils.errors import Unauthenticated

async def get_current_user_id(token: Optional[str] = Depends(oauth2_scheme_optional)) -> str:
    """Identity of the caller; Unauthenticated when there is none."""
    token_data = decode_access_token(token)
    if token_data is None:
        raise Unauthenticated("Could not validate credentials")
    return token_data.user_id

# Create annotated types for cleaner dependency injection
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
