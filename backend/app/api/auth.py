from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from typing import Optional

from app.config import settings
from slowapi import Limiter
from slowapi.util import get_remote_address

# Shared rate limiter; registered on the app in main.py
limiter = Limiter(key_func=get_remote_address)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_current_user_id(api_key: Optional[str] = Depends(api_key_header)) -> str:
    """Resolve the calling user from a static API key."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "ApiKey"},
    )

    if not api_key:
        raise credentials_exception

    user_id = settings.api_key_map.get(api_key)
    if user_id is None:
        raise credentials_exception

    return user_id
