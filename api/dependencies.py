"""API Dependencies - Authentication"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from domain.auth import CurrentUser
from infrastructure.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)
) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise credentials_exception

    # Profile fields live under user_metadata in tokens from the auth provider
    profile = payload.get("user_metadata") or {}
    return CurrentUser(
        user_id=payload["sub"],
        email=payload.get("email"),
        first_name=profile.get("first_name", ""),
        last_name=profile.get("last_name", ""),
        role=payload.get("role", "authenticated")
    )
