from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .settings import EngineSettings, get_settings

# Tells FastAPI to read a Bearer token from the Authorization header.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


def require_auth_token(
    token: Annotated[str, Depends(oauth2_scheme)],
    settings: Annotated[EngineSettings, Depends(get_settings)],
) -> str:
    """
    Dependency function that requires a Bearer token listed in the settings.

    A missing header is rejected by OAuth2PasswordBearer before this runs.
    """
    if not token or token not in settings.tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token
