from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .settings import config_settings

# Tells FastAPI where to look for the token. Tokens are issued by the
# external identity provider; this service only resolves them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


def resolve_token(token: Optional[str]) -> Optional[str]:
    """Returns the user id bound to ``token``, or None if it is unknown."""
    if not token:
        return None
    return config_settings.TOKENS.get(token)


def get_current_user_id(token: Annotated[str, Depends(oauth2_scheme)]) -> str:
    """
    Dependency function that requires a Bearer token and returns its user id.

    If no token is provided, OAuth2PasswordBearer automatically raises
    a 401 Unauthorized exception.
    """
    user_id = resolve_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id
