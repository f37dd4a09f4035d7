from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from loguru import logger

from config import Settings, get_settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def decode_user_id(token: str, settings: Settings) -> str:
    try:
        payload = jwt.decode(token, settings.auth_secret_key, algorithms=[settings.auth_algorithm])
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Token has no subject")
    return str(user_id)


def get_current_user_id(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Trust the `sub` claim of the bearer JWT issued by the auth provider."""
    if not token:
        logger.warning(f"Auth failed: missing bearer token, path={request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_user_id(token, settings)
    except ValueError as e:
        logger.warning(f"Auth failed: {e}, path={request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
