import uuid
import logging
from typing import Optional
import jwt
from jwt import PyJWKClient
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from arena.config import get_settings
from arena.database import get_db
from arena.models.user import User, GHOST_EXTERNAL_ID

settings = get_settings()
security = HTTPBearer()
logger = logging.getLogger(__name__)

# JWKS client to fetch and cache the identity provider's public keys
_jwks_client: Optional[PyJWKClient] = None


def get_jwks_client() -> PyJWKClient:
    """
    Get or create the JWKS client.
    The client caches the public keys automatically.
    """
    global _jwks_client
    if _jwks_client is None:
        if not settings.jwks_url:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication is not configured",
            )
        _jwks_client = PyJWKClient(settings.jwks_url, cache_keys=True, lifespan=3600)
    return _jwks_client


def decode_token(token: str, key, algorithms=None, audience=None) -> dict:
    """Verify a JWT against ``key`` and return its payload. Raises 401 on failure."""
    try:
        return jwt.decode(
            token,
            key,
            algorithms=algorithms or settings.jwt_algorithms,
            audience=audience or settings.jwt_audience
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def verify_token(token: str) -> dict:
    """
    Verify a bearer token with the signing key published at ``settings.jwks_url``.
    """
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
    except jwt.PyJWKClientError as e:
        logger.warning(f"Could not resolve signing key: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token verification failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return decode_token(token, signing_key.key)


def get_or_create_user(db: Session, payload: dict) -> User:
    """
    Get or create a user from a verified token payload.

    The payload carries:
    - sub: identity provider user ID
    - email: User's email
    - user_metadata: profile data (nickname, color, icon)
    """
    external_id = payload.get("sub")
    email = payload.get("email") or ""
    user_metadata = payload.get("user_metadata") or {}

    if not external_id or external_id == GHOST_EXTERNAL_ID:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID"
        )

    nickname = user_metadata.get("nickname") or user_metadata.get("name") or email.split("@")[0] or "player"

    user = db.query(User).filter(User.external_id == external_id).first()

    if user:
        # Keep the profile in sync with the identity provider
        color = user_metadata.get("color", user.color)
        icon = user_metadata.get("icon", user.icon)

        if user.nickname != nickname or user.color != color or user.icon != icon:
            user.nickname = nickname
            user.color = color
            user.icon = icon
            user.email = email
            db.commit()
            db.refresh(user)
    else:
        # Check if this email is an admin
        is_admin = email.lower() in [e.lower() for e in settings.admin_emails]

        user = User(
            id=uuid.uuid4(),
            external_id=external_id,
            email=email,
            nickname=nickname,
            color=user_metadata.get("color", "#3B82F6"),
            icon=user_metadata.get("icon", "user"),
            is_admin=is_admin
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Provisioned user {user.nickname} (admin={is_admin})")

    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Validate the bearer token and return the current user.
    Creates the user in our database if they don't exist.
    """
    payload = verify_token(credentials.credentials)
    return get_or_create_user(db, payload)


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Require the current user to be an admin.
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
