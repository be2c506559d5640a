"""JWT Token Validation - HS256 bearer tokens whose subject is the username"""
import jwt
from datetime import timedelta
from typing import Any, Dict, Optional

from ..config.settings import Settings, settings as default_settings
from ..domain.errors import AuthenticationError
from .logger import get_logger
from .time import utc_now

logger = get_logger(__name__)


class JWTValidator:
    """Shared-secret JWT validator"""

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or default_settings

    def create_access_token(self, username: str, expires_minutes: Optional[int] = None) -> str:
        """
        Issue an access token for local development and tests

        Args:
            username: Token subject
            expires_minutes: Lifetime, defaults to jwt_access_expiration_minutes
        """
        now = utc_now()
        lifetime = expires_minutes or self._settings.jwt_access_expiration_minutes
        claims = {
            "sub": username,
            "iat": now,
            "exp": now + timedelta(minutes=lifetime),
        }
        return jwt.encode(claims, self._settings.jwt_secret, algorithm=self._settings.jwt_algorithm)

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate JWT token

        Args:
            token: Bearer token (with or without 'Bearer ' prefix)

        Returns:
            Decoded token claims

        Raises:
            AuthenticationError: If token is invalid
        """
        if not token:
            raise AuthenticationError("Token is missing")

        # Remove 'Bearer ' prefix if present
        if token.startswith("Bearer "):
            token = token[7:]

        try:
            return jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise AuthenticationError(f"Invalid token: {e}")

    def get_username(self, token: str) -> str:
        """Extract the username (subject) from a validated token"""
        claims = self.validate_token(token)
        username = claims.get("sub")
        if not username:
            raise AuthenticationError("Token has no subject")
        return username


# Global validator instance
_validator: Optional[JWTValidator] = None


def get_validator() -> JWTValidator:
    """Get or create the JWT validator"""
    global _validator
    if _validator is None:
        _validator = JWTValidator()
    return _validator


def get_current_username(authorization: str) -> str:
    """
    Get the acting username from an Authorization header

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    return get_validator().get_username(authorization)


def create_access_token(username: str) -> str:
    """Issue an access token with the configured lifetime"""
    return get_validator().create_access_token(username)
