"""
Authentication Module
=====================
Google OAuth 2.0 login + JWT session cookie for BusinessGPT

Features:
- Google authorization-code flow via authlib (state/CSRF kept in the
  Starlette session)
- Signed access token stored in an HTTP-only cookie
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional
import logging

import jwt
from authlib.integrations.starlette_client import OAuth

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_COOKIE = "access_token"
GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


class IdentityError(Exception):
    """Raised when the identity provider did not return a usable profile."""

    pass


@dataclass
class Identity:
    """Verified profile returned by the identity provider."""

    subject: str
    email: str
    name: str
    picture: Optional[str] = None


def build_oauth(config) -> OAuth:
    """
    Create the OAuth client registry.

    Args:
        config: Settings with Google OAuth credentials
    """
    oauth = OAuth()

    if config.google_client_id and config.google_client_secret:
        oauth.register(
            name='google',
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            server_metadata_url=GOOGLE_METADATA_URL,
            client_kwargs={'scope': 'openid email profile'}
        )
        logger.info("Registered Google OAuth")
    else:
        logger.warning("Google OAuth credentials not configured - login disabled")

    return oauth


def parse_google_userinfo(user_info: Mapping[str, Any]) -> Identity:
    """
    Normalize a Google userinfo payload (OIDC or legacy v2 fields).

    Raises:
        IdentityError if the subject id or email is missing
    """
    subject = user_info.get('sub') or user_info.get('id')
    email = user_info.get('email')

    if not subject:
        raise IdentityError("Subject id not provided by Google")
    if not email:
        raise IdentityError("Email not provided by Google")

    return Identity(
        subject=str(subject),
        email=email,
        name=user_info.get('name') or email.split('@')[0],
        picture=user_info.get('picture')
    )


# ============================================================================
# Token Creation / Verification
# ============================================================================

def create_access_token(
    user_id: int,
    email: str,
    secret_key: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed JWT access token.

    Args:
        user_id: User's database ID
        email: User's email
        secret_key: Signing key
        expires_delta: Token lifetime (defaults to 7 days)

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "sub": email,
        "type": "access",
        "iat": now,
        "exp": now + (expires_delta or timedelta(days=7)),
    }
    return jwt.encode(payload, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> Optional[Dict]:
    """
    Verify and decode a JWT access token.

    Returns:
        Decoded payload dict if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Access token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid access token: {e}")
        return None

    if payload.get("type") != "access":
        return None

    return payload
