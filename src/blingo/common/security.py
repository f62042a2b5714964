"""Request credentials: API keys for the summarizer, session tokens for key management."""

from dataclasses import dataclass
from typing import Mapping, Optional

from fastapi import Header, HTTPException, Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

SESSION_COOKIE_NAME = "blingo_session"
SESSION_HEADER_NAME = "X-Session-Token"


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller as vouched for by the identity provider."""
    email: str
    name: Optional[str] = None
    image: Optional[str] = None


def extract_api_key(headers: Mapping[str, str]) -> str:
    """Return the presented API key; ``x-api-key`` wins over a bearer token."""
    key = headers.get("x-api-key")
    if key:
        return key
    authorization = headers.get("authorization") or ""
    return authorization.replace("Bearer ", "")


def _get_serializer() -> URLSafeTimedSerializer:
    from blingo.common.config import get_settings
    return URLSafeTimedSerializer(get_settings().secret_key, salt="caller-session")


def create_session_token(email: str, name: str | None = None, image: str | None = None) -> str:
    """Sign a caller identity and return the token value."""
    s = _get_serializer()
    return s.dumps({"email": email, "name": name, "image": image})


def verify_session_token(token: str) -> CallerIdentity | None:
    """Verify and decode a session token. Returns the identity or None."""
    from blingo.common.config import get_settings

    s = _get_serializer()
    try:
        payload = s.loads(token, max_age=get_settings().session_max_age)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(payload, dict) or not payload.get("email"):
        return None
    return CallerIdentity(
        email=payload["email"],
        name=payload.get("name"),
        image=payload.get("image"),
    )


async def require_user(
    request: Request,
    x_session_token: str = Header(None, alias=SESSION_HEADER_NAME),
    x_user_email: str = Header(None, alias="X-User-Email"),
) -> CallerIdentity:
    """FastAPI dependency resolving the signed-in caller.

    The session is the source of truth; an ``X-User-Email`` header, when sent,
    must agree with it.
    """
    token = x_session_token or request.cookies.get(SESSION_COOKIE_NAME)
    identity = verify_session_token(token) if token else None
    if identity is None:
        raise HTTPException(status_code=401, detail="Unauthorized - Please sign in")
    if x_user_email and x_user_email != identity.email:
        raise HTTPException(status_code=401, detail="Unauthorized - Session mismatch")
    return identity
