"""Access-token helpers shared by the HTTP layer and local tooling.

Tokens are HS256-signed with ``settings.secret_key`` and must carry the
issuer and audience below plus a ``sub`` claim naming the user.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable

import jwt
from jwt import InvalidTokenError

from app.settings import settings

ALGORITHM = "HS256"
ISSUER = "rally-api"
AUDIENCE = "rally-scheduling"


def encode_access(
    user_id: str,
    *,
    roles: Iterable[str] = (),
    ttl_seconds: int = 3600,
    extra: Dict[str, Any] | None = None,
) -> str:
    now = int(time.time())
    body: Dict[str, Any] = {
        "sub": user_id,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    if roles:
        body["roles"] = list(roles)
    body.update(extra or {})
    return jwt.encode(body, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises ``jwt.InvalidTokenError`` subclasses on failure.
    """
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=settings.jwt_leeway_seconds,
        options={"require": ["exp", "iat", "iss", "aud", "sub"]},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
