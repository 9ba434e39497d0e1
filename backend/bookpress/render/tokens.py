"""
BookPress — Short-lived render tokens.

The render views are fetched by the headless snapshot service, not by a
signed-in user, so every URL carries an HS256 token bound to one family
and one page (or the cover).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from bookpress.errors import RenderTokenError

ALGORITHM = "HS256"
SCOPE = "render"
COVER_SUBJECT = "cover"


class RenderTokenIssuer:
    def __init__(self, secret: str, ttl_seconds: int = 300):
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, family_id: str, subject_id: str) -> str:
        expire = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
        payload = {"fid": family_id, "sub": subject_id, "scope": SCOPE, "exp": expire}
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str | None, family_id: str, subject_id: str) -> dict:
        """Decode and check the binding. Raises RenderTokenError on any failure."""
        if not token:
            raise RenderTokenError("missing")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise RenderTokenError("expired")
        except jwt.InvalidTokenError:
            raise RenderTokenError("invalid")

        if payload.get("scope") != SCOPE:
            raise RenderTokenError("invalid")
        if payload.get("fid") != family_id or payload.get("sub") != subject_id:
            raise RenderTokenError("mismatch")
        return payload
