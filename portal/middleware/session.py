"""
Session Middleware

Cookie sessions with server-side storage in Redis. The cookie only
carries a random session id; the session dict lives under
"session:<id>" with a TTL refreshed on every write.

Handlers read and write request.state.session (a Session dict). The
store is written back only when the dict changed, and the cookie is
cleared when a handler empties the session.

There is no in-process fallback: if Redis is unreachable the request
fails, because signing users in without a shared store would log them
out on the next request to another worker.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from typing import Optional
import json
import secrets
import logging

from portal.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class Session(dict):
    """
    dict that remembers whether it was modified.

    regenerate() asks the middleware to move the data to a fresh session
    id and drop the old one; call it whenever the signed-in user changes.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.modified = False
        self.regenerated = False

    def __setitem__(self, key, value):
        super().__setitem__(key, value)
        self.modified = True

    def __delitem__(self, key):
        super().__delitem__(key)
        self.modified = True

    def pop(self, key, *args):
        self.modified = True
        return super().pop(key, *args)

    def clear(self):
        super().clear()
        self.modified = True

    def regenerate(self):
        self.regenerated = True
        self.modified = True


class RedisSessionStore:
    """Session persistence on top of a redis.Redis client."""

    def __init__(self, client, ttl: int = settings.SESSION_TTL_SECONDS, prefix: str = "session:"):
        self.client = client
        self.ttl = ttl
        self.prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def load(self, session_id: str) -> Optional[dict]:
        raw = self.client.get(self._key(session_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable session data")
            return None
        if not isinstance(data, dict):
            return None
        return data

    def save(self, session_id: str, data: dict) -> None:
        self.client.setex(self._key(session_id), self.ttl, json.dumps(data))

    def delete(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Loads request.state.session before the handler and persists it after.

    The store is looked up on app.state.session_store at request time so
    it can be swapped (tests, reconfiguration) without rebuilding the
    middleware stack.
    """

    def __init__(self, app, cookie_name: str = settings.SESSION_COOKIE_NAME):
        super().__init__(app)
        self.cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next):
        store: RedisSessionStore = request.app.state.session_store

        session_id = request.cookies.get(self.cookie_name)
        data = store.load(session_id) if session_id else None
        if data is None:
            # Unknown or expired id: never reuse an id the client chose
            session_id = None
        request.state.session = Session(data or {})

        response = await call_next(request)

        session: Session = request.state.session
        if not session.modified:
            return response

        if session.regenerated and session_id is not None:
            store.delete(session_id)
            session_id = None

        if session:
            if session_id is None:
                session_id = secrets.token_urlsafe(32)
            store.save(session_id, dict(session))
            response.set_cookie(
                self.cookie_name,
                session_id,
                max_age=store.ttl,
                httponly=True,
                samesite="lax",
                secure=settings.SESSION_COOKIE_SECURE,
            )
        else:
            if session_id is not None:
                store.delete(session_id)
            response.delete_cookie(self.cookie_name)

        return response
