"""
Server-side sessions.

The browser only holds a signed, timestamped session id (itsdangerous);
the session data itself lives in the ``sessions`` table. Each request gets
an explicit ``ServerSession`` on ``request.state.session``.
"""

import json
import logging
import secrets
from datetime import timedelta
from typing import Any, Optional

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from kbcms.db.database import transaction
from kbcms.db.models import SessionRecord, utcnow

logger = logging.getLogger(__name__)

FLASH_KEY = "flash_messages"


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class ServerSession:
    """Mutable per-request view of one stored session."""

    def __init__(self, session_id: Optional[str] = None, data: Optional[dict] = None):
        self.id = session_id
        self.data: dict[str, Any] = dict(data or {})
        self.modified = False
        self.stale_ids: list[str] = []

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.modified = True

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def pop(self, key: str, default: Any = None) -> Any:
        if key in self.data:
            self.modified = True
        return self.data.pop(key, default)

    def update(self, values: dict) -> None:
        self.data.update(values)
        self.modified = True

    def regenerate(self) -> None:
        """Move the data to a fresh id; the old id is dropped from the store."""
        if self.id:
            self.stale_ids.append(self.id)
        self.id = new_session_id()
        self.modified = True

    def destroy(self) -> None:
        """Forget all data and the id; the cookie is removed on the response."""
        if self.id:
            self.stale_ids.append(self.id)
        self.id = None
        self.data = {}
        self.modified = True

    def flash(self, category: str, message: str) -> None:
        messages = list(self.data.get(FLASH_KEY, []))
        messages.append({"type": category, "message": message})
        self[FLASH_KEY] = messages

    def pop_flashes(self) -> list[dict]:
        return self.pop(FLASH_KEY, []) or []


class SessionStore:
    """Session data persisted as JSON rows.

    Rows not saved within ``max_age`` seconds belong to expired cookies and
    are purged whenever another session is saved.
    """

    def __init__(self, session_factory: sessionmaker, max_age: Optional[int] = None):
        self._session_factory = session_factory
        self.max_age = max_age

    def load(self, session_id: str) -> Optional[dict]:
        with self._session_factory() as db:
            record = db.get(SessionRecord, session_id)
            if record is None:
                return None
            try:
                return json.loads(record.data)
            except ValueError:
                logger.warning(f"Discarding unreadable session {session_id[:8]}")
                return None

    def save(self, session_id: str, data: dict) -> None:
        with self._session_factory() as db, transaction(db, "Error saving session"):
            record = db.get(SessionRecord, session_id)
            if record is None:
                record = SessionRecord(id=session_id)
                db.add(record)
            record.data = json.dumps(data)
            # The cookie is re-signed on every save, so the row's age must follow it
            record.updated_at = utcnow()
            if self.max_age:
                self._purge_expired(db)

    def delete(self, session_id: str) -> None:
        with self._session_factory() as db, transaction(db, "Error deleting session"):
            record = db.get(SessionRecord, session_id)
            if record is not None:
                db.delete(record)

    def _purge_expired(self, db: Session) -> int:
        cutoff = utcnow() - timedelta(seconds=self.max_age)
        result = db.execute(
            delete(SessionRecord)
            .where(SessionRecord.updated_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.debug(f"Purged {result.rowcount} expired sessions")
        return result.rowcount


class SessionMiddleware(BaseHTTPMiddleware):
    """Load the session before the handler, persist it after."""

    def __init__(
        self,
        app,
        store: SessionStore,
        secret_key: str,
        cookie_name: str = "kb_session",
        max_age: int = 3600,
        secure: bool = False,
    ):
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure
        self.serializer = URLSafeTimedSerializer(secret_key, salt="kb-session")

    def load_session(self, request: Request) -> ServerSession:
        token = request.cookies.get(self.cookie_name)
        if not token:
            return ServerSession()
        try:
            session_id = self.serializer.loads(token, max_age=self.max_age)
        except (BadSignature, SignatureExpired):
            return ServerSession()
        data = self.store.load(session_id)
        if data is None:
            return ServerSession()
        return ServerSession(session_id, data)

    def save_session(self, session: ServerSession, response: Response) -> None:
        for stale_id in session.stale_ids:
            self.store.delete(stale_id)

        if not session.modified:
            return

        if not session.data:
            if session.id:
                self.store.delete(session.id)
            response.delete_cookie(
                key=self.cookie_name,
                httponly=True,
                secure=self.secure,
                samesite="lax"
            )
            return

        if session.id is None:
            session.id = new_session_id()
        self.store.save(session.id, session.data)
        response.set_cookie(
            key=self.cookie_name,
            value=self.serializer.dumps(session.id),
            httponly=True,
            secure=self.secure,
            samesite="lax",
            max_age=self.max_age
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        session = self.load_session(request)
        request.state.session = session
        response = await call_next(request)
        self.save_session(session, response)
        return response
