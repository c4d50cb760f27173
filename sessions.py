"""
Server-side sessions for Flask. The cookie only carries a signed session id;
the session data lives in a store: MongoDB when the database is up, process
memory otherwise.
"""

import copy
import logging
import secrets
import threading
from datetime import datetime, timezone

from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from pymongo.errors import PyMongoError
from werkzeug.datastructures import CallbackDict

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


def _as_aware(value):
    # pymongo hands back naive UTC datetimes unless tz_aware is set
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ServerSideSession(CallbackDict, SessionMixin):

    def __init__(self, initial=None, sid=None, new=False):
        def on_update(self):
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid
        self.new = new
        self.modified = False


class MemorySessionStore:
    """Sessions held in this process only. Lost on restart."""

    name = 'memory'

    def __init__(self):
        self._records = {}
        self._lock = threading.Lock()

    def load(self, sid):
        with self._lock:
            record = self._records.get(sid)
            if record is None:
                return None
            data, expires = record
            if expires <= _utcnow():
                del self._records[sid]
                return None
            return copy.deepcopy(data)

    def save(self, sid, data, expires):
        with self._lock:
            self._sweep()
            self._records[sid] = (copy.deepcopy(data), expires)

    def _sweep(self):
        # abandoned sessions are never loaded again, so drop them here
        now = _utcnow()
        expired = [sid for sid, (_, expires) in self._records.items() if expires <= now]
        for sid in expired:
            del self._records[sid]

    def delete(self, sid):
        with self._lock:
            self._records.pop(sid, None)

    def __len__(self):
        with self._lock:
            return len(self._records)


class MongoSessionStore:
    """
    Sessions persisted in a MongoDB collection as
    ``{_id: sid, session: {...}, expires: datetime}``.

    The TTL index is created up front, so a dead or unauthorized connection
    fails here rather than on the first request.
    """

    name = 'mongodb'

    def __init__(self, collection):
        self.collection = collection
        self.collection.create_index('expires', expireAfterSeconds=0)

    def load(self, sid):
        try:
            doc = self.collection.find_one({'_id': sid})
        except PyMongoError as e:
            logger.error("Session store error: %s", e)
            return None
        if doc is None:
            return None
        # TTL monitor only sweeps once a minute
        expires = _as_aware(doc.get('expires'))
        if expires is not None and expires <= _utcnow():
            return None
        return doc.get('session') or {}

    def save(self, sid, data, expires):
        try:
            self.collection.replace_one(
                {'_id': sid},
                {'_id': sid, 'session': dict(data), 'expires': expires},
                upsert=True,
            )
        except PyMongoError as e:
            logger.error("Session store error: %s", e)

    def delete(self, sid):
        try:
            self.collection.delete_one({'_id': sid})
        except PyMongoError as e:
            logger.error("Session store error: %s", e)


class ServerSideSessionInterface(SessionInterface):
    """
    Signed-id cookie in front of a session store.

    Untouched sessions are not written back, and a fresh session that never
    received data is never stored.
    """

    salt = 'session-id'

    def __init__(self, store):
        self.store = store

    def _signer(self, app):
        return Signer(app.secret_key, salt=self.salt, key_derivation='hmac')

    def _new_session(self):
        return ServerSideSession(sid=secrets.token_urlsafe(32), new=True)

    def open_session(self, app, request):
        cookie = request.cookies.get(self.get_cookie_name(app))
        if not cookie:
            return self._new_session()
        try:
            sid = self._signer(app).unsign(cookie).decode('utf-8')
        except BadSignature:
            return self._new_session()
        data = self.store.load(sid)
        if data is None:
            return self._new_session()
        return ServerSideSession(data, sid=sid)

    def save_session(self, app, session, response):
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if not session:
            if session.modified:
                self.store.delete(session.sid)
                if not session.new:
                    response.delete_cookie(name, domain=domain, path=path)
            return

        if not self.should_set_cookie(app, session):
            return

        self.store.save(session.sid, dict(session), _utcnow() + app.permanent_session_lifetime)
        signed = self._signer(app).sign(session.sid.encode('utf-8')).decode('utf-8')
        response.set_cookie(
            name, signed,
            expires=self.get_expiration_time(app, session),
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )
        response.vary.add('Cookie')
