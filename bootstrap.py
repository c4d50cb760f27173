"""
Startup sequence: connection attempt, runtime mode decision, session store,
route registration. Everything here happens once, before the listener binds.
"""

import enum
import logging
from collections import namedtuple

from pymongo.errors import PyMongoError

import db
from routes import register_routes
from sessions import MemorySessionStore, MongoSessionStore, ServerSideSessionInterface

logger = logging.getLogger(__name__)


class RuntimeMode(enum.Enum):
    CONNECTED = 'connected'
    DEGRADED = 'degraded'


class BootState(enum.Enum):
    NOT_STARTED = 'not_started'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DEGRADED_NO_DB = 'degraded_no_db'
    FAILED_FATAL = 'failed_fatal'
    SERVING = 'serving'


class FatalStartup(Exception):
    """The app must not serve: no usable database in production."""


BootResult = namedtuple('BootResult', ['mode', 'state', 'session_store'])


class Bootstrapper:

    def __init__(self, app, config):
        self.app = app
        self.config = config
        self.state = BootState.NOT_STARTED
        self.mode = None

    def _enter(self, state):
        logger.debug("Bootstrap: %s -> %s", self.state.value, state.value)
        self.state = state

    def _fail(self, reason):
        self._enter(BootState.FAILED_FATAL)
        logger.error("%s In production (APP_ENV=production) this is fatal, exiting.", reason)
        raise FatalStartup(reason)

    def run(self):
        """
        Decide the runtime mode, install sessions and routes.
        Raises FatalStartup in production when the database is unusable.
        """
        if self.state is not BootState.NOT_STARTED:
            raise RuntimeError("bootstrap already ran (state: %s)" % self.state.value)

        uri = self.config.MONGO_URI
        if not uri:
            message = "No MongoDB URI configured in config/default.json or env."
            if self.config.PRODUCTION:
                self._fail(message)
            logger.warning("%s Starting without DB (development only).", message)
            store = self._degrade()
        else:
            store = self._connect(uri)

        self.app.session_interface = ServerSideSessionInterface(store)
        register_routes(self.app)
        self._enter(BootState.SERVING)
        return BootResult(self.mode, self.state, store)

    def _connect(self, uri):
        self._enter(BootState.CONNECTING)
        logger.info("Connecting to MongoDB (URI from %s)", self.config.MONGO_URI_SOURCE)
        try:
            database = db.connect(self.app, uri, self.config.MONGO_TIMEOUT_MS)
        except db.ConnectionRejected as e:
            if e.is_auth_failure:
                logger.error(
                    "MongoDB authentication failed. Check DB_USER/DB_PASSWORD or your MONGO_URI, "
                    "and ensure your IP is allowed in Atlas Network Access."
                )
            else:
                logger.error("MongoDB connection error: %s", e.cause.__class__.__name__)
            if self.config.PRODUCTION:
                self._fail("MongoDB is unavailable.")
            logger.warning("Starting server without DB (development).")
            return self._degrade()

        self._enter(BootState.CONNECTED)
        self.mode = RuntimeMode.CONNECTED
        logger.info("MongoDB connected")
        try:
            return MongoSessionStore(database[self.config.SESSION_COLLECTION])
        except PyMongoError as e:
            logger.error("Failed to create MongoDB session store: %s", e)
            return MemorySessionStore()

    def _degrade(self):
        self._enter(BootState.DEGRADED_NO_DB)
        self.mode = RuntimeMode.DEGRADED
        return MemorySessionStore()
