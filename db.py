"""
MongoDB connection handling. Wraps Flask-PyMongo so the bootstrapper can
attempt a single connection and get back either a live database handle or a
ConnectionRejected describing why it failed.
"""

import re

from flask import current_app
from flask_pymongo import PyMongo
from pymongo.errors import PyMongoError

EXTENSION_KEY = 'mongo_db'

_AUTH_FAILURE_RE = re.compile(r'authentication failed|bad auth', re.IGNORECASE)


class ConnectionRejected(Exception):
    """The database refused or never answered the connection attempt."""

    def __init__(self, cause):
        super().__init__(str(cause))
        self.cause = cause

    @property
    def is_auth_failure(self):
        return bool(_AUTH_FAILURE_RE.search(str(self.cause)))


def connect(app, uri, timeout_ms):
    """
    Connect to MongoDB and ping it once. No retry.

    Returns the database named in the URI, or the configured default
    database when the URI names none. Raises ConnectionRejected.
    """
    try:
        mongo = PyMongo(
            app, uri=uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
        )
        mongo.cx.admin.command('ping')
    except (PyMongoError, ValueError) as e:
        raise ConnectionRejected(e) from e

    database = mongo.db
    if database is None:
        database = mongo.cx[app.config.get('DEFAULT_DB_NAME', 'test')]
    app.extensions[EXTENSION_KEY] = database
    return database


def get_db():
    """Database handle for the current app, or None when running without a DB."""
    return current_app.extensions.get(EXTENSION_KEY)


def users_collection():
    database = get_db()
    if database is None:
        return None
    return database[current_app.config.get('USERS_COLLECTION', 'users')]
