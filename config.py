import json
import logging
import os
import re
from urllib.parse import quote

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_FILE = os.path.join(BASE_DIR, 'config', 'default.json')

# --- Atlas URI synthesis ---
DEFAULT_CLUSTER = 'cluster0.amyvm9g.mongodb.net'
ATLAS_QUERY = 'retryWrites=true&w=majority&appName=Cluster0'
_SCHEME_RE = re.compile(r'^mongodb(\+srv)?://')

DEFAULT_SESSION_SECRET = 'key that will sign cookies'


def _clean(value):
    """Return the trimmed string, or '' for None."""
    if value is None:
        return ''
    return str(value).strip()


def sanitize_credential(value):
    """
    Normalize a credential pasted from a shell profile or .env file.
    Drops a leading ``export`` token and one layer of matching quotes.
    """
    s = _clean(value)
    if s.startswith('export '):
        s = s[len('export '):].strip()
    if s and s[0] == s[-1] and s[0] in ('"', "'"):
        s = s[1:-1]
    return s


def load_file_config(path=None):
    """Load the optional JSON config file. Missing or broken files yield {}."""
    path = path or DEFAULT_CONFIG_FILE
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e.__class__.__name__)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not an object", path)
        return {}
    return data


def build_atlas_uri(user, password, cluster=None, db_name=None):
    """Synthesize an Atlas SRV connection string from sanitized credentials."""
    host = _SCHEME_RE.sub('', _clean(cluster) or DEFAULT_CLUSTER)
    db_segment = '/' + _clean(db_name) if _clean(db_name) else ''
    return 'mongodb+srv://{}:{}@{}{}?{}'.format(
        quote(user, safe=''), quote(password, safe=''), host, db_segment, ATLAS_QUERY
    )


def resolve_mongo_uri(environ, file_config):
    """
    Resolve the MongoDB connection string and name where it came from.

    Order: ``MONGO_URI`` env var, the config file's ``mongoURI``/``MONGO_URI``,
    then an Atlas URI built from ``DB_USER``/``DB_PASSWORD``. Returns
    ``(None, "none")`` when nothing is configured.
    """
    env_uri = _clean(environ.get('MONGO_URI'))
    if env_uri:
        return env_uri, 'env'

    file_uri = _clean(file_config.get('mongoURI')) or _clean(file_config.get('MONGO_URI'))
    if file_uri:
        return file_uri, 'file'

    user = sanitize_credential(environ.get('DB_USER'))
    password = sanitize_credential(environ.get('DB_PASSWORD'))
    if user and password:
        uri = build_atlas_uri(user, password, environ.get('DB_CLUSTER'), environ.get('DB_NAME'))
        return uri, 'credentials'

    return None, 'none'


def _int_setting(environ, name, default):
    raw = _clean(environ.get(name))
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s, using %s", name, default)
        return default


def _log_level_setting(environ):
    raw = _clean(environ.get('LOG_LEVEL')).upper()
    if not raw:
        return 'INFO'
    if not isinstance(logging.getLevelName(raw), int):
        logger.warning("Ignoring unknown LOG_LEVEL %s, using INFO", raw)
        return 'INFO'
    return raw


class Config:
    # --- Core App Config ---
    SESSION_COOKIE_NAME = 'connect.sid'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = False

    # --- MongoDB Configuration ---
    SESSION_COLLECTION = 'mySessions'
    USERS_COLLECTION = 'users'
    DEFAULT_DB_NAME = 'test'

    # Fault boundary sits outside Flask's own error handling
    PROPAGATE_EXCEPTIONS = True

    def __init__(self, environ=None, file_config=None):
        environ = os.environ if environ is None else environ
        if file_config is None:
            file_config = load_file_config(_clean(environ.get('CONFIG_FILE')) or None)

        self.MONGO_URI, self.MONGO_URI_SOURCE = resolve_mongo_uri(environ, file_config)
        self.SECRET_KEY = (
            _clean(environ.get('SESSION_SECRET'))
            or _clean(file_config.get('SESSION_SECRET'))
            or DEFAULT_SESSION_SECRET
        )
        self.PORT = _int_setting(environ, 'PORT', 3000)
        self.MONGO_TIMEOUT_MS = _int_setting(environ, 'MONGO_TIMEOUT_MS', 5000)
        self.PRODUCTION = _clean(environ.get('APP_ENV')).lower() == 'production'
        self.LOG_LEVEL = _log_level_setting(environ)
