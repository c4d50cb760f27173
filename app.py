import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask

from bootstrap import Bootstrapper, FatalStartup, RuntimeMode
from config import Config
from controllers import login_manager
from errors import FaultBoundary

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DEV_CONTENT_SECURITY_POLICY = (
    "default-src 'none'; connect-src 'self' http://localhost:{port}; "
    "style-src 'self' 'unsafe-inline'; img-src 'self' https://image.shutterstock.com data:;"
)


# --- App Initialization ---
def create_app(config):
    """
    Build the Flask app. Routes are not bound here; the Bootstrapper binds
    them once the session store is decided.
    """
    app = Flask(
        __name__,
        template_folder=os.path.join(BASE_DIR, 'templates'),
        static_folder=os.path.join(BASE_DIR, 'static'),
    )
    app.config.from_object(config)
    login_manager.init_app(app)

    # Development Content-Security-Policy: inline styles allowed for convenience
    if not config.PRODUCTION:
        policy = DEV_CONTENT_SECURITY_POLICY.format(port=config.PORT)

        @app.after_request
        def set_content_security_policy(response):
            response.headers['Content-Security-Policy'] = policy
            return response

    app.wsgi_app = FaultBoundary(app.wsgi_app, production=config.PRODUCTION)
    return app


def boot(config):
    """Create the app and run the startup sequence. May raise FatalStartup."""
    app = create_app(config)
    result = Bootstrapper(app, config).run()
    logger.info("Runtime mode: %s, sessions: %s", result.mode.value, result.session_store.name)
    return app, result


# --- Main Execution ---
def main():
    load_dotenv()
    config = Config()
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        app, result = boot(config)
    except FatalStartup:
        sys.exit(1)

    suffix = '' if result.mode is RuntimeMode.CONNECTED else ' (no DB)'
    logger.info("Server listening on port %s%s", config.PORT, suffix)
    app.run(host='0.0.0.0', port=config.PORT, debug=False)


if __name__ == '__main__':
    main()
