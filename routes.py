from flask import Blueprint

import controllers
from sessions import ServerSideSessionInterface

BLUEPRINT_NAME = 'app'


class RouteRegistrationError(RuntimeError):
    """Routes were registered twice, or before the session interface."""


def register_routes(app):
    """
    Bind the application's URLs to the controller functions. Runs once per app,
    and only after a server-side session interface is in place because every
    handler reads or writes the session.
    """
    if BLUEPRINT_NAME in app.blueprints:
        raise RouteRegistrationError("routes are already registered on this app")
    if not isinstance(app.session_interface, ServerSideSessionInterface):
        raise RouteRegistrationError("install the session interface before registering routes")

    bp = Blueprint(BLUEPRINT_NAME, __name__)

    # lightweight route to inspect the session
    bp.add_url_rule('/test-session', view_func=controllers.test_session, methods=['GET'])

    bp.add_url_rule('/', view_func=controllers.landing_page, methods=['GET'])

    bp.add_url_rule('/login', view_func=controllers.login_get, methods=['GET'])
    bp.add_url_rule('/login', view_func=controllers.login_post, methods=['POST'])

    bp.add_url_rule('/register', view_func=controllers.register_get, methods=['GET'])
    bp.add_url_rule('/register', view_func=controllers.register_post, methods=['POST'])

    bp.add_url_rule('/dashboard', endpoint='dashboard_get',
                    view_func=controllers.is_auth(controllers.dashboard_get), methods=['GET'])
    bp.add_url_rule('/logout', view_func=controllers.logout_post, methods=['POST'])

    app.register_blueprint(bp)
    return bp
