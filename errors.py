"""
Last-resort error handling. FaultBoundary wraps the Flask WSGI app and turns
any exception that escaped a handler into a JSON 500. Once the response has
started it can no longer do that, so the exception is logged and re-raised
for the server to deal with.
"""

import json
import logging

from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)

ERROR_KIND = 'internal_server_error'


def fault_response(error, production):
    payload = {'error': ERROR_KIND}
    if not production:
        payload['message'] = str(error)
    return Response(json.dumps(payload), status=500, mimetype='application/json')


class FaultBoundary:

    def __init__(self, wsgi_app, production=False):
        self.wsgi_app = wsgi_app
        self.production = production

    def __call__(self, environ, start_response):
        started = []

        def tracking_start_response(status, headers, exc_info=None):
            started.append(status)
            return start_response(status, headers, exc_info)

        try:
            app_iter = self.wsgi_app(environ, tracking_start_response)
        except Exception as e:
            logger.exception("Unhandled error: %s %s", environ.get('REQUEST_METHOD'), environ.get('PATH_INFO'))
            if started:
                raise
            return fault_response(e, self.production)(environ, start_response)

        return self._iterate(app_iter, environ)

    def _iterate(self, app_iter, environ):
        try:
            yield from app_iter
        except Exception:
            # headers are out, nothing more can be written
            logger.exception("Unhandled error while streaming: %s %s",
                             environ.get('REQUEST_METHOD'), environ.get('PATH_INFO'))
            raise
        finally:
            close = getattr(app_iter, 'close', None)
            if close is not None:
                close()
