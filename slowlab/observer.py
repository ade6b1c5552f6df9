"""
WSGI middleware that times every request/response cycle.

The measurement is taken when the server closes the response iterable, which
happens after the body has been written and also when the client went away
mid-response. If the wrapped application raises before returning a body the
measurement is taken right away with status 500. A streaming body that fails
partway through keeps the status already sent to the client.
"""

import logging
import time

from werkzeug.wsgi import ClosingIterator

from slowlab.metrics import TimingObservation

logger = logging.getLogger(__name__)


class _RequestTimer:
    def __init__(self, recorder, method, route, clock):
        self.recorder = recorder
        self.method = method
        self.route = route
        self.clock = clock
        self.status_code = None
        self.finished = False
        self.start = clock()
        recorder.request_started(method, route)

    def finish(self, status_code=None):
        if self.finished:
            return
        self.finished = True

        elapsed = max(self.clock() - self.start, 0.0)
        status_code = status_code or self.status_code or 500
        self.recorder.request_finished(self.method, self.route)
        self.recorder.observe(
            TimingObservation(self.method, self.route, status_code, elapsed)
        )

        level = logging.WARNING if status_code >= 500 else logging.INFO
        logger.log(
            level,
            f'Request completed: {self.method} {self.route} {status_code} ({elapsed * 1000:.2f}ms)',
            extra={
                'method': self.method,
                'route': self.route,
                'status_code': status_code,
                'duration_ms': round(elapsed * 1000, 2),
            },
        )


class RequestObserver:
    """Wraps a WSGI app; one histogram observation and one log record per request"""

    def __init__(self, wsgi_app, recorder, clock=time.perf_counter):
        self.wsgi_app = wsgi_app
        self.recorder = recorder
        self.clock = clock

    def __call__(self, environ, start_response):
        method = environ.get('REQUEST_METHOD', 'GET')
        route = environ.get('PATH_INFO') or '/'

        logger.info(
            f'Request received: {method} {route}',
            extra={
                'method': method,
                'route': route,
                'client_ip': environ.get('REMOTE_ADDR', 'unknown'),
            },
        )

        timer = _RequestTimer(self.recorder, method, route, self.clock)

        def observed_start_response(status, headers, exc_info=None):
            timer.status_code = int(status.split(' ', 1)[0])
            return start_response(status, headers, exc_info)

        try:
            app_iter = self.wsgi_app(environ, observed_start_response)
        except BaseException:
            timer.finish(500)
            raise

        return ClosingIterator(app_iter, timer.finish)
