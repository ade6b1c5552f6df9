"""
Flask application: health check, the slow endpoint and Prometheus export.

Endpoints:
- GET /         health check, never touches the simulator
- GET /slow     random 500-3000ms delay, 20% chance of a 500 response
- GET /metrics  Prometheus exposition text
"""

import logging
import time
from datetime import datetime, timezone

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

import slowlab
from slowlab.config import Settings
from slowlab.metrics import MetricsRecorder
from slowlab.observer import RequestObserver
from slowlab.simulator import LatencySimulator, SimulatedFailure

logger = logging.getLogger(__name__)


def utc_timestamp():
    """ISO-8601 UTC timestamp with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def elapsed_ms(start):
    return int(round((time.perf_counter() - start) * 1000))


def create_app(settings=None, simulator=None, recorder=None):
    """Build the app; collaborators are injectable so tests get isolated state"""
    settings = settings or Settings()
    simulator = simulator or LatencySimulator.from_settings(settings)
    recorder = recorder or MetricsRecorder(default_collectors=settings.default_collectors)

    app = Flask(__name__)
    app.extensions['slowlab'] = {
        'settings': settings,
        'simulator': simulator,
        'recorder': recorder,
    }
    app.wsgi_app = RequestObserver(app.wsgi_app, recorder)

    @app.route('/', methods=['GET'])
    def health():
        return jsonify({
            'status': 'healthy',
            'message': 'Server is running properly',
            'timestamp': utc_timestamp(),
            'uptime': round(time.monotonic() - slowlab.PROCESS_START, 3),
        }), 200

    @app.route('/slow', methods=['GET'])
    def slow():
        """Simulated slow operation; failures are answered here, not by the error handler"""
        start = time.perf_counter()
        logger.info('Slow operation started')

        try:
            simulated_ms = simulator.simulate()
        except SimulatedFailure as e:
            actual_ms = elapsed_ms(start)
            logger.error(
                f'Error in /slow endpoint: {e.message}',
                extra={'simulated_ms': e.delay_ms, 'actual_ms': actual_ms},
            )
            return jsonify({
                'status': 'error',
                'message': e.message,
                'actualTime': actual_ms,
                'timestamp': utc_timestamp(),
            }), 500

        actual_ms = elapsed_ms(start)
        logger.info(
            f'Slow operation succeeded in {actual_ms}ms',
            extra={'simulated_ms': simulated_ms, 'actual_ms': actual_ms},
        )
        return jsonify({
            'status': 'success',
            'message': 'Operation completed successfully',
            'simulatedTime': simulated_ms,
            'actualTime': actual_ms,
            'timestamp': utc_timestamp(),
        }), 200

    @app.route('/metrics', methods=['GET'])
    def metrics():
        return recorder.snapshot(), 200, {'Content-Type': recorder.content_type}

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        # Unknown path or unsupported method on a known path: no such endpoint
        if e.code in (404, 405):
            logger.warning('Route not found', extra={'status_code': e.code})
            return jsonify({
                'status': 'error',
                'message': 'Endpoint not found',
                'timestamp': utc_timestamp(),
            }), 404

        return jsonify({
            'status': 'error',
            'message': e.description,
            'timestamp': utc_timestamp(),
        }), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.error(f'Unhandled error: {e}', exc_info=e)
        return jsonify({
            'status': 'error',
            'message': 'Internal server error',
            'timestamp': utc_timestamp(),
        }), 500

    return app
