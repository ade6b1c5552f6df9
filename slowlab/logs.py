"""
Structured logging: JSON lines on stdout plus optional shipping to Loki.

The remote handler sits behind a QueueHandler so request threads only put
records on a bounded in-memory queue; a QueueListener thread does the HTTP
push. When the queue is full or the sink is failing, records are dropped
and counted instead of piling up behind a dead sink.
"""

import atexit
import json
import logging
import logging.handlers
import queue
import sys
import threading
import time
from datetime import datetime, timezone

import requests

_RESERVED_ATTRS = set(logging.LogRecord('', 0, '', 0, '', (), None).__dict__) | {
    'message', 'asctime', 'taskName',
}

_listener = None
_installed_handlers = []


class JsonFormatter(logging.Formatter):
    """One JSON object per record; `extra=` fields are merged at the top level"""

    def format(self, record):
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            payload[key] = value
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class LokiHandler(logging.Handler):
    """
    Pushes each record to the Loki push API.

    Delivery is best effort: transport errors and rejected pushes are counted
    in `dropped` and reported on stderr, never raised into the caller. After a
    failed push the sink is skipped for `backoff` seconds, so a backlog queued
    behind an unreachable Loki drains without waiting on a timeout per record.
    """

    def __init__(self, url, labels=None, timeout=2.0, session=None, backoff=30.0,
                 clock=time.monotonic):
        super().__init__()
        self.push_url = url.rstrip('/') + '/loki/api/v1/push'
        self.labels = dict(labels or {})
        self.timeout = timeout
        self.session = session or requests.Session()
        self.backoff = backoff
        self.clock = clock
        self.dropped = 0
        self._dropped_lock = threading.Lock()
        self._suspended_until = None

    def record_drop(self):
        with self._dropped_lock:
            self.dropped += 1

    def build_payload(self, record):
        stream = dict(self.labels, level=record.levelname.lower())
        timestamp_ns = str(int(record.created * 1_000_000_000))
        return {'streams': [{'stream': stream, 'values': [[timestamp_ns, self.format(record)]]}]}

    def emit(self, record):
        if self._suspended_until is not None:
            if self.clock() < self._suspended_until:
                self.record_drop()
                return
            self._suspended_until = None

        try:
            payload = self.build_payload(record)
        except Exception:
            self.handleError(record)
            return

        try:
            response = self.session.post(self.push_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.record_drop()
            self._suspended_until = self.clock() + self.backoff
            sys.stderr.write(
                f'Log sink push to {self.push_url} failed, pausing for {self.backoff}s: {e}\n'
            )

    def close(self):
        try:
            self.session.close()
        finally:
            super().close()


class DroppingQueueHandler(logging.handlers.QueueHandler):
    """QueueHandler that never blocks: a full queue counts the record as dropped"""

    def __init__(self, log_queue, sink):
        super().__init__(log_queue)
        self.sink = sink

    def enqueue(self, record):
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.sink.record_drop()


class SinkQueueListener(logging.handlers.QueueListener):
    def enqueue_sentinel(self):
        # The queue may be full at shutdown; wait for the listener to make room
        self.queue.put(self._sentinel)


def build_formatter(log_format):
    if log_format == 'json':
        return JsonFormatter()
    return logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')


def configure_logging(settings):
    """Install stdout (and optionally Loki) handlers on the root logger"""
    global _listener

    shutdown_logging()

    root = logging.getLogger()
    root.setLevel(settings.log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(build_formatter(settings.log_format))
    root.addHandler(stream_handler)
    _installed_handlers.append(stream_handler)

    if settings.loki_url:
        loki_handler = LokiHandler(
            settings.loki_url,
            labels={'service': settings.service_name, 'environment': settings.environment},
            timeout=settings.loki_timeout,
        )
        loki_handler.setFormatter(JsonFormatter())

        log_queue = queue.Queue(maxsize=settings.log_queue_size)
        queue_handler = DroppingQueueHandler(log_queue, loki_handler)
        root.addHandler(queue_handler)
        _installed_handlers.append(queue_handler)

        _listener = SinkQueueListener(log_queue, loki_handler)
        _listener.start()

    # Request logging is done by the observer; keep werkzeug to real problems
    logging.getLogger('werkzeug').setLevel(logging.ERROR)


def shutdown_logging():
    """Flush the remote sink and remove handlers added by configure_logging"""
    global _listener

    root = logging.getLogger()
    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None


atexit.register(shutdown_logging)
