"""
Request timing metrics on a private Prometheus registry.

Every label tuple (method, route, status_code) gets its own set of cumulative
histogram buckets. The route label is the raw request path, so a client
walking arbitrary URLs creates a new series per path. That cardinality risk
is accepted for this demo service and is not capped here.
"""

from collections import namedtuple

from prometheus_client import (
    CollectorRegistry, Counter, Histogram, Gauge,
    GCCollector, PlatformCollector, ProcessCollector,
    generate_latest, CONTENT_TYPE_LATEST,
)
from prometheus_client.utils import floatToGoString

BUCKETS = (0.1, 0.5, 1, 2, 3, 5, 10)

TimingObservation = namedtuple(
    'TimingObservation', ['method', 'route', 'status_code', 'elapsed_seconds']
)


class MetricsRecorder:
    """Owns the request histogram and renders it in the exposition format"""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry=None, default_collectors=True):
        self.registry = registry if registry is not None else CollectorRegistry()

        if default_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        self.request_latency = Histogram(
            'http_request_duration_seconds',
            'Duration of HTTP requests in seconds',
            ['method', 'route', 'status_code'],
            buckets=BUCKETS,
            registry=self.registry,
        )
        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'route', 'status_code'],
            registry=self.registry,
        )
        self.active_requests = Gauge(
            'http_requests_in_progress',
            'HTTP requests currently being served',
            ['method', 'route'],
            registry=self.registry,
        )

    def observe(self, observation):
        """Record one finished request/response cycle"""
        if observation.elapsed_seconds < 0:
            raise ValueError(f'elapsed_seconds must be >= 0, got {observation.elapsed_seconds}')

        labels = {
            'method': observation.method,
            'route': observation.route,
            'status_code': str(observation.status_code),
        }
        self.request_latency.labels(**labels).observe(observation.elapsed_seconds)
        self.request_count.labels(**labels).inc()

    def request_started(self, method, route):
        self.active_requests.labels(method=method, route=route).inc()

    def request_finished(self, method, route):
        self.active_requests.labels(method=method, route=route).dec()

    def snapshot(self):
        """Point-in-time text rendering of every metric in the registry"""
        return generate_latest(self.registry).decode('utf-8')

    def bucket_counts(self, method, route, status_code):
        """Cumulative bucket counts for one label tuple, keyed by upper bound"""
        counts = {}
        for bound in BUCKETS + (float('inf'),):
            value = self.registry.get_sample_value(
                'http_request_duration_seconds_bucket',
                {
                    'method': method,
                    'route': route,
                    'status_code': str(status_code),
                    'le': floatToGoString(bound),
                },
            )
            counts[bound] = int(value or 0)
        return counts

    def observation_count(self, method, route, status_code):
        value = self.registry.get_sample_value(
            'http_request_duration_seconds_count',
            {'method': method, 'route': route, 'status_code': str(status_code)},
        )
        return int(value or 0)
