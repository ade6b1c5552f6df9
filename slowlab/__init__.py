"""
Slow endpoint lab: a Flask service with an artificial variable-latency,
variable-failure endpoint, Prometheus request histograms and structured logs.
"""

import time

__version__ = '1.0.0'

# Reference point for the health check's uptime. The package is the first
# thing `python -m slowlab` and a WSGI server import, so this is as close to
# process start as the service can observe portably.
PROCESS_START = time.monotonic()
