"""
Service configuration read from the process environment.
"""

import os


def _get_int(name, default):
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f'{name} must be an integer, got {raw!r}') from None


def _get_float(name, default):
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f'{name} must be a number, got {raw!r}') from None


def _get_bool(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


class Settings:
    """Snapshot of the environment taken when the object is built"""

    def __init__(self):
        # Server
        self.host = os.getenv('HOST', '0.0.0.0')
        self.port = _get_int('PORT', 3000)
        self.environment = os.getenv('APP_ENV', 'development')
        self.service_name = os.getenv('SERVICE_NAME', 'slowlab')

        # Logging
        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.log_format = os.getenv('LOG_FORMAT', 'json').lower()
        self.loki_url = os.getenv('LOKI_URL') or None
        self.loki_timeout = _get_float('LOKI_TIMEOUT', 2.0)
        self.log_queue_size = _get_int('LOG_QUEUE_SIZE', 1000)

        # Simulator
        self.min_delay_ms = _get_int('SLOW_MIN_DELAY_MS', 500)
        self.max_delay_ms = _get_int('SLOW_MAX_DELAY_MS', 3000)
        self.failure_rate = _get_float('SLOW_FAILURE_RATE', 0.2)

        # Metrics
        self.default_collectors = _get_bool('METRICS_DEFAULT_COLLECTORS', True)

        self.validate()

    def validate(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f'PORT must be between 1 and 65535, got {self.port}')
        if self.min_delay_ms < 0 or self.max_delay_ms < self.min_delay_ms:
            raise ValueError(
                f'SLOW_MIN_DELAY_MS/SLOW_MAX_DELAY_MS must satisfy '
                f'0 <= min <= max, got {self.min_delay_ms}/{self.max_delay_ms}'
            )
        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError(f'SLOW_FAILURE_RATE must be within [0, 1], got {self.failure_rate}')
        if self.log_format not in ('json', 'text'):
            raise ValueError(f"LOG_FORMAT must be 'json' or 'text', got {self.log_format!r}")
        if self.loki_timeout <= 0:
            raise ValueError(f'LOKI_TIMEOUT must be positive, got {self.loki_timeout}')
        if self.log_queue_size < 1:
            raise ValueError(f'LOG_QUEUE_SIZE must be at least 1, got {self.log_queue_size}')
