"""
Run the service with Flask's threaded server: python -m slowlab
"""

import logging

from slowlab.app import create_app
from slowlab.config import Settings
from slowlab.logs import configure_logging

logger = logging.getLogger('slowlab')


def main():
    settings = Settings()
    configure_logging(settings)

    app = create_app(settings)

    logger.info(
        f'Server is running on port {settings.port}',
        extra={'port': settings.port, 'environment': settings.environment},
    )
    logger.info(f'Health check: http://localhost:{settings.port}/')
    logger.info(f'Slow endpoint: http://localhost:{settings.port}/slow')
    logger.info(f'Metrics: http://localhost:{settings.port}/metrics')

    app.run(host=settings.host, port=settings.port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
