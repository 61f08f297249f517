import logging

from tutor_backend.core.conf import settings
from tutor_backend.core.registrar import register_app

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s | %(levelname)-8s | %(name)s - %(message)s',
)

app = register_app()
