"""
WSGI config for the payments service.

Gunicorn serves the payments API through this callable when Uvicorn is not
used. Webhook delivery and the reconciliation jobs run in Celery workers,
not in this process.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
