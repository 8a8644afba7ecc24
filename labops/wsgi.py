"""
WSGI config for the labops project.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "labops.settings")
application = get_wsgi_application()
