"""
WSGI config for retail_pos project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'retail_pos.settings.local')

application = get_wsgi_application()
