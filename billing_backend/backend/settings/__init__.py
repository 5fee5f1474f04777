# backend/settings/__init__.py
"""
PATH: backend/settings/__init__.py

Settings package entrypoint.

Nothing is imported here. Select with DJANGO_SETTINGS_MODULE:
- backend.settings.dev   (local development, tests)
- backend.settings.prod  (production)
"""
