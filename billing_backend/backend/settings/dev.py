# backend/settings/dev.py
"""
PATH: backend/settings/dev.py

LOCAL DEVELOPMENT SETTINGS
SQLite by default, verbose billing logs.
"""

from __future__ import annotations

from .base import *  # noqa: F403
from .base import LOGGING, env

DEBUG = True

ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "testserver"])

CORS_ALLOW_CREDENTIALS = True

LOGGING["loggers"]["billing"]["level"] = env("LOG_LEVEL", default="DEBUG")
