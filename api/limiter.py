"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()). A single shared instance
means all routes share one in-memory counter store.

RATE_LIMIT_ENABLED=false turns limiting off (test suites log in many times
per minute from one client address).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", enabled=_settings.rate_limit_enabled)

LOGIN_RATE_LIMIT = _settings.login_rate_limit
