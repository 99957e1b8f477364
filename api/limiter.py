"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
that apply per-route limits with @limiter.limit(): admin login, the share
verify/OTP/guest endpoints and comment creation.

Every decorated route must use this one instance: counters live in the
limiter's memory:// storage, and a second Limiter would count separately.

These are coarse per-IP limits. Per-share brute-force lockouts with
Retry-After are a separate, Redis-backed mechanism in auth/lockout.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
