"""Rate limiting via slowapi.

One module-level Limiter shared by routers and wired into the app in
main.py. The unauthenticated email-approval link gets its own, tighter
limit since the token is the only credential on that route.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leave_portal.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.DEFAULT_RATE_LIMIT],
)

EMAIL_ACTION_LIMIT = settings.EMAIL_ACTION_RATE_LIMIT
