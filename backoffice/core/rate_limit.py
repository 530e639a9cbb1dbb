"""
Shared slowapi limiter.

Routes decorate themselves with ``@limiter.limit(...)``; backoffice.main
installs the limiter on ``app.state`` and the 429 handler.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from backoffice.core import config


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Falls back to the client address for anonymous requests.
    """
    auth = request.headers.get("Authorization", "")
    return auth or get_remote_address(request)


limiter = Limiter(key_func=get_authorization_header, enabled=config.RATE_LIMIT_ENABLED)
