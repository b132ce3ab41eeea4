from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Bound to the app in create_app(); routes decorate with it directly.
limiter = Limiter(key_func=get_remote_address)


def spin_rate_limit():
    """Per-IP limit for spin requests, read from SPIN_RATE_LIMIT."""
    return current_app.config.get('SPIN_RATE_LIMIT', '600 per minute')
