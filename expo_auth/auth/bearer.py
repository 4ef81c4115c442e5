"""Extract bearer tokens from requests."""

import re
from typing import Any, Optional

from flask import current_app

from .exceptions import ConfigurationError
from .tokens import TokenEngine

BEARER = re.compile(r'^\s*Bearer\s+(.+?)\s*$', re.IGNORECASE)
EXTENSION_KEY = 'expo_auth'


def parse_authorization(header: Optional[str]) -> Optional[str]:
    """Get the token from an ``Authorization: Bearer <token>`` value."""
    if not header:
        return None
    match = BEARER.match(header)
    if match is None:
        return None
    return match.group(1)


def get_token(req: Any) -> Optional[str]:
    """
    Get the bearer token from a request, or ``None``.

    Some server configurations only pass the header through as
    ``REDIRECT_HTTP_AUTHORIZATION``, so we look there too.
    """
    header = req.headers.get('Authorization') \
        or req.environ.get('HTTP_AUTHORIZATION') \
        or req.environ.get('REDIRECT_HTTP_AUTHORIZATION')
    return parse_authorization(header)


def get_engine(app: Any = None) -> TokenEngine:
    """Get the :class:`.TokenEngine` attached to the application."""
    app = app if app is not None else current_app
    extension = app.extensions.get(EXTENSION_KEY)
    if extension is None or extension.engine is None:
        raise ConfigurationError('Auth is not initialized on this app')
    return extension.engine
