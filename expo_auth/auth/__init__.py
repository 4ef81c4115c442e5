"""
Attaches the authenticated user to requests.

Intended for use in a Flask application factory, for example:

.. code-block:: python

   from flask import Flask
   from expo_auth.auth import Auth
   from expo_auth.auth.tokens import TokenEngine
   from expo_auth.meta import get_metadata_store


   def create_web_app() -> Flask:
       app = Flask('someapp')
       app.config.from_pyfile('config.py')
       store = get_metadata_store(app.config)
       Auth(app, TokenEngine(store))    # Registers the before_request hook.
       app.register_blueprint(routes.blueprint)
       return app

Authentication here is advisory: a missing or bad token leaves the request
unauthenticated and is not an error. Protected views enforce it with
:func:`.decorators.protected` / :func:`.decorators.check_permission`.
"""

import logging
from typing import Optional

from flask import Flask, g, request

from . import decorators, tokens
from .bearer import EXTENSION_KEY, get_engine, get_token
from .exceptions import InvalidToken
from .tokens import DAY_IN_SECONDS, TokenEngine

logger = logging.getLogger(__name__)


class Auth(object):
    """Binds the user ID from a verified bearer token to ``request.auth``."""

    def __init__(self, app: Optional[Flask] = None,
                 engine: Optional[TokenEngine] = None) -> None:
        """
        Initialize ``app`` with `Auth`.

        Parameters
        ----------
        app : :class:`Flask`
        engine : :class:`.TokenEngine`
            Shared across requests; built once by the application factory.

        """
        self.engine = engine
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """
        Attach :meth:`.load_principal` to the Flask app.

        Parameters
        ----------
        app : :class:`Flask`

        """
        self.app = app
        app.config.setdefault('AUTH_TOKEN_META_KEY', tokens.TOKEN_META_KEY)
        app.config.setdefault('AUTH_TOKEN_EXPIRY_DAYS',
                              tokens.TOKEN_EXPIRY_DAYS)
        if self.engine is None:
            raise ValueError('Auth needs a TokenEngine')
        app.extensions[EXTENSION_KEY] = self
        app.before_request(self.load_principal)

    @classmethod
    def engine_from_config(cls, store: object, config: dict) -> TokenEngine:
        """Build a :class:`.TokenEngine` from application config."""
        days = int(config.get('AUTH_TOKEN_EXPIRY_DAYS',
                              tokens.TOKEN_EXPIRY_DAYS))
        return TokenEngine(
            store,  # type: ignore
            ttl=days * DAY_IN_SECONDS,
            meta_key=config.get('AUTH_TOKEN_META_KEY', tokens.TOKEN_META_KEY)
        )

    def load_principal(self) -> None:
        """
        Look for a bearer token, and attach its user ID to the request.

        If a principal was already established (by another extension, or by
        the server via ``REMOTE_USER``), it is left alone.
        """
        if getattr(request, 'auth', None) is not None:
            return

        remote_user = request.environ.get('REMOTE_USER')
        if remote_user and str(remote_user).isdigit():
            logger.debug('Principal established upstream: %s', remote_user)
            request.auth = int(remote_user)
            g.user_id = request.auth
            return

        request.auth = None
        g.user_id = None
        token = get_token(request)
        if token is None:
            logger.debug('No auth token')
            return

        try:
            request.auth = self.engine.verify(token)  # type: ignore
        except InvalidToken as e:
            # Let the protected views decide what to do.
            logger.info('Auth token not valid: %s', e.reason)
            return
        g.user_id = request.auth


def current_user_id() -> Optional[int]:
    """The user ID bound to the current request, if any."""
    return getattr(request, 'auth', None)


__all__ = ['Auth', 'current_user_id', 'decorators', 'get_engine', 'tokens']
