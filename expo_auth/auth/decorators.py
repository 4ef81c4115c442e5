"""
Enforcement of authentication on protected operations.

:func:`check_permission` is the one place where a request is accepted or
rejected. It re-runs bearer extraction and token verification rather than
trusting whatever :class:`expo_auth.auth.Auth` bound earlier, and it reports
every failure with the same generic message. Use :func:`protected` to guard
a Flask view:

.. code-block:: python

   from expo_auth.auth.decorators import protected
   from expo_auth.auth import current_user_id


   @blueprint.route('/user/sessions', methods=['GET'])
   @protected
   def get_sessions():
       user_id = current_user_id()
       ...

"""

import logging
from functools import wraps
from typing import Any, Callable, Optional

from flask import g, request
from werkzeug.exceptions import Unauthorized

from .bearer import get_engine, get_token
from .exceptions import InvalidToken

INVALID_TOKEN = 'Invalid or expired token.'

logger = logging.getLogger(__name__)


def check_permission(req: Optional[Any] = None) -> int:
    """
    Verify the bearer token on ``req`` (default: the current request).

    A principal bound by :meth:`.Auth.load_principal` from ``REMOTE_USER``
    (or by another extension) is not accepted here. Protected views always
    require a bearer token, so requests authenticated only upstream get a
    401.

    Returns
    -------
    int
        The authenticated user ID, which is also bound to the request.

    Raises
    ------
    :class:`.Unauthorized`
        If there is no token or it does not verify.

    """
    req = req if req is not None else request
    token = get_token(req)
    if token is None:
        logger.warning('Permission denied: no token for route %s', req.path)
        raise Unauthorized(INVALID_TOKEN)
    try:
        user_id = get_engine().verify(token)
    except InvalidToken as e:
        logger.warning('Permission denied: %s for route %s', e.reason,
                       req.path)
        raise Unauthorized(INVALID_TOKEN) from e
    req.auth = user_id
    g.user_id = user_id
    return user_id


def protected(func: Callable) -> Callable:
    """Require a valid bearer token before calling ``func``."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        check_permission()
        logger.debug('Request is authorized, proceeding')
        return func(*args, **kwargs)
    return wrapper
