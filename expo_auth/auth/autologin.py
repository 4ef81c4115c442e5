"""
One-time auto-login tokens.

An authenticated app user can ask for a link that logs them into the website
in a browser. The link carries a random 32-character token which:

- expires after :data:`AUTOLOGIN_TTL` seconds;
- can be consumed exactly once;
- is stored only as a SHA-256 digest.

Grants are site-wide rather than per-user, so they are kept together in one
metadata value, :data:`GRANTS_META_KEY` under :data:`SITE_ID`, mapping token
digest to grant. Expired grants are pruned whenever that value is written.
"""

import hashlib
import logging
import secrets
import string
from typing import Any, Callable, Dict, NamedTuple, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .exceptions import ExpiredToken, UnknownSelector
from .tokens import now
from ..meta import MetadataStore

logger = logging.getLogger(__name__)

SITE_ID = 0
"""Metadata owner for site-wide values; never a real user ID."""

GRANTS_META_KEY = 'expo_auth_autologin'

AUTOLOGIN_TTL = 300
AUTOLOGIN_QUERY_PARAM = 'expo_autologin'
TOKEN_LENGTH = 32
ALPHABET = string.ascii_letters + string.digits

Grants = Dict[str, Dict[str, Any]]


class AutoLogin(NamedTuple):
    """A consumed auto-login grant."""

    user_id: int
    redirect_url: str


def digest(token: str) -> str:
    """SHA-256 hex digest of an auto-login token."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def add_query_arg(url: str, name: str, value: str) -> str:
    """Add or replace a query parameter on ``url``."""
    scheme, netloc, path, query, fragment = urlsplit(url)
    params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True)
              if k != name]
    params.append((name, value))
    return urlunsplit((scheme, netloc, path, urlencode(params), fragment))


def _live(raw: Optional[Any], current: int) -> Grants:
    """Grants from a stored value, minus malformed and expired ones."""
    if not isinstance(raw, dict):
        return {}
    grants: Grants = {}
    for key, grant in raw.items():
        if not isinstance(grant, dict):
            continue
        try:
            if int(grant['expires']) <= current:
                continue
        except (KeyError, TypeError, ValueError):
            continue
        grants[key] = grant
    return grants


class AutoLoginTokens(object):
    """Issues and redeems single-use auto-login tokens."""

    def __init__(self, store: MetadataStore, ttl: int = AUTOLOGIN_TTL,
                 query_param: str = AUTOLOGIN_QUERY_PARAM,
                 clock: Callable[[], int] = now) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self.query_param = query_param

    def issue(self, user_id: int, redirect_url: str) -> str:
        """Create a token and return ``redirect_url`` with it attached."""
        token = ''.join(secrets.choice(ALPHABET) for _ in range(TOKEN_LENGTH))
        created = self._clock()
        grant = {
            'user_id': user_id,
            'redirect_url': redirect_url,
            'created': created,
            'expires': created + self._ttl,
        }

        def _add(raw: Optional[Any]) -> Grants:
            grants = _live(raw, created)
            grants[digest(token)] = grant
            return grants

        self._store.update(SITE_ID, GRANTS_META_KEY, _add)
        logger.debug('Issued auto-login token for user %s', user_id)
        return add_query_arg(redirect_url, self.query_param, token)

    def consume(self, token: str) -> AutoLogin:
        """
        Redeem a token. The token is deleted whether or not it has expired.

        Raises
        ------
        :class:`.UnknownSelector`
            The token was never issued or has already been used.
        :class:`.ExpiredToken`
            The token is older than the TTL.

        """
        key = digest(token)
        current = self._clock()
        found: Dict[str, Any] = {}

        def _take(raw: Optional[Any]) -> Optional[Grants]:
            if isinstance(raw, dict) and isinstance(raw.get(key), dict):
                found.update(raw[key])
            grants = _live(raw, current)
            grants.pop(key, None)
            return grants or None

        self._store.update(SITE_ID, GRANTS_META_KEY, _take)
        if not found:
            logger.warning('Auto-login failed: unknown or used token')
            raise UnknownSelector('Unknown auto-login token')
        try:
            expires = int(found['expires'])
        except (KeyError, TypeError, ValueError):
            expires = 0
        if expires <= current:
            logger.warning('Auto-login failed: token expired for user ID %s',
                           found.get('user_id'))
            raise ExpiredToken('Auto-login token expired')
        return AutoLogin(int(found['user_id']), str(found['redirect_url']))

    def pending(self) -> int:
        """Number of stored grants that have not expired."""
        raw = self._store.get(SITE_ID, GRANTS_META_KEY)
        return len(_live(raw, self._clock()))

    def purge(self) -> int:
        """
        Drop expired grants.

        Returns
        -------
        int
            The number of grants removed.

        """
        removed = []

        def _prune(raw: Optional[Any]) -> Optional[Grants]:
            grants = _live(raw, self._clock())
            removed.append(len(raw) - len(grants)
                           if isinstance(raw, dict) else 0)
            return grants or None

        self._store.update(SITE_ID, GRANTS_META_KEY, _prune)
        logger.debug('Purged %s expired auto-login grants', removed[-1])
        return removed[-1]
