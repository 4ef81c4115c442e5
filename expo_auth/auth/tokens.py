"""
Bearer tokens using a selector/validator pair.

Token format: ``{user_id}.{selector}.{validator}``

- ``user_id`` allows a direct lookup of the owner's token set (no scanning);
- ``selector`` identifies the token within that set and is stored in plain;
- ``validator`` is the secret. Only its SHA-256 digest is stored.

The validator is 32 random bytes, so a fast digest is sufficient; a slow
password hash would add cost and no security. Verification compares digests
in constant time.

A user's token set is a single metadata value (see
:mod:`expo_auth.meta`) mapping selector to record. Each entry is one logged-in
device. Expired entries are pruned when a token is issued, and evicted when a
verification finds them.
"""

import hashlib
import hmac
import logging
import re
import secrets
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import BadValidator, ExpiredToken, InvalidToken, \
    MalformedToken, UnknownSelector
from .. import domain
from ..meta import MetadataStore

logger = logging.getLogger(__name__)

TOKEN_META_KEY = 'expo_auth_tokens'
"""Reserved metadata key under which token sets are stored."""

TOKEN_EXPIRY_DAYS = 30
DAY_IN_SECONDS = 86400

SELECTOR_BYTES = 8
VALIDATOR_BYTES = 32

SELECTOR_PATTERN = re.compile(r'^[a-f0-9]{16}$')
USER_ID_PATTERN = re.compile(r'^[1-9][0-9]*$')
TAGS = re.compile(r'<[^>]*>')
WHITESPACE = re.compile(r'\s+')

TokenSet = Dict[str, domain.TokenRecord]


def now() -> int:
    """Get the current epoch/unix time."""
    return int(time.time())


def hash_validator(validator: str) -> str:
    """SHA-256 hex digest of a validator."""
    return hashlib.sha256(validator.encode('utf-8')).hexdigest()


def clean_label(label: str) -> str:
    """Strip markup and collapse whitespace in a free-text device label."""
    return WHITESPACE.sub(' ', TAGS.sub('', label or '')).strip()


def parse(token: str) -> Tuple[int, str, str]:
    """
    Split a bearer token into ``(user_id, selector, validator)``.

    Raises
    ------
    :class:`.MalformedToken`
        If the token does not have exactly three parts or the user ID is not
        a positive integer written in ASCII digits without leading zeros.

    """
    if not token:
        raise MalformedToken('Empty token')
    parts = token.split('.')
    if len(parts) != 3:
        raise MalformedToken('Expected three dot-separated parts')
    user_id, selector, validator = parts
    if not USER_ID_PATTERN.fullmatch(user_id):
        raise MalformedToken('Invalid user ID in token')
    return int(user_id), selector, validator


class TokenEngine(object):
    """Issues, verifies and revokes bearer tokens for users."""

    def __init__(self, store: MetadataStore,
                 ttl: int = TOKEN_EXPIRY_DAYS * DAY_IN_SECONDS,
                 meta_key: str = TOKEN_META_KEY,
                 clock: Callable[[], int] = now) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self.meta_key = meta_key

    @property
    def ttl(self) -> int:
        """Lifetime of a token in seconds."""
        return self._ttl

    def issue(self, user_id: int, device: str = '') -> str:
        """
        Generate a new token for ``user_id``.

        Parameters
        ----------
        user_id : int
        device : str
            Optional device label, shown in :meth:`list_sessions`.

        Returns
        -------
        str
            The plain text token. This is the only time the validator is
            available; send it to the client once.

        """
        if user_id < 1:
            raise ValueError('user_id must be a positive integer')
        selector = secrets.token_hex(SELECTOR_BYTES)
        validator = secrets.token_hex(VALIDATOR_BYTES)
        issued = self._clock()
        record = domain.TokenRecord(
            selector=selector,
            hash=hash_validator(validator),
            created=issued,
            expires=issued + self._ttl,
            device=clean_label(device)
        )

        def _add(current: Optional[Any]) -> Dict[str, dict]:
            tokens = {
                sel: rec for sel, rec in self._load(current).items()
                if not rec.expired(issued)
            }
            tokens[selector] = record
            return self._dump(tokens)

        self._store.update(user_id, self.meta_key, _add)
        logger.debug('Issued token %s for user %s', selector, user_id)
        return f'{user_id}.{selector}.{validator}'

    def verify(self, token: str) -> int:
        """
        Verify a token and return the ID of the user who owns it.

        Raises
        ------
        :class:`.InvalidToken`
            For any failure. The specific subclass (and a log entry) tell
            malformed, unknown, expired and forged tokens apart.

        """
        try:
            user_id, selector, validator = parse(token)
        except MalformedToken as e:
            logger.warning('Token verification failed: %s', e.reason)
            raise

        record = self.tokens(user_id).get(selector)
        if record is None:
            logger.warning('Token verification failed: selector not found'
                           ' for user ID %s', user_id)
            raise UnknownSelector('Selector not found')

        if record.expired(self._clock()):
            logger.warning('Token verification failed: token expired for'
                           ' user ID %s', user_id)
            self._remove(user_id, selector)
            raise ExpiredToken('Token expired')

        if not hmac.compare_digest(record.hash, hash_validator(validator)):
            logger.warning('Token verification failed: invalid validator for'
                           ' user ID %s', user_id)
            raise BadValidator('Validator does not match')
        return user_id

    def is_valid(self, token: str) -> Optional[int]:
        """Return the user ID for a valid token, otherwise ``None``."""
        try:
            return self.verify(token)
        except InvalidToken:
            return None

    def invalidate(self, user_id: int, token: str) -> None:
        """
        Revoke a single token (log out the current device).

        The validator is not checked. Malformed tokens and unknown selectors
        are ignored.
        """
        try:
            _, selector, _ = parse(token)
        except MalformedToken:
            return
        self._remove(user_id, selector)

    def invalidate_all(self, user_id: int) -> None:
        """Revoke all tokens for a user (log out all devices)."""
        self._store.delete(user_id, self.meta_key)

    def list_sessions(self, user_id: int) -> List[domain.Session]:
        """Get the active (non-expired) sessions for a user."""
        current = self._clock()
        return [
            domain.Session(selector=rec.selector, device=rec.device,
                           created=rec.created, expires=rec.expires)
            for rec in self.tokens(user_id).values()
            if not rec.expired(current)
        ]

    def tokens(self, user_id: int) -> TokenSet:
        """Load the sanitized token set for a user, expired entries included."""
        return self._load(self._store.get(user_id, self.meta_key))

    def _remove(self, user_id: int, selector: str) -> None:
        def _drop(current: Optional[Any]) -> Optional[Dict[str, dict]]:
            tokens = self._load(current)
            if selector not in tokens:
                return current or None
            del tokens[selector]
            return self._dump(tokens) or None

        self._store.update(user_id, self.meta_key, _drop)

    def _load(self, raw: Optional[Any]) -> TokenSet:
        """
        Coerce a stored value into a token set.

        Entries with a malformed selector, or without a hash or expiry, are
        dropped. Anything that is not a mapping is an empty set.
        """
        if not isinstance(raw, dict):
            return {}
        tokens: TokenSet = {}
        for selector, data in raw.items():
            if not isinstance(selector, str) \
                    or not SELECTOR_PATTERN.match(selector):
                continue
            if not isinstance(data, dict):
                continue
            if not data.get('hash') or not data.get('expires'):
                continue
            try:
                expires = int(data['expires'])
                created = int(data.get('created', expires - self._ttl))
            except (TypeError, ValueError):
                continue
            tokens[selector] = domain.TokenRecord(
                selector=selector,
                hash=str(data['hash']),
                created=created,
                expires=expires,
                device=clean_label(str(data.get('device') or ''))
            )
        return tokens

    def _dump(self, tokens: TokenSet) -> Dict[str, dict]:
        return {selector: rec.as_meta() for selector, rec in tokens.items()}
