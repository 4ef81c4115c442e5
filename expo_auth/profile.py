"""
Assembles user profile data for the request layer.

A profile is the user's core fields, any requested metadata, and their
aggregated memberships. Applications can add to it with
:meth:`ProfileBuilder.add_filter`; filters receive
``(data, user_id, plan_ids)`` and return the (possibly augmented) data.

Metadata access is restricted: writes are limited to an allow-list of keys,
and reserved keys (the token set) can be neither read nor written.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from . import domain
from .auth.tokens import clean_label
from .membership import MembershipManager
from .meta import MetadataStore

logger = logging.getLogger(__name__)

ProfileFilter = Callable[[Dict[str, Any], int, List[domain.PlanID]],
                         Dict[str, Any]]

UNSAFE_KEY_CHARS = re.compile(r'[^a-z0-9_\-]')


class ProfileError(ValueError):
    """Base class for profile errors."""


class UserNotFound(ProfileError):
    """No such user in the directory."""


class NoAllowedKeys(ProfileError):
    """None of the submitted metadata keys may be written."""


class UserDirectory(Protocol):
    """Read access to core user records."""

    def get_user(self, user_id: int) -> Optional[domain.User]:
        """Get a user by ID, or ``None``."""


def sanitize_key(key: str) -> str:
    """Lowercase, and drop anything but ``a-z``, ``0-9``, ``_`` and ``-``."""
    return UNSAFE_KEY_CHARS.sub('', str(key).lower())


def string_list(value: Any) -> List[str]:
    """
    Coerce a query parameter to a list of clean strings.

    Accepts a list (``?keys[]=a&keys[]=b``) or a comma-separated string
    (``?keys=a,b``). Anything else is an empty list.
    """
    if isinstance(value, str):
        value = [part.strip() for part in value.split(',') if part.strip()]
    if not isinstance(value, (list, tuple)):
        return []
    return [clean_label(str(v)) for v in value]


class ProfileBuilder(object):
    """Builds profile payloads and mediates metadata reads and writes."""

    def __init__(self, users: UserDirectory, store: MetadataStore,
                 memberships: MembershipManager,
                 allowed_meta_keys: Iterable[str] = (),
                 reserved_keys: Iterable[str] = ()) -> None:
        self._users = users
        self._store = store
        self._memberships = memberships
        self._reserved = frozenset(reserved_keys)
        self.allowed_meta_keys = frozenset(
            sanitize_key(k) for k in allowed_meta_keys
        ) - self._reserved
        self._filters: List[ProfileFilter] = []

    def add_filter(self, fn: ProfileFilter) -> None:
        """Register a hook applied to the result of :meth:`build`."""
        self._filters.append(fn)

    def get_user_data(self, user_id: int,
                      meta_keys: Iterable[str] = ()) -> Optional[dict]:
        """
        Core user fields plus the requested metadata.

        Returns ``None`` if the user does not exist.
        """
        user = self._users.get_user(user_id)
        if user is None:
            return None
        data = domain.to_dict(user)
        data.update(self.get_meta(user_id, meta_keys))
        return data

    def build(self, user_id: int,
              meta_keys: Iterable[str] = ()) -> Dict[str, Any]:
        """
        Assemble the full profile for ``user_id``.

        Raises
        ------
        :class:`.UserNotFound`

        """
        data = self.get_user_data(user_id, meta_keys)
        if data is None:
            logger.warning('Profile request for non-existent user ID: %s',
                           user_id)
            raise UserNotFound(f'No user with ID {user_id}')
        data.update(self._memberships.get_user_memberships(user_id))
        plan_ids = [m['plan_id'] for m in data.get('memberships', [])]
        for fn in self._filters:
            data = fn(data, user_id, plan_ids)
        return data

    def get_meta(self, user_id: int, keys: Iterable[str]) -> Dict[str, Any]:
        """Read metadata values; missing and reserved keys map to ``None``."""
        meta: Dict[str, Any] = {}
        for key in keys:
            key = sanitize_key(key)
            if not key:
                continue
            if key in self._reserved:
                logger.warning('Attempt to read reserved meta key by user'
                               ' ID %s', user_id)
                meta[key] = None
                continue
            meta[key] = self._store.get(user_id, key) or None
        return meta

    def update_meta(self, user_id: int, meta: Dict[str, Any]) -> Dict[str, str]:
        """
        Write the allowed subset of ``meta``.

        Keys are sanitized and values are stored as clean text.

        Returns
        -------
        dict
            The keys and values that were written.

        Raises
        ------
        :class:`.ProfileError`
            If ``meta`` is not a non-empty mapping.
        :class:`.NoAllowedKeys`
            If no submitted key is on the allow-list.

        """
        if not isinstance(meta, dict) or not meta:
            logger.warning('Invalid meta update request from user ID: %s',
                           user_id)
            raise ProfileError('Meta must be a non-empty object.')

        allowed = {sanitize_key(k): v for k, v in meta.items()
                   if sanitize_key(k) in self.allowed_meta_keys}
        if not allowed:
            logger.warning('No allowed meta keys in update request from user'
                           ' ID: %s. Requested keys: %s', user_id,
                           ', '.join(str(k) for k in meta))
            raise NoAllowedKeys('None of the provided meta keys are allowed.')

        updated = {}
        for key, value in allowed.items():
            value = clean_label(str(value))
            self._store.set(user_id, key, value)
            updated[key] = value
        return updated
