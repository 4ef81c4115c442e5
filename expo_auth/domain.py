"""Defines token, session and membership concepts for expo-auth."""

from typing import Any, Dict, NamedTuple, Optional, Union
from datetime import datetime
from pytz import UTC

PlanID = Union[int, str]


class TokenRecord(NamedTuple):
    """One stored token, i.e. one logged-in device."""

    selector: str
    """Non-secret identifier of the token; key within the token set."""

    hash: str
    """SHA-256 hex digest of the validator. The validator is never stored."""

    created: int
    """Epoch seconds when the token was issued."""

    expires: int
    """Epoch seconds after which the token is dead."""

    device: str = ''
    """Free-text device label supplied at login."""

    def expired(self, now: int) -> bool:
        """A record is dead once ``now`` reaches :attr:`.expires`."""
        return self.expires <= now

    def as_meta(self) -> Dict[str, Any]:
        """Stored representation, without the selector (it is the key)."""
        return {'hash': self.hash, 'created': self.created,
                'expires': self.expires, 'device': self.device}


class Session(NamedTuple):
    """Public view of a :class:`.TokenRecord`; never includes the hash."""

    selector: str
    device: str
    created: int
    expires: int

    @property
    def created_at(self) -> datetime:
        """Issue time as an aware datetime."""
        return datetime.fromtimestamp(self.created, tz=UTC)

    @property
    def expires_at(self) -> datetime:
        """Expiry time as an aware datetime."""
        return datetime.fromtimestamp(self.expires, tz=UTC)


class Membership(NamedTuple):
    """A membership that currently grants access."""

    id: Any
    """Identifier of the membership within its provider."""

    plan_id: PlanID
    """Identifier of the plan within its provider."""

    name: str = ''
    """Human-readable plan name."""

    status: str = ''
    """Provider status, normalized (e.g. ``active``, ``cancelled``)."""

    provider: Optional[str] = None
    """
    Name of the provider that produced this record.

    Set by :class:`expo_auth.membership.manager.MembershipManager`, not by the
    provider itself.
    """


class Plan(NamedTuple):
    """A membership plan offered by a provider."""

    id: PlanID
    name: str = ''
    provider: Optional[str] = None


class User(NamedTuple):
    """Core user fields from the user directory."""

    user_id: int
    email: str
    username: str
    display_name: str = ''


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    Child NamedTuples are converted recursively; datetimes are rendered as
    ISO-8601 strings.
    """
    if not hasattr(obj, '_asdict'):
        return {}

    def _cast(value: Any) -> Any:
        if hasattr(value, '_asdict'):
            return to_dict(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, list):
            return [_cast(o) for o in value]
        return value

    return {key: _cast(value) for key, value in obj._asdict().items()}
