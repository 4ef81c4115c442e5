"""
Per-user key/value metadata storage.

The token engine and profile builder only ever talk to a
:class:`MetadataStore`. Three backends are provided:

- :class:`.memory.InMemoryMetadataStore`, for tests and single-process use;
- :class:`.redis_store.RedisMetadataStore`, one Redis hash per user;
- :class:`.sql.SQLMetadataStore`, a ``user_meta`` table via SQLAlchemy.

Use :func:`init_app` / :func:`get_metadata_store` to build the backend named
by the ``META_BACKEND`` config parameter.
"""

from typing import Any, Callable, List, Optional, Protocol

from flask import Flask

from .exceptions import PersistenceFailure

Updater = Callable[[Optional[Any]], Optional[Any]]


class MetadataStore(Protocol):
    """Durable per-user key/value store."""

    def get(self, user_id: int, key: str) -> Optional[Any]:
        """Return the value stored under ``key``, or ``None``."""

    def set(self, user_id: int, key: str, value: Any) -> None:
        """Store a JSON-compatible ``value`` under ``key``."""

    def delete(self, user_id: int, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""

    def update(self, user_id: int, key: str, fn: Updater) -> Optional[Any]:
        """
        Replace the value under ``key`` with ``fn(current)``.

        Backends apply this atomically where they can. If ``fn`` returns
        ``None`` the key is deleted. Returns the new value.
        """

    def users_with(self, key: str) -> List[int]:
        """User ids that have a value stored under ``key``."""


def init_app(app: Flask) -> None:
    """Set config defaults for the metadata store."""
    app.config.setdefault('META_BACKEND', 'memory')
    app.config.setdefault('REDIS_HOST', 'localhost')
    app.config.setdefault('REDIS_PORT', '6379')
    app.config.setdefault('REDIS_DATABASE', '0')
    app.config.setdefault('REDIS_CLUSTER', '0')
    app.config.setdefault('META_DATABASE_URI', 'sqlite:///:memory:')


def get_metadata_store(config: dict) -> MetadataStore:
    """Build the backend named by ``META_BACKEND`` in ``config``."""
    backend = config.get('META_BACKEND', 'memory')
    if backend == 'memory':
        from .memory import InMemoryMetadataStore
        return InMemoryMetadataStore()
    if backend == 'redis':
        from .redis_store import RedisMetadataStore
        return RedisMetadataStore(
            config.get('REDIS_HOST', 'localhost'),
            int(config.get('REDIS_PORT', '6379')),
            int(config.get('REDIS_DATABASE', '0')),
            cluster=config.get('REDIS_CLUSTER', '0') == '1'
        )
    if backend == 'sql':
        from .sql import SQLMetadataStore
        return SQLMetadataStore.from_uri(
            config.get('META_DATABASE_URI', 'sqlite:///:memory:')
        )
    raise ValueError(f'Unknown metadata backend: {backend}')


__all__ = ['MetadataStore', 'PersistenceFailure', 'Updater',
           'get_metadata_store', 'init_app']
