"""
Redis implementation of the metadata store.

Each user's metadata lives in one hash, ``user_meta:{user_id}``, with one
JSON-encoded field per key.
"""

import json
import logging
from typing import Any, Callable, List, Optional

import redis
from redis.exceptions import ConnectionError, RedisError, WatchError
from retry.api import retry_call

from . import Updater
from .exceptions import PersistenceFailure

logger = logging.getLogger(__name__)

KEY_PREFIX = 'user_meta:'


def _key(user_id: int) -> str:
    return f'{KEY_PREFIX}{user_id}'


class RedisMetadataStore(object):
    """
    Manages a connection to Redis.

    The client is thread safe and connections are attached at the time a
    command is executed. This class provides a container for configuration
    and translates Redis failures into :class:`.PersistenceFailure`.
    """

    def __init__(self, host: str, port: int, db: int = 0,
                 cluster: bool = False, tries: int = 3, delay: float = 0.5,
                 max_watch_retries: int = 10) -> None:
        """Open the connection to Redis."""
        logger.debug('New Redis connection at %s, port %s', host, port)
        if cluster:
            self.r = redis.RedisCluster(host=host, port=port)
        else:
            self.r = redis.StrictRedis(host=host, port=port, db=db)
        self._cluster = cluster
        self._tries = tries
        self._delay = delay
        self._max_watch_retries = max_watch_retries

    def _call(self, func: Callable, *args: Any) -> Any:
        """Call a Redis command, retrying dropped connections."""
        try:
            return retry_call(func, fargs=args, exceptions=ConnectionError,
                              tries=self._tries, delay=self._delay,
                              backoff=2, logger=logger)
        except ConnectionError as e:
            raise PersistenceFailure(f'Connection failed: {e}') from e
        except RedisError as e:
            raise PersistenceFailure(f'Redis command failed: {e}') from e

    def get(self, user_id: int, key: str) -> Optional[Any]:
        raw = self._call(self.r.hget, _key(user_id), key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, user_id: int, key: str, value: Any) -> None:
        self._call(self.r.hset, _key(user_id), key, json.dumps(value))

    def delete(self, user_id: int, key: str) -> None:
        self._call(self.r.hdel, _key(user_id), key)

    def update(self, user_id: int, key: str, fn: Updater) -> Optional[Any]:
        """
        Apply ``fn`` inside a WATCH/MULTI transaction.

        If another client writes the user's hash between our read and our
        write, the transaction is retried against the fresh value. Cluster
        mode does not support this, so the update degrades to a plain
        read-modify-write (last write wins).
        """
        if self._cluster:
            value = fn(self.get(user_id, key))
            if value is None:
                self.delete(user_id, key)
            else:
                self.set(user_id, key, value)
            return value

        name = _key(user_id)
        try:
            for _ in range(self._max_watch_retries):
                with self.r.pipeline() as pipe:
                    try:
                        pipe.watch(name)
                        raw = pipe.hget(name, key)
                        value = fn(None if raw is None else json.loads(raw))
                        pipe.multi()
                        if value is None:
                            pipe.hdel(name, key)
                        else:
                            pipe.hset(name, key, json.dumps(value))
                        pipe.execute()
                        return value
                    except WatchError:
                        logger.debug('Concurrent write to %s; retrying', name)
                        continue
        except RedisError as e:
            raise PersistenceFailure(f'Failed to update {key}: {e}') from e
        raise PersistenceFailure(f'Gave up updating {key} for {user_id}')

    def users_with(self, key: str) -> List[int]:
        """Scan every user hash for ``key``."""
        def _scan() -> List[int]:
            found = []
            for name in self.r.scan_iter(match=f'{KEY_PREFIX}*'):
                if isinstance(name, bytes):
                    name = name.decode('utf-8')
                if self.r.hexists(name, key):
                    found.append(int(name[len(KEY_PREFIX):]))
            return sorted(found)
        return self._call(_scan)
