"""Flask configuration for expo-auth."""

import os

AUTH_TOKEN_META_KEY = os.environ.get('AUTH_TOKEN_META_KEY', 'expo_auth_tokens')
"""Reserved metadata key holding each user's token set."""

AUTH_TOKEN_EXPIRY_DAYS = int(os.environ.get('AUTH_TOKEN_EXPIRY_DAYS', '30'))

META_BACKEND = os.environ.get('META_BACKEND', 'memory')
"""One of ``memory``, ``redis`` or ``sql``."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')

META_DATABASE_URI = os.environ.get('META_DATABASE_URI', 'sqlite:///:memory:')

AUTOLOGIN_TTL = int(os.environ.get('AUTOLOGIN_TTL', '300'))
AUTOLOGIN_QUERY_PARAM = os.environ.get('AUTOLOGIN_QUERY_PARAM',
                                       'expo_autologin')

ALLOWED_USER_META_KEYS = [
    key.strip() for key
    in os.environ.get('ALLOWED_USER_META_KEYS', '').split(',')
    if key.strip()
]
"""Metadata keys users may write through the profile API."""

MEMBERSHIP_MAX_WORKERS = int(os.environ.get('MEMBERSHIP_MAX_WORKERS', '1'))
