"""Application factory wiring expo-auth into a Flask app."""

from typing import Any, Iterable, Mapping, NamedTuple, Optional

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import BadRequest, Forbidden, HTTPException, \
    NotFound, Unauthorized

from . import meta
from .auth import Auth
from .auth.autologin import AutoLoginTokens
from .auth.tokens import TokenEngine
from .membership import MembershipManager, Registrar, \
    register_default_providers
from .profile import ProfileBuilder, UserDirectory

SERVICES_KEY = 'expo_auth.services'


class Services(NamedTuple):
    """Long-lived objects shared by every request."""

    store: meta.MetadataStore
    tokens: TokenEngine
    autologin: AutoLoginTokens
    memberships: MembershipManager
    profiles: Optional[ProfileBuilder]


def jsonify_exception(error: HTTPException) -> Any:
    """Render an HTTP exception as ``{"reason": ...}``."""
    exc_resp = error.get_response()
    response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response


def create_web_app(config: Optional[Mapping[str, Any]] = None,
                   users: Optional[UserDirectory] = None,
                   membership_apis: Optional[Mapping[str, Any]] = None,
                   registrars: Iterable[Registrar] = ()) -> Flask:
    """
    Initialize a Flask app with auth and membership services.

    Parameters
    ----------
    config : mapping
        Overrides for :mod:`expo_auth.config`.
    users : :class:`.UserDirectory`
        Source of core user fields. Defaults to the ``users`` table when the
        SQL backend is in use; without one, profiles are not available.
    membership_apis : mapping
        API objects for the built-in providers, keyed by provider name.
    registrars : iterable
        Callables that register additional membership providers.

    """
    app = Flask('expo_auth')
    app.config.from_object('expo_auth.config')
    if config:
        app.config.update(config)
    meta.init_app(app)

    store = meta.get_metadata_store(app.config)
    engine = Auth.engine_from_config(store, app.config)
    Auth(app, engine)

    if users is None and app.config['META_BACKEND'] == 'sql':
        from .meta.sql import SQLUserDirectory
        users = SQLUserDirectory(store)  # type: ignore

    memberships = register_default_providers(
        MembershipManager(max_workers=int(app.config['MEMBERSHIP_MAX_WORKERS'])),
        membership_apis,
        registrars
    )
    profiles = None
    if users is not None:
        profiles = ProfileBuilder(
            users, store, memberships,
            allowed_meta_keys=app.config['ALLOWED_USER_META_KEYS'],
            reserved_keys=[engine.meta_key]
        )
    app.extensions[SERVICES_KEY] = Services(
        store=store,
        tokens=engine,
        autologin=AutoLoginTokens(
            store,
            ttl=int(app.config['AUTOLOGIN_TTL']),
            query_param=app.config['AUTOLOGIN_QUERY_PARAM']
        ),
        memberships=memberships,
        profiles=profiles
    )

    app.errorhandler(NotFound)(jsonify_exception)
    app.errorhandler(BadRequest)(jsonify_exception)
    app.errorhandler(Unauthorized)(jsonify_exception)
    app.errorhandler(Forbidden)(jsonify_exception)
    return app


def get_services(app: Optional[Flask] = None) -> Services:
    """Get the :class:`.Services` attached by :func:`create_web_app`."""
    app = app if app is not None else current_app
    services: Services = app.extensions[SERVICES_KEY]
    return services
