"""
Command-line helpers for managing bearer tokens.

The commands use the metadata backend named by the environment (see
:mod:`expo_auth.config`), so point them at the same store as the app:

.. code-block:: bash

   $ META_BACKEND=redis REDIS_HOST=localhost expo-auth issue-token \
        --user-id 42 --device "test phone"
   42.1f0c5b7a9e2d4c68.<64 hex chars>

   $ META_BACKEND=redis expo-auth list-sessions --user-id 42

Use the token in requests to protected endpoints by setting the header
``Authorization: Bearer <token>``.
"""

import json
from datetime import datetime

import click
from pytz import UTC

from . import domain
from .factory import create_web_app, get_services


def _services():  # type: ignore
    return get_services(create_web_app())


@click.group()
def cli() -> None:
    """Manage expo-auth tokens."""


@cli.command('issue-token')
@click.option('--user-id', prompt='Numeric user ID', type=int)
@click.option('--device', prompt='Device label', default='')
def issue_token(user_id: int, device: str) -> None:
    """Issue a token and print it."""
    click.echo(_services().tokens.issue(user_id, device))


@cli.command('list-sessions')
@click.option('--user-id', prompt='Numeric user ID', type=int)
@click.option('--as-json', is_flag=True, default=False)
def list_sessions(user_id: int, as_json: bool) -> None:
    """Show the active sessions of a user."""
    sessions = _services().tokens.list_sessions(user_id)
    if as_json:
        click.echo(json.dumps([domain.to_dict(s) for s in sessions]))
        return
    if not sessions:
        click.echo('No active sessions')
    for session in sessions:
        expires = datetime.fromtimestamp(session.expires, tz=UTC)
        click.echo(f'{session.selector}  {session.device or "-"}'
                   f'  expires {expires.isoformat()}')


@cli.command('revoke')
@click.option('--user-id', prompt='Numeric user ID', type=int)
@click.option('--token', prompt='Token', hide_input=True)
def revoke(user_id: int, token: str) -> None:
    """Revoke a single token."""
    _services().tokens.invalidate(user_id, token)
    click.echo('Revoked')


@cli.command('revoke-all')
@click.option('--user-id', prompt='Numeric user ID', type=int)
def revoke_all(user_id: int) -> None:
    """Revoke every token of a user."""
    _services().tokens.invalidate_all(user_id)
    click.echo(f'Revoked all tokens for user {user_id}')


@cli.command('purge-tokens')
@click.confirmation_option(prompt='Delete the token sets of ALL users?')
def purge_tokens() -> None:
    """Delete every stored token set, e.g. when uninstalling."""
    services = _services()
    user_ids = services.store.users_with(services.tokens.meta_key)
    for user_id in user_ids:
        services.tokens.invalidate_all(user_id)
    click.echo(f'Deleted token sets for {len(user_ids)} users')


@cli.command('purge-autologin')
def purge_autologin() -> None:
    """Delete expired auto-login grants."""
    removed = _services().autologin.purge()
    click.echo(f'Deleted {removed} expired auto-login grants')


if __name__ == '__main__':
    cli()
