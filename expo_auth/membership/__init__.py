"""
Membership status aggregated across subscription systems.

Build the manager once, at application start, and hand it to whatever needs
it. Additional providers can be added by passing registrar callables, which
receive the manager after the built-in providers are registered.
"""

from typing import Any, Callable, Iterable, Mapping, Optional

from .manager import MembershipFilter, MembershipManager
from .provider import MembershipProvider
from .providers import RestrictContentPro, WooCommerceMemberships

Registrar = Callable[[MembershipManager], None]


def register_default_providers(
        manager: MembershipManager,
        apis: Optional[Mapping[str, Any]] = None,
        registrars: Iterable[Registrar] = ()) -> MembershipManager:
    """
    Register the built-in providers, then run ``registrars``.

    Parameters
    ----------
    manager : :class:`.MembershipManager`
    apis : mapping
        API objects keyed by provider name. A provider with no API object is
        still registered, and reports itself unavailable.
    registrars : iterable of callables
        Each is called with ``manager``, and may register more providers.

    """
    apis = apis or {}
    for provider in (WooCommerceMemberships(), RestrictContentPro()):
        provider.api = apis.get(provider.name)
        manager.register_provider(provider)
    for registrar in registrars:
        registrar(manager)
    return manager


__all__ = ['MembershipFilter', 'MembershipManager', 'MembershipProvider',
           'Registrar', 'RestrictContentPro', 'WooCommerceMemberships',
           'register_default_providers']
