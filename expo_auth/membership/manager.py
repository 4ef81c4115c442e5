"""
Aggregates membership data across providers.

The manager knows nothing about particular plans. Applications that need
derived flags (say, ``is_premium`` for a given set of plan IDs) register a
filter with :meth:`MembershipManager.add_filter`:

.. code-block:: python

   def premium_flag(data, user_id, plan_ids):
       data['is_premium'] = 123 in plan_ids
       return data

   manager.add_filter(premium_flag)

"""

import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Sequence

from .provider import MembershipProvider
from .. import domain

logger = logging.getLogger(__name__)

MembershipFilter = Callable[[Dict[str, Any], int, List[domain.PlanID]],
                            Dict[str, Any]]


class MembershipManager(object):
    """Registry of membership providers, queried as one."""

    def __init__(self, providers: Sequence[MembershipProvider] = (),
                 max_workers: int = 1) -> None:
        """
        Parameters
        ----------
        providers : sequence of :class:`.MembershipProvider`
        max_workers : int
            If greater than one, providers are queried concurrently in a
            thread pool of this size.

        """
        self._providers: 'OrderedDict[str, MembershipProvider]' = \
            OrderedDict()
        self._filters: List[MembershipFilter] = []
        self._max_workers = max_workers
        for provider in providers:
            self.register_provider(provider)

    def register_provider(self, provider: MembershipProvider) -> None:
        """Register a provider; an existing one with the same name is replaced."""
        self._providers[provider.name] = provider

    @property
    def providers(self) -> List[MembershipProvider]:
        """All registered providers."""
        return list(self._providers.values())

    def available_providers(self) -> List[MembershipProvider]:
        """Registered providers whose backend is currently active."""
        return [p for p in self._providers.values() if p.is_available()]

    def add_filter(self, fn: MembershipFilter) -> None:
        """Register a hook applied to the result of :meth:`get_user_memberships`."""
        self._filters.append(fn)

    def get_user_memberships(self, user_id: int) -> Dict[str, Any]:
        """
        Get memberships from all available providers.

        Returns
        -------
        dict
            ``{'memberships': [...]}``, each membership a dict tagged with
            its provider's name, after all filters have been applied. Order
            is unspecified.

        """
        memberships = [
            domain.to_dict(membership._replace(provider=provider.name))
            for provider, found in self._fan_out(user_id)
            for membership in found
        ]
        data: Dict[str, Any] = {'memberships': memberships}
        plan_ids = [m['plan_id'] for m in memberships]
        for fn in self._filters:
            data = fn(data, user_id, plan_ids)
        return data

    def user_has_any_membership(self, user_id: int) -> bool:
        """Whether any available provider reports a membership."""
        for provider in self.available_providers():
            if self._memberships_from(provider, user_id):
                return True
        return False

    def user_has_membership(self, user_id: int,
                            plan_id: domain.PlanID) -> bool:
        """Whether any available provider reports membership of ``plan_id``."""
        for provider in self.available_providers():
            try:
                if provider.user_has_membership(user_id, plan_id):
                    return True
            except Exception:
                logger.exception('Provider %s failed membership check for'
                                 ' user ID %s', provider.name, user_id)
        return False

    def get_all_membership_plans(self) -> List[Dict[str, Any]]:
        """Plans from all available providers, tagged with provider name."""
        plans = []
        for provider in self.available_providers():
            try:
                found = provider.get_membership_plans()
            except Exception:
                logger.exception('Provider %s failed to list plans',
                                 provider.name)
                continue
            plans.extend(domain.to_dict(plan._replace(provider=provider.name))
                         for plan in found)
        return plans

    def _fan_out(self, user_id: int) -> List[tuple]:
        providers = self.available_providers()
        if self._max_workers > 1 and len(providers) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                results = pool.map(
                    lambda p: self._memberships_from(p, user_id), providers
                )
                return list(zip(providers, results))
        return [(p, self._memberships_from(p, user_id)) for p in providers]

    def _memberships_from(self, provider: MembershipProvider,
                          user_id: int) -> List[domain.Membership]:
        """A failing provider counts as having no memberships."""
        try:
            return list(provider.get_user_memberships(user_id))
        except Exception:
            logger.exception('Provider %s failed to get memberships for'
                             ' user ID %s', provider.name, user_id)
            return []
