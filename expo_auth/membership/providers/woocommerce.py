"""Membership provider for WooCommerce Memberships."""

import logging
from typing import Any, List, Optional

from ... import domain

logger = logging.getLogger(__name__)

ACCESS_STATUSES = frozenset(['active', 'complimentary', 'free_trial',
                             'pending'])
"""
Statuses that grant access.

``pending`` is "pending cancellation": cancelled, but still inside the paid
period. ``paused``, ``delayed``, ``expired`` and ``cancelled`` do not.
"""


def normalize_status(status: str) -> str:
    """Strip the ``wcm-`` post status prefix."""
    status = (status or '').strip().lower()
    if status.startswith('wcm-'):
        status = status[4:]
    return status


class WooCommerceMemberships(object):
    """
    Wraps the WooCommerce Memberships API.

    ``api`` is any object exposing the plugin's functions:

    - ``get_user_memberships(user_id)`` (required) returning membership
      objects with ``get_id()``, ``get_plan()`` and ``get_status()``;
    - ``is_user_active_member(user_id, plan_id)``;
    - ``get_membership_plans()`` returning plans with ``get_id()`` and
      ``get_name()``.

    The provider is available only when the required function is present.
    """

    def __init__(self, api: Optional[Any] = None) -> None:
        self.api = api

    @property
    def name(self) -> str:
        return 'woocommerce-memberships'

    def is_available(self) -> bool:
        return self._has('get_user_memberships')

    def get_user_memberships(self, user_id: int) -> List[domain.Membership]:
        if not self.is_available():
            return []

        memberships = []
        for membership in self.api.get_user_memberships(user_id) or []:
            plan = membership.get_plan()
            if not plan:
                continue
            status = normalize_status(membership.get_status())
            if status not in ACCESS_STATUSES:
                logger.debug('Skipping %s membership %s', status,
                             membership.get_id())
                continue
            memberships.append(domain.Membership(
                id=membership.get_id(),
                plan_id=plan.get_id(),
                name=plan.get_name(),
                status=status
            ))
        return memberships

    def user_has_membership(self, user_id: int,
                            plan_id: domain.PlanID) -> bool:
        if not self.is_available():
            return False
        if not self._has('is_user_active_member'):
            return any(m.plan_id == plan_id
                       for m in self.get_user_memberships(user_id))
        return bool(self.api.is_user_active_member(user_id, plan_id))

    def get_membership_plans(self) -> List[domain.Plan]:
        if not self.is_available():
            return []
        if not self._has('get_membership_plans'):
            return []
        return [domain.Plan(id=plan.get_id(), name=plan.get_name())
                for plan in self.api.get_membership_plans() or []]

    def _has(self, function: str) -> bool:
        return self.api is not None \
            and callable(getattr(self.api, function, None))
