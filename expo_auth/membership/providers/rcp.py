"""Membership provider for Restrict Content Pro."""

from typing import Any, Dict, List, Optional

from ... import domain

QUERY_STATUSES = ['active', 'cancelled']
"""Cancelled memberships may still be inside their paid period."""


class RestrictContentPro(object):
    """
    Wraps the Restrict Content Pro API.

    ``api`` is any object exposing the plugin's functions:

    - ``get_customer_by_user_id(user_id)`` (required), returning a customer
      with ``get_id()``, or ``None``;
    - ``get_customer_memberships(customer_id, status=..., object_id=...)``
      returning memberships with ``get_id()``, ``get_object_id()``,
      ``get_status()`` and ``can_access()``;
    - ``get_membership_level(level_id)`` and
      ``get_membership_levels(status=...)``, returning levels with
      ``get_id()`` and ``get_name()``.

    Whether a membership grants access is decided by ``can_access()``; the
    grace-period rules behind it belong to the plugin.
    """

    def __init__(self, api: Optional[Any] = None) -> None:
        self.api = api

    @property
    def name(self) -> str:
        return 'restrict-content-pro'

    def is_available(self) -> bool:
        return self._has('get_customer_by_user_id')

    def get_user_memberships(self, user_id: int) -> List[domain.Membership]:
        memberships: List[domain.Membership] = []
        for membership in self._customer_memberships(user_id):
            if not membership.can_access():
                continue
            level_id = membership.get_object_id()
            memberships.append(domain.Membership(
                id=membership.get_id(),
                plan_id=level_id,
                name=self._level_name(level_id),
                status=membership.get_status()
            ))
        return memberships

    def user_has_membership(self, user_id: int,
                            plan_id: domain.PlanID) -> bool:
        return any(m.can_access()
                   for m in self._customer_memberships(user_id, plan_id))

    def get_membership_plans(self) -> List[domain.Plan]:
        if not self.is_available() or not self._has('get_membership_levels'):
            return []
        return [domain.Plan(id=level.get_id(), name=level.get_name())
                for level in self.api.get_membership_levels(status='active')
                or []]

    def _customer_memberships(self, user_id: int,
                              plan_id: Optional[domain.PlanID] = None
                              ) -> List[Any]:
        if not self.is_available():
            return []
        customer = self.api.get_customer_by_user_id(user_id)
        if not customer:
            return []
        query: Dict[str, Any] = {'status': QUERY_STATUSES}
        if plan_id is not None:
            query['object_id'] = plan_id
        return list(
            self.api.get_customer_memberships(customer.get_id(), **query)
            or []
        )

    def _level_name(self, level_id: domain.PlanID) -> str:
        if not self._has('get_membership_level'):
            return ''
        level = self.api.get_membership_level(level_id)
        return level.get_name() if level else ''

    def _has(self, function: str) -> bool:
        return self.api is not None \
            and callable(getattr(self.api, function, None))
