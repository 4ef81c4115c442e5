"""Capability interface implemented by every membership backend."""

from typing import List, Protocol, runtime_checkable

from .. import domain


@runtime_checkable
class MembershipProvider(Protocol):
    """
    Exposes one external subscription system through a uniform interface.

    Implementations must not raise from :meth:`is_available`, and should
    keep it cheap (a presence check, never a network call): it runs on every
    aggregation query.
    """

    @property
    def name(self) -> str:
        """Stable identifier; tags every record this provider produces."""

    def is_available(self) -> bool:
        """``True`` if the wrapped system is installed and active."""

    def get_user_memberships(self, user_id: int) -> List[domain.Membership]:
        """
        Memberships that currently grant access.

        Memberships whose status grants no access are excluded here, not by
        the caller. ``provider`` is left unset.
        """

    def user_has_membership(self, user_id: int,
                            plan_id: domain.PlanID) -> bool:
        """Whether the user has an access-granting membership of a plan."""

    def get_membership_plans(self) -> List[domain.Plan]:
        """All plans this backend currently offers."""


__all__ = ['MembershipProvider']
