"""Tests for :mod:`expo_auth.membership.manager`."""

import time
from threading import Lock
from unittest import TestCase, mock

from ..manager import MembershipManager
from ..provider import MembershipProvider
from ... import domain


class FakeProvider(object):
    """A provider backed by a list of memberships."""

    def __init__(self, name, memberships=(), plans=(), available=True):
        self._name = name
        self.memberships = list(memberships)
        self.plans = list(plans)
        self.available = available
        self.calls = 0

    @property
    def name(self):
        return self._name

    def is_available(self):
        return self.available

    def get_user_memberships(self, user_id):
        self.calls += 1
        return self.memberships

    def user_has_membership(self, user_id, plan_id):
        self.calls += 1
        return any(m.plan_id == plan_id for m in self.memberships)

    def get_membership_plans(self):
        return self.plans


class BrokenProvider(FakeProvider):
    """A provider whose backend blows up."""

    def get_user_memberships(self, user_id):
        raise RuntimeError('backend is down')

    def user_has_membership(self, user_id, plan_id):
        raise RuntimeError('backend is down')

    def get_membership_plans(self):
        raise RuntimeError('backend is down')


def _membership(id, plan_id, name='', status='active'):
    return domain.Membership(id=id, plan_id=plan_id, name=name, status=status)


class TestProviderRegistry(TestCase):
    """Providers are registered by name."""

    def test_fake_is_a_provider(self):
        """The fake satisfies the provider interface."""
        self.assertIsInstance(FakeProvider('a'), MembershipProvider)

    def test_register_replaces_same_name(self):
        """A provider with a registered name replaces the old one."""
        first, second = FakeProvider('a'), FakeProvider('a')
        manager = MembershipManager([first])
        manager.register_provider(second)
        self.assertEqual(manager.providers, [second])

    def test_available_providers(self):
        """Availability is checked on each call."""
        provider = FakeProvider('a', available=False)
        manager = MembershipManager([provider, FakeProvider('b')])
        self.assertEqual([p.name for p in manager.available_providers()],
                         ['b'])
        provider.available = True
        self.assertEqual([p.name for p in manager.available_providers()],
                         ['a', 'b'])


class TestGetUserMemberships(TestCase):
    """Tests for :meth:`.MembershipManager.get_user_memberships`."""

    def setUp(self):
        self.woo = FakeProvider('woo', [_membership(1, 123, 'Gold')])
        self.rcp = FakeProvider('rcp', [_membership(9, 'pro', 'Pro')])
        self.off = FakeProvider('off', [_membership(5, 5)], available=False)
        self.manager = MembershipManager([self.woo, self.rcp, self.off])

    def test_aggregates_and_tags(self):
        """Memberships from available providers are tagged by provider."""
        data = self.manager.get_user_memberships(42)
        found = sorted(data['memberships'], key=lambda m: str(m['id']))
        self.assertEqual(found, [
            {'id': 1, 'plan_id': 123, 'name': 'Gold', 'status': 'active',
             'provider': 'woo'},
            {'id': 9, 'plan_id': 'pro', 'name': 'Pro', 'status': 'active',
             'provider': 'rcp'},
        ])
        self.assertEqual(self.off.calls, 0)

    def test_nothing_available(self):
        """With no available providers the list is empty."""
        manager = MembershipManager([self.off])
        self.assertEqual(manager.get_user_memberships(42),
                         {'memberships': []})

    def test_filters(self):
        """Filters receive the result, user ID and plan IDs, in order."""
        def premium(data, user_id, plan_ids):
            data['is_premium'] = 123 in plan_ids
            return data

        def owner(data, user_id, plan_ids):
            data['user_id'] = user_id
            data['flags'] = [data['is_premium']]
            return data

        self.manager.add_filter(premium)
        self.manager.add_filter(owner)
        data = self.manager.get_user_memberships(42)
        self.assertTrue(data['is_premium'])
        self.assertEqual(data['user_id'], 42)
        self.assertEqual(data['flags'], [True])

    @mock.patch('expo_auth.membership.manager.logger')
    def test_failing_provider(self, mock_logger):
        """A provider that raises counts as having no memberships."""
        self.manager.register_provider(BrokenProvider('broken'))
        data = self.manager.get_user_memberships(42)
        self.assertEqual(len(data['memberships']), 2)
        self.assertEqual(mock_logger.exception.call_count, 1)

    def test_concurrent(self):
        """Providers can be queried in a thread pool."""
        lock = Lock()
        active = []
        peak = []

        class SlowProvider(FakeProvider):
            def get_user_memberships(self, user_id):
                with lock:
                    active.append(self.name)
                    peak.append(len(active))
                time.sleep(0.05)
                with lock:
                    active.remove(self.name)
                return super().get_user_memberships(user_id)

        manager = MembershipManager(
            [SlowProvider(str(i), [_membership(i, i)]) for i in range(4)],
            max_workers=4
        )
        data = manager.get_user_memberships(42)
        self.assertEqual(sorted(m['id'] for m in data['memberships']),
                         [0, 1, 2, 3])
        self.assertGreater(max(peak), 1)


class TestMembershipChecks(TestCase):
    """Tests for the boolean membership checks."""

    def setUp(self):
        self.first = FakeProvider('first', [_membership(1, 123)])
        self.second = FakeProvider('second', [_membership(2, 456)])
        self.manager = MembershipManager([self.first, self.second])

    def test_any_membership_short_circuits(self):
        """The first provider with a membership settles it."""
        self.assertTrue(self.manager.user_has_any_membership(42))
        self.assertEqual(self.second.calls, 0)

    def test_no_membership(self):
        """A user with no memberships anywhere has none."""
        manager = MembershipManager([FakeProvider('a'), FakeProvider('b')])
        self.assertFalse(manager.user_has_any_membership(42))
        self.assertFalse(manager.user_has_membership(42, 123))

    def test_has_membership(self):
        """Any provider may report the plan."""
        self.assertTrue(self.manager.user_has_membership(42, 456))
        self.assertFalse(self.manager.user_has_membership(42, 789))

    def test_has_membership_short_circuits(self):
        """Later providers are not asked once one says yes."""
        self.assertTrue(self.manager.user_has_membership(42, 123))
        self.assertEqual(self.second.calls, 0)

    def test_failing_provider_is_skipped(self):
        """An error in one provider does not hide the others."""
        manager = MembershipManager([BrokenProvider('broken'), self.second])
        self.assertTrue(manager.user_has_membership(42, 456))
        self.assertTrue(manager.user_has_any_membership(42))


class TestGetAllMembershipPlans(TestCase):
    """Tests for :meth:`.MembershipManager.get_all_membership_plans`."""

    def test_plans(self):
        """Plans from available providers are tagged by provider."""
        manager = MembershipManager([
            FakeProvider('woo', plans=[domain.Plan(id=123, name='Gold')]),
            FakeProvider('off', plans=[domain.Plan(id=1)], available=False),
            BrokenProvider('broken'),
        ])
        self.assertEqual(manager.get_all_membership_plans(), [
            {'id': 123, 'name': 'Gold', 'provider': 'woo'}
        ])
