"""Tests for :mod:`expo_auth.profile`."""

from unittest import TestCase, mock

from .. import domain, profile
from ..auth.tokens import TOKEN_META_KEY
from ..membership import MembershipManager
from ..meta.memory import InMemoryMetadataStore


class FakeDirectory(object):
    def __init__(self, *users):
        self.users = {user.user_id: user for user in users}

    def get_user(self, user_id):
        return self.users.get(user_id)


class TestHelpers(TestCase):
    """Tests for key and parameter cleaning."""

    def test_sanitize_key(self):
        """Keys are lowercased and stripped of unsafe characters."""
        self.assertEqual(profile.sanitize_key('Favorite Color!'),
                         'favoritecolor')
        self.assertEqual(profile.sanitize_key('push_token-2'), 'push_token-2')

    def test_string_list(self):
        """Lists and comma-separated strings are accepted."""
        self.assertEqual(profile.string_list(['a', ' <b>b</b> ']), ['a', 'b'])
        self.assertEqual(profile.string_list('a, b,,c'), ['a', 'b', 'c'])
        self.assertEqual(profile.string_list(None), [])
        self.assertEqual(profile.string_list(42), [])


class TestProfileBuilder(TestCase):
    """Tests for :class:`.profile.ProfileBuilder`."""

    def setUp(self):
        self.store = InMemoryMetadataStore()
        self.users = FakeDirectory(domain.User(
            user_id=42, email='jane@example.com', username='jane',
            display_name='Jane Doe'
        ))
        self.memberships = mock.MagicMock(spec=MembershipManager)
        self.memberships.get_user_memberships.return_value = {
            'memberships': [{'id': 1, 'plan_id': 123, 'name': 'Gold',
                             'status': 'active',
                             'provider': 'woocommerce-memberships'}]
        }
        self.builder = profile.ProfileBuilder(
            self.users, self.store, self.memberships,
            allowed_meta_keys=['nickname', 'Push_Token', TOKEN_META_KEY],
            reserved_keys=[TOKEN_META_KEY]
        )

    def test_allowed_keys(self):
        """Reserved keys can never be on the allow-list."""
        self.assertEqual(self.builder.allowed_meta_keys,
                         {'nickname', 'push_token'})

    def test_build(self):
        """The profile has user fields, metadata and memberships."""
        self.store.set(42, 'nickname', 'JD')
        data = self.builder.build(42, ['nickname', 'missing'])
        self.assertEqual(data['user_id'], 42)
        self.assertEqual(data['email'], 'jane@example.com')
        self.assertEqual(data['username'], 'jane')
        self.assertEqual(data['nickname'], 'JD')
        self.assertIsNone(data['missing'])
        self.assertEqual(data['memberships'][0]['plan_id'], 123)

    def test_build_unknown_user(self):
        """An unknown user cannot have a profile."""
        with self.assertRaises(profile.UserNotFound):
            self.builder.build(43)
        self.assertIsNone(self.builder.get_user_data(43))

    def test_filters(self):
        """Filters see the plan IDs of the user's memberships."""
        def premium(data, user_id, plan_ids):
            data['is_premium'] = 123 in plan_ids
            return data

        self.builder.add_filter(premium)
        self.assertTrue(self.builder.build(42)['is_premium'])

    def test_reserved_key_is_hidden(self):
        """The token set cannot be read through the profile."""
        self.store.set(42, TOKEN_META_KEY, {'abc': {'hash': 'secret'}})
        with self.assertLogs(profile.__name__, level='WARNING'):
            meta = self.builder.get_meta(42, [TOKEN_META_KEY])
        self.assertEqual(meta, {TOKEN_META_KEY: None})

    def test_update_meta(self):
        """Allowed keys are written as clean text."""
        updated = self.builder.update_meta(42, {
            'nickname': '  <b>JD</b> ',
            'PUSH_TOKEN': 'ExponentPushToken[abc]',
            'is_admin': '1',
        })
        self.assertEqual(updated, {'nickname': 'JD',
                                   'push_token': 'ExponentPushToken[abc]'})
        self.assertEqual(self.store.get(42, 'nickname'), 'JD')
        self.assertIsNone(self.store.get(42, 'is_admin'))

    def test_update_reserved_key(self):
        """The token set cannot be overwritten through the profile."""
        with self.assertRaises(profile.NoAllowedKeys):
            self.builder.update_meta(42, {TOKEN_META_KEY: 'x'})
        self.assertIsNone(self.store.get(42, TOKEN_META_KEY))

    def test_update_invalid(self):
        """The update must be a non-empty mapping."""
        for meta in [{}, [], 'nickname=JD', None]:
            with self.assertRaises(profile.ProfileError):
                self.builder.update_meta(42, meta)
