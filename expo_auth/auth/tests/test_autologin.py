"""Tests for :mod:`expo_auth.auth.autologin`."""

from unittest import TestCase
from urllib.parse import parse_qs, urlsplit

from .. import autologin
from ..exceptions import ExpiredToken, UnknownSelector
from ...meta.memory import InMemoryMetadataStore


class TestAddQueryArg(TestCase):
    """Tests for :func:`autologin.add_query_arg`."""

    def test_add(self):
        """The parameter is appended to an existing query."""
        url = autologin.add_query_arg('https://example.com/a?b=1#top',
                                      'tok', 'xyz')
        self.assertEqual(url, 'https://example.com/a?b=1&tok=xyz#top')

    def test_replace(self):
        """An existing value of the parameter is replaced."""
        url = autologin.add_query_arg('https://example.com/?tok=old',
                                      'tok', 'new')
        self.assertEqual(url, 'https://example.com/?tok=new')


class TestAutoLoginTokens(TestCase):
    """Auto-login tokens are short-lived and single-use."""

    def setUp(self):
        self.now = 1_700_000_000
        self.store = InMemoryMetadataStore()
        self.tokens = autologin.AutoLoginTokens(self.store,
                                                clock=lambda: self.now)

    def _issue(self, user_id=42, url='https://example.com/account'):
        link = self.tokens.issue(user_id, url)
        query = parse_qs(urlsplit(link).query)
        token, = query[autologin.AUTOLOGIN_QUERY_PARAM]
        return link, token

    def test_issue(self):
        """The link points at the redirect URL and carries the token."""
        link, token = self._issue()
        self.assertTrue(link.startswith('https://example.com/account?'))
        self.assertEqual(len(token), autologin.TOKEN_LENGTH)
        self.assertTrue(token.isalnum())

    def _stored(self):
        return self.store.get(autologin.SITE_ID, autologin.GRANTS_META_KEY)

    def test_token_not_stored(self):
        """Only a digest of the token is stored."""
        _, token = self._issue()
        grants = self._stored()
        self.assertEqual(list(grants), [autologin.digest(token)])
        self.assertNotIn(token, str(grants))
        self.assertEqual(self.store.users_with(autologin.GRANTS_META_KEY),
                         [autologin.SITE_ID])

    def test_consume(self):
        """Consuming a token yields the user and redirect URL."""
        _, token = self._issue()
        grant = self.tokens.consume(token)
        self.assertEqual(grant.user_id, 42)
        self.assertEqual(grant.redirect_url, 'https://example.com/account')

    def test_single_use(self):
        """A token cannot be consumed twice."""
        _, token = self._issue()
        self.tokens.consume(token)
        with self.assertRaises(UnknownSelector):
            self.tokens.consume(token)

    def test_unknown(self):
        """A token that was never issued is rejected."""
        with self.assertRaises(UnknownSelector):
            self.tokens.consume('x' * autologin.TOKEN_LENGTH)

    def test_expired(self):
        """An expired token is rejected and removed."""
        _, token = self._issue()
        self.now += autologin.AUTOLOGIN_TTL
        with self.assertRaises(ExpiredToken):
            self.tokens.consume(token)
        with self.assertRaises(UnknownSelector):
            self.tokens.consume(token)

    def test_consume_leaves_other_grants(self):
        """Redeeming one link does not affect another."""
        _, first = self._issue(42)
        _, second = self._issue(7)
        self.tokens.consume(first)
        self.assertEqual(self.tokens.consume(second).user_id, 7)
        self.assertIsNone(self._stored())

    def test_issue_prunes_expired(self):
        """Links that were never clicked do not pile up."""
        for _ in range(50):
            self._issue()
        self.now += 1_000_000
        _, token = self._issue()
        self.assertEqual(list(self._stored()), [autologin.digest(token)])
        self.assertEqual(self.tokens.pending(), 1)

    def test_purge(self):
        """Expired grants are removed; live ones are kept."""
        self._issue()
        self._issue()
        self.now += autologin.AUTOLOGIN_TTL // 2
        _, live = self._issue()
        self.now += autologin.AUTOLOGIN_TTL // 2
        self.assertEqual(self.tokens.purge(), 2)
        self.assertEqual(list(self._stored()), [autologin.digest(live)])
        self.now += autologin.AUTOLOGIN_TTL
        self.assertEqual(self.tokens.purge(), 1)
        self.assertIsNone(self._stored())
        self.assertEqual(self.tokens.purge(), 0)

    def test_custom_query_param(self):
        """The query parameter name is configurable."""
        tokens = autologin.AutoLoginTokens(self.store, query_param='login')
        link = tokens.issue(7, 'https://example.com/')
        self.assertIn('login', parse_qs(urlsplit(link).query))
