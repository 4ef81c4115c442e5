"""Authentication exceptions."""


class InvalidToken(ValueError):
    """
    Token is not valid.

    The subclasses only exist so that the reason can be logged; callers
    should catch this class and report a single generic failure.
    """

    reason = 'invalid token'


class MalformedToken(InvalidToken):
    """Token does not have the ``user_id.selector.validator`` shape."""

    reason = 'invalid token format'


class UnknownSelector(InvalidToken):
    """No token with this selector is stored for the user."""

    reason = 'selector not found'


class ExpiredToken(InvalidToken):
    """The token record has passed its expiry time."""

    reason = 'token expired'


class BadValidator(InvalidToken):
    """The validator does not match the stored hash."""

    reason = 'invalid validator'


class ConfigurationError(RuntimeError):
    """Auth has not been configured on the application."""
