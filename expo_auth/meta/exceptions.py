"""Exceptions raised by metadata store backends."""


class PersistenceFailure(RuntimeError):
    """A read or write against the metadata store failed."""
