"""Exception hierarchy for the change-detection pipeline.

Only StoreConnectionError is fatal. Everything else is absorbed by the
worker that hit it and recorded on a page or product outcome.
"""


class ChangewatchError(Exception):
    """Base class for all changewatch errors."""


class StoreConnectionError(ChangewatchError):
    """The snapshot database could not be opened."""


class StoreError(ChangewatchError):
    """A read or write against the snapshot store failed."""


class InvalidProductKey(ChangewatchError, ValueError):
    """A catalog product id cannot be turned into a store key."""


class PageSourceError(ChangewatchError):
    """Base class for catalog API failures."""


class PageCountUnavailable(PageSourceError):
    """The catalog did not report a usable number_of_pages."""


class MalformedPage(PageSourceError):
    """A page body could not be decoded into products."""
