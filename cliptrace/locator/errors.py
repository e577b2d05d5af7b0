class LocatorError(Exception):
    """Base class for locator failures that are converted to a decline at the public boundary."""


class AddressDecodeError(LocatorError):
    """A structural address is malformed or points outside the current document."""


class HighlightError(LocatorError):
    """A span could not be wrapped in a highlight mark."""
