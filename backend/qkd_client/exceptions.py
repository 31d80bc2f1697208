"""
QKD Provider Client Exceptions
"""


class KeyRequestError(Exception):
    """Base exception for provider key request failures."""
    pass


class ProviderUnavailableError(KeyRequestError):
    """Provider not reachable or did not answer in time."""
    pass


class ProviderResponseError(KeyRequestError):
    """Provider answered with an error status or an unusable body."""
    pass


class KeyExhaustedError(ProviderResponseError):
    """Provider has no quantum entropy left for this request."""
    pass
