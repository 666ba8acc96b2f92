"""
Attribution Exceptions
======================

Custom exception types for the attribution identity engine.

WHY THIS FILE EXISTS
--------------------
The engine talks to three unreliable things (the host's configuration, the
attribution API, and the device's key-value store). Each has its own failure
mode and its own recovery:

- Configuration problems abort the operation without touching state
- Malformed short codes abort the operation without touching state
- Transport and parse failures fall back (raw-input passthrough or no-op)
- Storage failures are logged, the in-memory value is still used

None of these ever reach the host application. They are raised at the seam
where the failure happens and caught by the component that owns recovery.

RELATED FILES
-------------
- affiliate_attribution/services/attribution_api_client.py: Raises TransportError
- affiliate_attribution/services/link_resolver.py: Catches TransportError/ResponseParseError
- affiliate_attribution/services/key_value_store.py: Raises StorageError
- affiliate_attribution/services/resolution_engine.py: Catches ConfigurationError/ShortCodeValidationError
"""

from typing import Optional


class AttributionError(Exception):
    """
    Base exception for all attribution engine errors.

    WHAT:
        Parent class for every error raised inside the engine.

    WHY:
        Lets recovery code catch the whole family with one except clause
        while still being able to branch on the specific type.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(AttributionError):
    """
    Engine used before initialization, or initialized with bad input.

    RECOVERY:
        Operation is aborted, no state is mutated.
    """


class ShortCodeValidationError(AttributionError):
    """
    A short code failed the 3-25 alphanumeric shape check.

    ATTRIBUTES:
        code: Machine-readable reason (short_code_empty, short_code_length, short_code_charset)
        value: The offending input
    """

    def __init__(self, code: str, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.value = value


class TransportError(AttributionError):
    """
    Network failure or non-2xx response from the attribution API.

    ATTRIBUTES:
        status_code: HTTP status if a response arrived, None for connection errors

    RECOVERY:
        Link conversion falls back to the raw referral. Enrichment, event
        tracking and expected-transaction calls become no-ops.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResponseParseError(AttributionError):
    """
    Response body could not be decoded into the expected shape.

    RECOVERY:
        Same as TransportError.
    """


class StorageError(AttributionError):
    """
    The key-value store could not read or write a value.

    RECOVERY:
        Logged. Callers keep using the in-memory value for the current cycle.
    """
