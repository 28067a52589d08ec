"""Exceptions raised by the Total Connect Comfort client.

Anything derived from TccApiClientError means the exchange with the
service failed and the current session can no longer be trusted.
"""


class TccError(Exception):
    """Base exception for the Total Connect Comfort integration."""


class TccApiClientError(TccError):
    """Base exception for errors talking to the TCC service."""


class TccApiAuthError(TccApiClientError):
    """Exception raised when the service rejects a login."""


class TccApiTransportError(TccApiClientError):
    """Exception raised for network failures and non-2xx responses."""


class TccApiProtocolError(TccApiClientError):
    """Exception raised when a well-formed response does not report success."""


class TccValidationError(TccError):
    """Exception raised when a normalized thermostat fails required checks."""


class TccInvalidInputError(TccError, ValueError):
    """Exception raised for malformed caller arguments."""
