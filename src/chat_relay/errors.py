"""Exception hierarchy for the relay.

- ValidationError: the client sent no usable text (400). Raised before any
  upstream call.
- UpstreamError: the inference call or its stream failed (500). Reported to
  the client as a single error event.
- DeliveryError: pushing to a connection failed because it is gone.
  Swallowed and logged, never fails the request.
- ConfigError: invalid settings at startup.
"""


class RelayError(Exception):
    """Base class for relay errors."""

    status_code = 500


class ValidationError(RelayError):
    status_code = 400


class UpstreamError(RelayError):
    status_code = 500


class DeliveryError(RelayError):
    def __init__(self, connection_id: str, reason: str = "connection is gone"):
        super().__init__(f"Cannot deliver to {connection_id}: {reason}")
        self.connection_id = connection_id
        self.reason = reason


class ConfigError(RelayError):
    pass
