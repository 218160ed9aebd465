"""Exceptions raised by the Cipherise SDK.

Transport errors come out of the web client; protocol, precondition and
security errors come out of the session objects. Everything derives from
CipheriseError so callers can catch the SDK as a whole.
"""


class CipheriseError(Exception):
    """Base class for all SDK errors."""


class TransportError(CipheriseError):
    """Network failure, or an error message returned by the server."""


class RequestTimeoutError(TransportError):
    """The request timed out (i.e. an authentication was not responded to in time)."""


class SessionExpiredError(TransportError):
    """The Cipherise session has expired. Should not occur in external use."""


class ProtocolError(CipheriseError):
    """The server answered with something the SDK does not understand."""


class DeserializationError(ProtocolError):
    """A serialized session could not be restored."""


class PreconditionError(CipheriseError):
    """An operation was called before the step that provides its inputs."""


class IncompatibleServerError(CipheriseError):
    """The server is not a Cipherise server, or is too old for this SDK."""


class EnrollmentFailedError(CipheriseError):
    """The server reported that the enrollment failed."""


class SecurityError(CipheriseError):
    """A signature check failed; the data cannot be trusted."""


class SignatureMismatchError(SecurityError):
    """A key-binding signature did not verify."""


class PayloadSignatureError(SecurityError):
    """A payload envelope signature did not verify."""


class PayloadDataLengthExceededError(CipheriseError):
    """The payload is too large. Consider splitting it into multiple requests."""
