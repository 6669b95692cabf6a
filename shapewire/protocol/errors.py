"""
Errors raised by the marshallers, the unmarshallers, and the field codecs.

None of these errors is caught within the protocol layer. They propagate to the caller, which is responsible for
aborting the single call the error belongs to.
"""
from typing import Optional

from shapewire.constants import SUPPORTED_PROTOCOLS


class WireTranscodingError(Exception):
    """
    Super class of all exceptions raised by the marshallers, unmarshallers, and field codecs.
    """

    pass


class InvalidRequestError(WireTranscodingError):
    """
    Error which indicates that the request passed to a marshaller is absent (or not a mapping at all).
    It is raised before any encoding work is done.
    """

    pass


class MarshallingError(WireTranscodingError):
    """
    Error which indicates that the wire frame for a request could not be built (f.e. because a value could not be
    encoded, or the body could not be written). The original exception is available as ``__cause__``.
    """

    pass


class MalformedWireDataError(WireTranscodingError):
    """
    Error which indicates that the given data is structurally invalid (invalid XML / JSON, unbalanced nesting), or that
    a scalar token cannot be decoded to its target type.
    """

    pass


class FieldDecodeError(MalformedWireDataError):
    """
    Error which indicates that the value of a specific field of a response could not be decoded.
    """

    def __init__(self, field_name: str, message: Optional[str] = None):
        self.field_name = field_name
        super().__init__(message or f"Unable to decode the value of field '{field_name}'.")


class UnknownServiceProtocolError(ValueError):
    """
    Error which indicates that a service uses a protocol which cannot be transcoded (or not the one it is expected to
    use).
    """

    def __init__(self, service_name: str, protocol: str):
        self.service_name = service_name
        self.protocol = protocol
        super().__init__(
            f"Protocol '{protocol}' of service '{service_name}' is not supported "
            f"(supported protocols: {', '.join(SUPPORTED_PROTOCOLS)})"
        )
