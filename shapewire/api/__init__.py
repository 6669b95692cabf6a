from .core import (
    OperationNotImplementedError,
    ServiceOperation,
    ServiceRequest,
    ServiceResponse,
    UnknownEnumValueError,
    WireEnum,
    WireFrame,
    handler,
)

__all__ = [
    "OperationNotImplementedError",
    "ServiceOperation",
    "ServiceRequest",
    "ServiceResponse",
    "UnknownEnumValueError",
    "WireEnum",
    "WireFrame",
    "handler",
]
