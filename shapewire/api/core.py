import dataclasses
import functools
from typing import Any, List, NamedTuple, Optional, TypedDict
from urllib.parse import urlencode

from werkzeug.datastructures import Headers, MultiDict


class ServiceRequest(TypedDict):
    pass


ServiceResponse = Any


class ServiceOperation(NamedTuple):
    service: str
    operation: str


class UnknownEnumValueError(ValueError):
    """
    Error which is raised if a wire token cannot be mapped to a member of a closed enum (the token is empty, absent, or
    simply not one of the known tokens).
    """

    def __init__(self, enum_name: str, value: Optional[str]):
        self.enum_name = enum_name
        self.value = value
        if value is None or value == "":
            message = f"Value for {enum_name} cannot be null or empty!"
        else:
            message = f"Cannot create {enum_name} from {value!r} value!"
        super().__init__(message)


class OperationNotImplementedError(NotImplementedError):
    """
    Error which is raised by the default implementation of every operation of a capability set (a service API stub).
    Implementations override the operations they support, all the others keep raising this error.
    """

    def __init__(self, service: str, operation: str):
        self.service = service
        self.operation = operation
        super().__init__(f"API action '{operation}' for service '{service}' not yet implemented")

    @property
    def service_operation(self) -> ServiceOperation:
        return ServiceOperation(self.service, self.operation)


class WireEnum(str):
    """
    Base class for closed sets of string tokens. Subclasses declare their tokens as class attributes::

        class RegistrationStatus(WireEnum):
            REGISTERED = "REGISTERED"
            DEPRECATED = "DEPRECATED"

    The members are plain strings, which means they can directly be used in requests and compared with results.
    """

    @classmethod
    def values(cls) -> List[str]:
        """Returns the declared tokens of this enum (in declaration order)."""
        values = []
        for klass in reversed(cls.__mro__):
            if klass is WireEnum or not issubclass(klass, WireEnum):
                continue
            for name, value in vars(klass).items():
                if name.startswith("__") or not isinstance(value, str):
                    continue
                if value not in values:
                    values.append(value)
        return values

    @classmethod
    def from_wire(cls, token: Optional[str]) -> "WireEnum":
        """
        Maps a wire token to the member of this enum.

        :param token: the token received on the wire
        :return: the member of this enum
        :raises UnknownEnumValueError: if the token is None, empty, or not a known token of this enum
        """
        if token is None or token == "" or token not in cls.values():
            raise UnknownEnumValueError(cls.__name__, token)
        return cls(token)

    @classmethod
    def to_wire(cls, value: str) -> str:
        if value not in cls.values():
            raise UnknownEnumValueError(cls.__name__, value)
        return str(value)


@dataclasses.dataclass
class WireFrame:
    """
    Transport-neutral description of an HTTP message. Marshallers create one per outgoing request, unmarshallers
    consume one per incoming response (where ``method``, ``path``, and ``query`` are ignored).
    """

    method: str = "POST"
    path: str = "/"
    query: MultiDict = dataclasses.field(default_factory=MultiDict)
    headers: Headers = dataclasses.field(default_factory=Headers)
    body: bytes = b""
    status_code: int = 200

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("Content-Type")

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def url(self) -> str:
        """The path of the frame including the encoded query string."""
        if not self.query:
            return self.path
        return f"{self.path}?{urlencode(list(self.query.items(multi=True)))}"


def handler(operation: str = None, expand: bool = True):
    """
    Decorator that indicates that the given function is a handler
    """

    def wrapper(fn):
        @functools.wraps(fn)
        def operation_marker(*args, **kwargs):
            return fn(*args, **kwargs)

        operation_marker.operation = operation
        operation_marker.expand_parameters = expand

        return operation_marker

    return wrapper
