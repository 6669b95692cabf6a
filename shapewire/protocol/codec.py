"""
Field codecs for the scalar shape types of the AWS service specifications.

A field codec converts a single scalar value between its python representation and its token on the wire. The shape
of the value (``botocore.model.Shape``) determines the primitive kind (``shape.type_name``) and additional traits (like
``timestampFormat``).

There are two flavours:

* The ``FieldCodec`` works with text tokens. It is used for everything which ends up as a string on the wire: query
  string parameters, XML element text, HTTP header values, and URI path segments.
* The ``JSONFieldCodec`` works with JSON scalars. Numbers and booleans are kept as JSON numbers and booleans,
  timestamps are epoch seconds by default.

Decoding a malformed or out-of-range token raises a ``MalformedWireDataError``. There are no silent defaults.
Encoding a value of the wrong type raises a ``TypeError`` (or a ``ValueError`` if the value is out of range), which is
re-signaled by the marshallers as ``MarshallingError``.
"""
import base64
import binascii
import calendar
import datetime
from email.utils import formatdate, parsedate_to_datetime
from typing import Any, Optional, Tuple, Union

import dateutil.parser
from botocore.model import Shape
from botocore.serialize import ISO8601, ISO8601_MICRO
from botocore.utils import parse_to_aware_datetime

from shapewire.protocol.errors import MalformedWireDataError

INTEGER_RANGE: Tuple[int, int] = (-(2**31), 2**31 - 1)
LONG_RANGE: Tuple[int, int] = (-(2**63), 2**63 - 1)

Token = Union[str, int, float, bool]


class FieldCodec:
    """
    The ``FieldCodec`` encodes scalar values to text tokens and decodes text tokens to scalar values.
    """

    DEFAULT_ENCODING = "utf-8"
    # The default timestamp format is ISO8601, but this can be overwritten by subclasses.
    TIMESTAMP_FORMAT = "iso8601"

    def encode(self, shape: Shape, value: Any, default_timestamp_format: str = None) -> Token:
        """
        Encodes the given value to its wire token.

        :param shape: the scalar shape of the value
        :param value: the python value to encode
        :param default_timestamp_format: timestamp format to use if the shape does not define one (f.e. "rfc822" for
                                         values located in HTTP headers)
        :return: the wire token
        :raises TypeError: if the value does not have the type the shape requires
        :raises ValueError: if the value is outside the range of the shape's type
        """
        if shape.type_name == "timestamp":
            return self._encode_timestamp(
                value, self._get_timestamp_format(shape, default_timestamp_format)
            )
        encoder = getattr(self, "_encode_%s" % shape.type_name, None)
        if encoder is None:
            raise TypeError(f"Shape {shape.name} of type {shape.type_name} is not a scalar shape.")
        return encoder(value)

    def decode(self, shape: Shape, token: Any, default_timestamp_format: str = None) -> Any:
        """
        Decodes the given wire token to its python value.

        :param shape: the scalar shape of the value
        :param token: the token received on the wire
        :param default_timestamp_format: timestamp format to use if the shape does not define one
        :return: the decoded python value
        :raises MalformedWireDataError: if the token cannot be decoded to the shape's type
        """
        if shape.type_name == "timestamp":
            return self._decode_timestamp(
                token, self._get_timestamp_format(shape, default_timestamp_format)
            )
        decoder = getattr(self, "_decode_%s" % shape.type_name, None)
        if decoder is None:
            raise MalformedWireDataError(
                f"Shape {shape.name} of type {shape.type_name} is not a scalar shape."
            )
        try:
            return decoder(token)
        except MalformedWireDataError:
            raise
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedWireDataError(
                f"Invalid token for {shape.name}: {token!r} cannot be decoded to {shape.type_name}."
            ) from e

    def _get_timestamp_format(self, shape: Shape, default_timestamp_format: Optional[str]) -> str:
        timestamp_format = (
            shape.serialization.get("timestampFormat")
            or default_timestamp_format
            or self.TIMESTAMP_FORMAT
        )
        return timestamp_format.lower()

    # encoding

    @staticmethod
    def _encode_string(value: str) -> str:
        if not isinstance(value, str):
            raise TypeError(f"Expected a string, got {type(value).__name__}.")
        return value

    _encode_character = _encode_string

    def _encode_integer(self, value: int) -> Token:
        return str(self._check_integral(value, INTEGER_RANGE))

    def _encode_long(self, value: int) -> Token:
        return str(self._check_integral(value, LONG_RANGE))

    def _encode_float(self, value: float) -> Token:
        return str(self._check_number(value))

    _encode_double = _encode_float

    @staticmethod
    def _encode_boolean(value: bool) -> Token:
        if not isinstance(value, bool):
            raise TypeError(f"Expected a boolean, got {type(value).__name__}.")
        return "true" if value else "false"

    def _encode_blob(self, value: Union[str, bytes]) -> str:
        """
        Returns the base64-encoded version of value, handling both strings and bytes.
        """
        if isinstance(value, str):
            value = value.encode(self.DEFAULT_ENCODING)
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"Expected bytes, got {type(value).__name__}.")
        return base64.b64encode(value).strip().decode(self.DEFAULT_ENCODING)

    def _encode_timestamp(self, value: Any, timestamp_format: str) -> Token:
        if isinstance(value, bool):
            raise TypeError("Expected a timestamp, got bool.")
        datetime_obj = parse_to_aware_datetime(value)
        converter = getattr(self, "_timestamp_%s" % timestamp_format)
        return converter(datetime_obj)

    @staticmethod
    def _timestamp_iso8601(value: datetime.datetime) -> str:
        if value.microsecond > 0:
            timestamp_format = ISO8601_MICRO
        else:
            timestamp_format = ISO8601
        return value.strftime(timestamp_format)

    @staticmethod
    def _timestamp_unixtimestamp(value: datetime.datetime) -> str:
        if value.microsecond > 0:
            return str(value.timestamp())
        return str(calendar.timegm(value.utctimetuple()))

    @staticmethod
    def _timestamp_rfc822(value: datetime.datetime) -> str:
        return formatdate(value.timestamp(), usegmt=True)

    @staticmethod
    def _check_integral(value: int, value_range: Tuple[int, int]) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Expected an integer, got {type(value).__name__}.")
        if not value_range[0] <= value <= value_range[1]:
            raise ValueError(f"Integer {value} is out of range {value_range}.")
        return value

    @staticmethod
    def _check_number(value: float) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Expected a number, got {type(value).__name__}.")
        return float(value)

    # decoding

    @staticmethod
    def _decode_string(token: str) -> str:
        if not isinstance(token, str):
            raise MalformedWireDataError(f"Expected a string token, got {token!r}.")
        return token

    _decode_character = _decode_string

    def _decode_integer(self, token: Token) -> int:
        return self._range_checked(int(self._decode_string(token)), INTEGER_RANGE)

    def _decode_long(self, token: Token) -> int:
        return self._range_checked(int(self._decode_string(token)), LONG_RANGE)

    def _decode_float(self, token: Token) -> float:
        return float(self._decode_string(token))

    _decode_double = _decode_float

    def _decode_boolean(self, token: Token) -> bool:
        value = self._decode_string(token).lower()
        if value == "true":
            return True
        if value == "false":
            return False
        raise MalformedWireDataError(f"Cannot decode boolean value {token!r}.")

    def _decode_blob(self, token: Token) -> bytes:
        try:
            return base64.b64decode(self._decode_string(token), validate=True)
        except binascii.Error as e:
            raise MalformedWireDataError(f"Invalid base64 token {token!r}.") from e

    def _decode_timestamp(self, token: Token, timestamp_format: str) -> datetime.datetime:
        if isinstance(token, bool):
            raise MalformedWireDataError(f"Cannot decode timestamp value {token!r}.")
        try:
            if isinstance(token, (int, float)):
                value = self._timestamp_from_epoch(token)
            elif isinstance(token, str):
                converter = getattr(self, "_parse_timestamp_%s" % timestamp_format)
                value = converter(token)
            else:
                raise MalformedWireDataError(f"Cannot decode timestamp value {token!r}.")
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedWireDataError(
                f"Cannot decode timestamp value {token!r} with format {timestamp_format}."
            ) from e
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)

    @staticmethod
    def _timestamp_from_epoch(value: Union[int, float]) -> datetime.datetime:
        return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)

    @staticmethod
    def _parse_timestamp_iso8601(token: str) -> datetime.datetime:
        return dateutil.parser.isoparse(token)

    def _parse_timestamp_unixtimestamp(self, token: str) -> datetime.datetime:
        return self._timestamp_from_epoch(float(token))

    @staticmethod
    def _parse_timestamp_rfc822(token: str) -> datetime.datetime:
        return parsedate_to_datetime(token)

    @staticmethod
    def _range_checked(value: int, value_range: Tuple[int, int]) -> int:
        if not value_range[0] <= value <= value_range[1]:
            raise MalformedWireDataError(f"Integer {value} is out of range {value_range}.")
        return value


class JSONFieldCodec(FieldCodec):
    """
    The ``JSONFieldCodec`` encodes scalar values to JSON scalars and decodes JSON scalars (as returned by
    ``json.loads``) to scalar values.
    """

    TIMESTAMP_FORMAT = "unixtimestamp"

    def _encode_integer(self, value: int) -> Token:
        return self._check_integral(value, INTEGER_RANGE)

    def _encode_long(self, value: int) -> Token:
        return self._check_integral(value, LONG_RANGE)

    def _encode_float(self, value: float) -> Token:
        return self._check_number(value)

    _encode_double = _encode_float

    def _encode_boolean(self, value: bool) -> Token:
        if not isinstance(value, bool):
            raise TypeError(f"Expected a boolean, got {type(value).__name__}.")
        return value

    @staticmethod
    def _timestamp_unixtimestamp(value: datetime.datetime) -> Union[int, float]:
        if value.microsecond > 0:
            return value.timestamp()
        return calendar.timegm(value.utctimetuple())

    def _decode_integer(self, token: Token) -> int:
        return self._range_checked(self._json_integral(token), INTEGER_RANGE)

    def _decode_long(self, token: Token) -> int:
        return self._range_checked(self._json_integral(token), LONG_RANGE)

    def _decode_float(self, token: Token) -> float:
        if isinstance(token, bool) or not isinstance(token, (int, float)):
            raise MalformedWireDataError(f"Expected a JSON number, got {token!r}.")
        return float(token)

    _decode_double = _decode_float

    def _decode_boolean(self, token: Token) -> bool:
        if not isinstance(token, bool):
            raise MalformedWireDataError(f"Expected a JSON boolean, got {token!r}.")
        return token

    @staticmethod
    def _json_integral(token: Token) -> int:
        if isinstance(token, bool) or not isinstance(token, int):
            raise MalformedWireDataError(f"Expected a JSON integer, got {token!r}.")
        return token
