"""
Response unmarshallers for the different AWS service protocols.

An unmarshaller takes the ``WireFrame`` of a service's response and an operation model, and creates the result dict
(keyed by the member names of the operation's output shape).

The unmarshallers pull events from a token cursor (``shapewire.protocol.tokens``) and bind an event to a member only if
the name matches *and* the event is located at the depth the unmarshaller expects the members of the current
structure at. Every structure is unmarshalled by the same loop:

* The depth of the cursor when the structure is entered is the *origin depth*. Its members are expected at the
  *target depth* ``origin + 1``. If the unmarshalling starts at the very beginning of the document, the target depth
  is additionally shifted by the *document wrapper depth* (f.e. ``<OpResponse><OpResult>`` for the query protocol).
* The loop ends when the document ends, or when an end event leaves the structure (below the origin depth for XML,
  at or below the origin depth for JSON).
* Events which do not match a member at the target depth are ignored, including fields with known names which are
  nested in unknown sub-documents.

Lists and maps are initialized with an empty list / dict for every structure which is created. Scalars which are not
on the wire are not contained in the result. A scalar which cannot be decoded raises a ``FieldDecodeError`` naming the
member, structurally invalid documents raise a ``MalformedWireDataError``.
::

                            ┌────────────────────┐
                            │ResponseUnmarshaller│
                            └────────────────────┘
                               ▲        ▲       ▲
             ┌─────────────────┘        │       └───────────────────┐
  ┌──────────┴────────────────┐ ┌───────┴────────────────────┐ ┌────┴───────────────────┐
  │BaseXMLResponseUnmarshaller│ │BaseRestResponseUnmarshaller│ │JSONResponseUnmarshaller│
  └───────────────────────────┘ └────────────────────────────┘ └────────────────────────┘
       ▲              ▲              ▲                 ▲                   ▲
  ┌────┴───────┐ ┌────┴──────────────┴─────────┐ ┌─────┴───────────────────┴────┐
  │QueryRes... │ │RestXMLResponseUnmarshaller  │ │RestJSONResponseUnmarshaller  │
  └────────────┘ └─────────────────────────────┘ └──────────────────────────────┘
"""
import abc
import logging
from typing import Any, Dict, List, Optional, Tuple

from botocore.model import ListShape, MapShape, OperationModel, ServiceModel, Shape, StructureShape

from shapewire.api import WireFrame
from shapewire.protocol.codec import FieldCodec, JSONFieldCodec
from shapewire.protocol.errors import (
    FieldDecodeError,
    MalformedWireDataError,
    UnknownServiceProtocolError,
)
from shapewire.protocol.tokens import (
    END_ARRAY,
    END_DOCUMENT,
    END_ELEMENT,
    END_OBJECT,
    FIELD_NAME,
    START_ARRAY,
    START_ELEMENT,
    START_OBJECT,
    VALUE,
    JSONTokenCursor,
    TokenCursor,
    XMLTokenCursor,
)
from shapewire.spec import get_protocol
from shapewire.utils.strings import to_str

LOG = logging.getLogger(__name__)


class ResponseUnmarshaller(abc.ABC):
    """
    The response unmarshaller is responsible for the deserialization of a wire frame to a result dict.
    """

    # codec used for all values which are transferred as plain text (headers, XML)
    text_codec = FieldCodec()
    # codec used for the values in the body of the frame
    body_codec = text_codec
    # number of enclosing document levels above the members of the output shape
    DOCUMENT_WRAPPER_DEPTH = 0

    def unmarshall(
        self,
        response: WireFrame,
        operation: OperationModel,
        document_wrapper_depth: Optional[int] = None,
    ) -> dict:
        """
        Creates the result dict for the given response.

        :param response: wire frame received from the service
        :param operation: model of the operation the response belongs to
        :param document_wrapper_depth: overrides the number of document levels which enclose the output members
        :return: dict of the result members, keyed by the member names of the output shape
        :raises MalformedWireDataError: if the body of the response is structurally invalid
        :raises FieldDecodeError: if the value of a member cannot be decoded
        """
        shape = operation.output_shape
        if shape is None:
            return {}
        if document_wrapper_depth is None:
            document_wrapper_depth = self._get_document_wrapper_depth(shape)
        LOG.debug(
            "Unmarshalling response of %s (document wrapper depth %d)",
            operation.name,
            document_wrapper_depth,
        )
        result = self._create_structure(shape)
        self._unmarshall_frame(response, shape, result, document_wrapper_depth)
        return result

    def _unmarshall_frame(
        self, response: WireFrame, shape: StructureShape, result: dict, document_wrapper_depth: int
    ) -> None:
        self._unmarshall_body(response.body, shape, result, document_wrapper_depth)

    def _unmarshall_body(
        self, body: bytes, shape: StructureShape, result: dict, document_wrapper_depth: int
    ) -> None:
        if not body or not body.strip():
            # an empty response contains the defaults only
            return
        cursor = self._create_cursor(body)
        self._unmarshall_structure(cursor, shape, result, document_wrapper_depth)

    def _get_document_wrapper_depth(self, shape: StructureShape) -> int:
        return self.DOCUMENT_WRAPPER_DEPTH

    @abc.abstractmethod
    def _create_cursor(self, body: bytes) -> TokenCursor:
        raise NotImplementedError

    @abc.abstractmethod
    def _unmarshall_structure(
        self,
        cursor: TokenCursor,
        shape: StructureShape,
        result: dict,
        document_wrapper_depth: int = 0,
    ) -> None:
        raise NotImplementedError

    @staticmethod
    def _create_structure(shape: StructureShape) -> dict:
        """Creates the initial result for the given structure (with empty lists and maps)."""
        result = {}
        if shape.is_document_type:
            return result
        for member_name, member_shape in shape.members.items():
            if isinstance(member_shape, ListShape):
                result[member_name] = []
            elif isinstance(member_shape, MapShape):
                result[member_name] = {}
        return result

    @staticmethod
    def _body_members(shape: StructureShape) -> Dict[str, Shape]:
        return {
            name: member_shape
            for name, member_shape in shape.members.items()
            if not member_shape.serialization.get("location")
        }

    def _decode(
        self, codec: FieldCodec, shape: Shape, token: Any, field_name: str, timestamp_format=None
    ) -> Any:
        try:
            return codec.decode(shape, token, timestamp_format)
        except MalformedWireDataError as e:
            raise FieldDecodeError(field_name, f"Unable to decode field '{field_name}': {e}") from e


class BaseXMLResponseUnmarshaller(ResponseUnmarshaller, abc.ABC):
    """
    The ``BaseXMLResponseUnmarshaller`` unmarshalls XML bodies by walking the start and end element events of the
    document.
    """

    DOCUMENT_WRAPPER_DEPTH = 1

    def _create_cursor(self, body: bytes) -> XMLTokenCursor:
        return XMLTokenCursor(body)

    def _unmarshall_structure(
        self,
        cursor: XMLTokenCursor,
        shape: StructureShape,
        result: dict,
        document_wrapper_depth: int = 0,
    ) -> None:
        origin_depth = cursor.depth
        target_depth = origin_depth + 1
        if cursor.is_start_of_document():
            target_depth += document_wrapper_depth
        else:
            self._bind_attributes(cursor, shape, result)
        expressions = self._member_expressions(shape)

        while True:
            event = cursor.next_event()
            if event.kind == END_DOCUMENT:
                return
            if event.kind == START_ELEMENT:
                for expression, member_name, member_shape in expressions:
                    if cursor.test_expression(expression, target_depth):
                        self._bind_member(cursor, member_name, member_shape, result)
                        break
            elif event.kind == END_ELEMENT and cursor.depth < origin_depth:
                return

    def _member_expressions(self, shape: StructureShape) -> List[Tuple[str, str, Shape]]:
        """
        Returns the path expressions (relative to the structure) which identify the elements of the members.
        Non-flattened lists and maps are matched at their items (``Name/member``, ``Name/entry``).
        """
        expressions = []
        for member_name, member_shape in self._body_members(shape).items():
            if member_shape.serialization.get("xmlAttribute"):
                continue
            name = member_shape.serialization.get("name", member_name)
            if isinstance(member_shape, ListShape):
                if member_shape.serialization.get("flattened"):
                    name = member_shape.member.serialization.get("name", name)
                else:
                    name = f"{name}/{member_shape.member.serialization.get('name', 'member')}"
            elif isinstance(member_shape, MapShape) and not member_shape.serialization.get(
                "flattened"
            ):
                name = f"{name}/entry"
            expressions.append((name, member_name, member_shape))
        return expressions

    def _bind_attributes(self, cursor: XMLTokenCursor, shape: StructureShape, result: dict):
        attributes = cursor.attributes
        for member_name, member_shape in shape.members.items():
            if not member_shape.serialization.get("xmlAttribute"):
                continue
            value = attributes.get(member_shape.serialization.get("name", member_name))
            if value is not None:
                result[member_name] = self._decode(
                    self.text_codec, member_shape, value, member_name
                )

    def _bind_member(
        self, cursor: XMLTokenCursor, member_name: str, member_shape: Shape, result: dict
    ) -> None:
        if isinstance(member_shape, ListShape):
            # the cursor is positioned at an item of the list
            result[member_name].append(self._unmarshall_value(cursor, member_shape.member, member_name))
        elif isinstance(member_shape, MapShape):
            # the cursor is positioned at an entry of the map
            key, value = self._unmarshall_map_entry(cursor, member_shape, member_name)
            result[member_name][key] = value
        else:
            result[member_name] = self._unmarshall_value(cursor, member_shape, member_name)

    def _unmarshall_value(self, cursor: XMLTokenCursor, shape: Shape, field_name: str) -> Any:
        """Unmarshalls the value of the element the cursor has just entered."""
        if isinstance(shape, StructureShape):
            structure = self._create_structure(shape)
            self._unmarshall_structure(cursor, shape, structure)
            return structure
        if isinstance(shape, ListShape):
            return self._unmarshall_list(cursor, shape, field_name)
        if isinstance(shape, MapShape):
            return self._unmarshall_map(cursor, shape, field_name)
        return self._decode(self.body_codec, shape, cursor.read_text(), field_name)

    def _unmarshall_list(self, cursor: XMLTokenCursor, shape: ListShape, field_name: str) -> list:
        """Unmarshalls a (non-flattened) list which is nested in another list or map."""
        origin_depth = cursor.depth
        item_name = shape.member.serialization.get("name", "member")
        items = []
        while True:
            event = cursor.next_event()
            if event.kind == END_DOCUMENT:
                return items
            if event.kind == START_ELEMENT and cursor.test_expression(item_name, origin_depth + 1):
                items.append(self._unmarshall_value(cursor, shape.member, field_name))
            elif event.kind == END_ELEMENT and cursor.depth < origin_depth:
                return items

    def _unmarshall_map(self, cursor: XMLTokenCursor, shape: MapShape, field_name: str) -> dict:
        """Unmarshalls a (non-flattened) map which is nested in another list or map."""
        origin_depth = cursor.depth
        entries = {}
        while True:
            event = cursor.next_event()
            if event.kind == END_DOCUMENT:
                return entries
            if event.kind == START_ELEMENT and cursor.test_expression("entry", origin_depth + 1):
                key, value = self._unmarshall_map_entry(cursor, shape, field_name)
                entries[key] = value
            elif event.kind == END_ELEMENT and cursor.depth < origin_depth:
                return entries

    def _unmarshall_map_entry(
        self, cursor: XMLTokenCursor, shape: MapShape, field_name: str
    ) -> Tuple[Any, Any]:
        origin_depth = cursor.depth
        target_depth = origin_depth + 1
        key_name = shape.key.serialization.get("name", "key")
        value_name = shape.value.serialization.get("name", "value")
        key = value = None
        while True:
            event = cursor.next_event()
            if event.kind == END_DOCUMENT:
                break
            if event.kind == START_ELEMENT:
                if cursor.test_expression(key_name, target_depth):
                    key = self._unmarshall_value(cursor, shape.key, field_name)
                elif cursor.test_expression(value_name, target_depth):
                    value = self._unmarshall_value(cursor, shape.value, field_name)
            elif event.kind == END_ELEMENT and cursor.depth < origin_depth:
                break
        if key is None:
            raise MalformedWireDataError(f"Map entry of field '{field_name}' does not contain a key.")
        return key, value


class QueryResponseUnmarshaller(BaseXMLResponseUnmarshaller):
    """
    The ``QueryResponseUnmarshaller`` is responsible for the deserialization of responses from services with the
    ``query`` protocol (f.e. RDS, ElastiCache). The members are wrapped in ``<OpResponse><OpResult>`` (or only in
    ``<OpResponse>`` if the output shape does not define a ``resultWrapper``).
    """

    def _get_document_wrapper_depth(self, shape: StructureShape) -> int:
        return 2 if shape.serialization.get("resultWrapper") else 1


class JSONResponseUnmarshaller(ResponseUnmarshaller):
    """
    The ``JSONResponseUnmarshaller`` is responsible for the deserialization of responses from services with the
    ``json`` protocol (f.e. SWF, SSM). The members are the fields of the top-level JSON object.
    """

    body_codec = JSONFieldCodec()
    DOCUMENT_WRAPPER_DEPTH = 0

    def _create_cursor(self, body: bytes) -> JSONTokenCursor:
        return JSONTokenCursor(body)

    def _unmarshall_structure(
        self,
        cursor: JSONTokenCursor,
        shape: StructureShape,
        result: dict,
        document_wrapper_depth: int = 0,
    ) -> None:
        origin_depth = cursor.depth
        target_depth = origin_depth + 1
        if cursor.is_start_of_document():
            target_depth += document_wrapper_depth
            next_event = cursor.peek_event()
            if next_event.kind == VALUE and next_event.value is None:
                # a "null" document does not contain any fields
                return
        fields = {
            member_shape.serialization.get("name", member_name): (member_name, member_shape)
            for member_name, member_shape in self._body_members(shape).items()
        }

        event = cursor.next_event()
        if event.kind != START_OBJECT:
            raise MalformedWireDataError(
                f"Expected a JSON object for {shape.name}, got {event.kind}."
            )
        while True:
            event = cursor.next_event()
            if event.kind == END_DOCUMENT:
                return
            if event.kind == FIELD_NAME:
                member = fields.get(event.name)
                if member and cursor.test_expression(event.name, target_depth):
                    member_name, member_shape = member
                    value = self._unmarshall_value(cursor, member_shape, member_name)
                    if value is not None:
                        result[member_name] = value
            elif event.kind in (END_OBJECT, END_ARRAY) and cursor.depth <= origin_depth:
                return

    def _unmarshall_value(self, cursor: JSONTokenCursor, shape: Shape, field_name: str) -> Any:
        """Unmarshalls the next value of the cursor. A JSON null is returned as None."""
        next_event = cursor.peek_event()
        if next_event.kind == VALUE and next_event.value is None:
            cursor.next_event()
            return None
        if isinstance(shape, StructureShape):
            if shape.is_document_type:
                return self._read_document(cursor)
            if next_event.kind != START_OBJECT:
                raise FieldDecodeError(
                    field_name,
                    f"Unable to decode field '{field_name}': expected an object, got {next_event.kind}.",
                )
            structure = self._create_structure(shape)
            self._unmarshall_structure(cursor, shape, structure)
            return structure
        if isinstance(shape, ListShape):
            return self._unmarshall_list(cursor, shape, field_name)
        if isinstance(shape, MapShape):
            return self._unmarshall_map(cursor, shape, field_name)
        event = cursor.next_event()
        if event.kind != VALUE:
            raise FieldDecodeError(
                field_name, f"Unable to decode field '{field_name}': expected a value, got {event.kind}."
            )
        return self._decode(self.body_codec, shape, event.value, field_name)

    def _unmarshall_list(self, cursor: JSONTokenCursor, shape: ListShape, field_name: str) -> list:
        event = cursor.next_event()
        if event.kind != START_ARRAY:
            raise FieldDecodeError(
                field_name, f"Unable to decode field '{field_name}': expected an array, got {event.kind}."
            )
        items = []
        while cursor.peek_event().kind not in (END_ARRAY, END_DOCUMENT):
            item = self._unmarshall_value(cursor, shape.member, field_name)
            if item is not None:
                items.append(item)
        cursor.next_event()
        return items

    def _unmarshall_map(self, cursor: JSONTokenCursor, shape: MapShape, field_name: str) -> dict:
        event = cursor.next_event()
        if event.kind != START_OBJECT:
            raise FieldDecodeError(
                field_name, f"Unable to decode field '{field_name}': expected an object, got {event.kind}."
            )
        entries = {}
        while True:
            event = cursor.next_event()
            if event.kind != FIELD_NAME:
                return entries
            value = self._unmarshall_value(cursor, shape.value, field_name)
            if value is not None:
                entries[event.name] = value

    def _read_document(self, cursor: JSONTokenCursor) -> Any:
        """Reads the next value of the cursor as plain JSON document (used for document types)."""
        event = cursor.next_event()
        if event.kind == START_OBJECT:
            document = {}
            while True:
                event = cursor.next_event()
                if event.kind != FIELD_NAME:
                    return document
                document[event.name] = self._read_document(cursor)
        if event.kind == START_ARRAY:
            document = []
            while cursor.peek_event().kind not in (END_ARRAY, END_DOCUMENT):
                document.append(self._read_document(cursor))
            cursor.next_event()
            return document
        return event.value


class BaseRestResponseUnmarshaller(ResponseUnmarshaller, abc.ABC):
    """
    The ``BaseRestResponseUnmarshaller`` binds the members which are located in the headers or the status code of the
    response, and the payload member. The deserialization of the body is done by the protocol-specific subclasses.
    """

    HEADER_TIMESTAMP_FORMAT = "rfc822"

    def _unmarshall_frame(
        self, response: WireFrame, shape: StructureShape, result: dict, document_wrapper_depth: int
    ) -> None:
        self._bind_header_members(response, shape, result)
        payload_member = shape.serialization.get("payload")
        if payload_member is None:
            self._unmarshall_body(response.body, shape, result, document_wrapper_depth)
            return
        payload_shape = shape.members[payload_member]
        if payload_shape.type_name == "blob":
            result[payload_member] = response.body
        elif payload_shape.type_name == "string":
            result[payload_member] = to_str(response.body)
        elif response.body and response.body.strip():
            payload = self._create_structure(payload_shape)
            self._unmarshall_body(response.body, payload_shape, payload, document_wrapper_depth)
            result[payload_member] = payload

    def _bind_header_members(self, response: WireFrame, shape: StructureShape, result: dict):
        for member_name, member_shape in shape.members.items():
            location = member_shape.serialization.get("location")
            if not location:
                continue
            name = member_shape.serialization.get("name", member_name)
            if location == "statusCode":
                result[member_name] = response.status_code
            elif location == "header":
                value = response.headers.get(name)
                if value is not None:
                    result[member_name] = self._decode_header_value(member_shape, value, member_name)
            elif location == "headers":
                result[member_name] = self._decode_header_map(member_shape, name, response)

    def _decode_header_value(self, shape: Shape, value: str, field_name: str) -> Any:
        if isinstance(shape, ListShape):
            return [
                self._decode_header_value(shape.member, item.strip(), field_name)
                for item in value.split(",")
                if item.strip()
            ]
        return self._decode(self.text_codec, shape, value, field_name, self.HEADER_TIMESTAMP_FORMAT)

    def _decode_header_map(self, shape: MapShape, prefix: str, response: WireFrame) -> dict:
        """Collects the headers with the given prefix (the prefix is removed from the keys)."""
        prefix = prefix.lower()
        parsed = {}
        for header_name, header_value in response.headers.items():
            if header_name.lower().startswith(prefix):
                parsed[header_name[len(prefix) :]] = header_value
        return parsed


class RestXMLResponseUnmarshaller(BaseRestResponseUnmarshaller, BaseXMLResponseUnmarshaller):
    """
    The ``RestXMLResponseUnmarshaller`` is responsible for the deserialization of responses from services with the
    ``rest-xml`` protocol (f.e. Route53). The root element of the body represents the output shape.
    """

    DOCUMENT_WRAPPER_DEPTH = 1


class RestJSONResponseUnmarshaller(BaseRestResponseUnmarshaller, JSONResponseUnmarshaller):
    """
    The ``RestJSONResponseUnmarshaller`` is responsible for the deserialization of responses from services with the
    ``rest-json`` protocol (f.e. IoT).
    """

    DOCUMENT_WRAPPER_DEPTH = 0


def create_unmarshaller(service: ServiceModel) -> ResponseUnmarshaller:
    """
    Creates the right unmarshaller for the given service model.

    :param service: to create the unmarshaller for
    :return: ResponseUnmarshaller which can handle the protocol of the service
    :raises UnknownServiceProtocolError: if the service does not understand any supported protocol
    """
    protocol_specific_unmarshallers = {
        "query": QueryResponseUnmarshaller,
        "json": JSONResponseUnmarshaller,
        "rest-json": RestJSONResponseUnmarshaller,
        "rest-xml": RestXMLResponseUnmarshaller,
    }
    protocol = get_protocol(service)
    if protocol not in protocol_specific_unmarshallers:
        raise UnknownServiceProtocolError(service.service_name, service.protocol)
    return protocol_specific_unmarshallers[protocol]()
