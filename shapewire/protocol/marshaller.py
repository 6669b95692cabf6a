"""
Request marshallers for the different AWS service protocols.

A marshaller takes a request dict (keyed by the member names of the operation's input shape) and an operation model,
and creates the ``WireFrame`` which has to be sent to the service. The message-shape metadata (member names, wire
locations, value types) is not part of the marshallers. It is taken from the botocore service specification, which
means that there is a single marshaller per protocol (and not one per message).

The different protocols have many similarities. The class hierarchy is designed such that the marshallers share as
much logic as possible:

::

                               ┌─────────────────┐
                               │RequestMarshaller│
                               └─────────────────┘
                                  ▲      ▲      ▲
            ┌─────────────────────┘      │      └──────────────────┐
  ┌─────────┴────────────┐ ┌─────────────┴───────────┐ ┌───────────┴─────────┐
  │QueryRequestMarshaller│ │BaseRestRequestMarshaller│ │JSONRequestMarshaller│
  └──────────────────────┘ └─────────────────────────┘ └─────────────────────┘
                                  ▲             ▲                 ▲
             ┌────────────────────┴─────┐ ┌─────┴─────────────────┴──┐
             │RestXMLRequestMarshaller  │ │RestJSONRequestMarshaller │
             └──────────────────────────┘ └──────────────────────────┘
::

The ``RequestMarshaller`` contains the public API and the error handling. The protocol-specific marshallers implement
the mapping of the members to the wire frame (``_marshall_frame``). The ReST marshallers additionally distribute the
members to the URI path, the query string, the headers, and the body of the frame.

Every failure during the marshalling is raised as a ``MarshallingError`` (the original exception is its cause),
with the exception of an absent request, which is raised as ``InvalidRequestError``. The request is never modified.
"""
import abc
import functools
import json
import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode
from xml.etree import ElementTree as ETree

from botocore.model import ListShape, MapShape, OperationModel, ServiceModel, Shape, StructureShape
from botocore.utils import percent_encode
from werkzeug.datastructures import Headers, MultiDict

from shapewire.api import WireFrame
from shapewire.constants import (
    APPLICATION_AMZ_JSON_1_0,
    APPLICATION_JSON,
    APPLICATION_X_WWW_FORM_URLENCODED,
    APPLICATION_XML,
)
from shapewire.protocol.codec import FieldCodec, JSONFieldCodec
from shapewire.protocol.errors import (
    InvalidRequestError,
    MarshallingError,
    UnknownServiceProtocolError,
)
from shapewire.spec import get_protocol
from shapewire.utils.strings import to_bytes, to_str

LOG = logging.getLogger(__name__)

URI_PLACEHOLDER_REGEX = re.compile(r"{([^}]+)}")


def _handle_exceptions(func):
    """
    Decorator which handles the exceptions raised by the marshaller. It ensures that all exceptions raised by the
    public methods of the marshaller are instances of InvalidRequestError or MarshallingError.
    :param func: to wrap in order to add the exception handling
    :return: wrapped function
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (InvalidRequestError, MarshallingError):
            raise
        except Exception as e:
            raise MarshallingError(f"Unable to marshall request: {e}") from e

    return wrapper


class RequestMarshaller(abc.ABC):
    """
    The request marshaller is responsible for the serialization of a request dict to a wire frame.
    """

    # codec used for all values which are transferred as plain text (query string, URI, headers, XML)
    text_codec = FieldCodec()
    # codec used for the values in the body of the frame
    body_codec = text_codec

    @_handle_exceptions
    def marshall(self, request: Optional[Mapping], operation: OperationModel) -> WireFrame:
        """
        Creates the wire frame for the given request.

        :param request: dict of the request members, keyed by the member names of the input shape
        :param operation: model of the operation the request is addressed to
        :return: the wire frame which can be sent to the service
        :raises InvalidRequestError: if the request is None (or not a mapping)
        :raises MarshallingError: if any value can not be encoded or the frame can not be written
        """
        if request is None or not isinstance(request, Mapping):
            raise InvalidRequestError("Invalid argument passed to marshall(...)")
        frame = WireFrame(method=operation.http.get("method", "POST"), path="/")
        self._marshall_frame(frame, request, operation)
        if frame.body:
            frame.headers["Content-Length"] = str(len(frame.body))
        return frame

    @abc.abstractmethod
    def _marshall_frame(self, frame: WireFrame, request: Mapping, operation: OperationModel):
        raise NotImplementedError

    @staticmethod
    def _present_members(shape: StructureShape, params: Mapping) -> Dict[str, Shape]:
        """
        Returns the members of the given structure shape which have a value in the given params, in the order in which
        they are declared in the shape. Unknown keys in the params are logged and ignored.
        """
        members = shape.members
        for key in params:
            if key not in members:
                LOG.warning(
                    "Request object %s contains a member which is not specified: %s",
                    shape.name,
                    key,
                )
        return {
            name: member_shape
            for name, member_shape in members.items()
            if params.get(name) is not None
        }

    @staticmethod
    def _get_serialized_name(shape: Shape, default_name: str) -> str:
        """
        Returns the serialized name for the shape if it exists.
        Otherwise, it will return the passed in default_name.
        """
        return shape.serialization.get("name", default_name)


class QueryRequestMarshaller(RequestMarshaller):
    """
    The ``QueryRequestMarshaller`` is responsible for the serialization of requests for services with the ``query``
    protocol (f.e. RDS, ElastiCache). The request is sent as form-urlencoded body of a POST request. Nested members
    are flattened to dotted parameter names (f.e. ``Filters.Filter.1.Name``).
    """

    def _marshall_frame(self, frame: WireFrame, request: Mapping, operation: OperationModel):
        params = {
            "Action": operation.name,
            "Version": operation.metadata["apiVersion"],
        }
        shape = operation.input_shape
        if shape is not None:
            self._serialize(params, request, shape, "")
        frame.method = "POST"
        frame.path = "/"
        frame.headers["Content-Type"] = APPLICATION_X_WWW_FORM_URLENCODED
        frame.body = to_bytes(urlencode(params))

    def _serialize(self, serialized: dict, value: Any, shape: Shape, prefix: str) -> None:
        """This method dynamically invokes the correct `_serialize_type_*` method for each shape type."""
        method = getattr(self, "_serialize_type_%s" % shape.type_name, self._default_serialize)
        method(serialized, value, shape, prefix)

    def _serialize_type_structure(
        self, serialized: dict, value: Mapping, shape: StructureShape, prefix: str
    ) -> None:
        for member_name, member_shape in self._present_members(shape, value).items():
            member_prefix = self._get_serialized_name(member_shape, member_name)
            if prefix:
                member_prefix = f"{prefix}.{member_prefix}"
            self._serialize(serialized, value[member_name], member_shape, member_prefix)

    def _serialize_type_list(
        self, serialized: dict, value: list, shape: ListShape, prefix: str
    ) -> None:
        items = [item for item in value if item is not None]
        if not items:
            # the query protocol sends empty lists as empty parameter
            serialized[prefix] = ""
            return
        if shape.serialization.get("flattened"):
            list_prefix = prefix
            if shape.member.serialization.get("name"):
                # replace the last component of the prefix with the name of the members
                name = self._get_serialized_name(shape.member, default_name="")
                list_prefix = ".".join(prefix.split(".")[:-1] + [name])
        else:
            list_name = self._get_serialized_name(shape.member, "member")
            list_prefix = f"{prefix}.{list_name}"
        for index, item in enumerate(items, 1):
            self._serialize(serialized, item, shape.member, f"{list_prefix}.{index}")

    def _serialize_type_map(
        self, serialized: dict, value: Mapping, shape: MapShape, prefix: str
    ) -> None:
        if shape.serialization.get("flattened"):
            full_prefix = prefix
        else:
            full_prefix = f"{prefix}.entry"
        key_suffix = self._get_serialized_name(shape.key, default_name="key")
        value_suffix = self._get_serialized_name(shape.value, default_name="value")
        entries = [(key, item) for key, item in value.items() if item is not None]
        for index, (key, item) in enumerate(entries, 1):
            self._serialize(serialized, key, shape.key, f"{full_prefix}.{index}.{key_suffix}")
            self._serialize(serialized, item, shape.value, f"{full_prefix}.{index}.{value_suffix}")

    def _default_serialize(self, serialized: dict, value: Any, shape: Shape, prefix: str) -> None:
        serialized[prefix] = self.text_codec.encode(shape, value)


class JSONRequestMarshaller(RequestMarshaller):
    """
    The ``JSONRequestMarshaller`` is responsible for the serialization of requests for services with the ``json``
    protocol (f.e. SWF, SSM). The operation is addressed by the ``X-Amz-Target`` header, the members are sent as JSON
    object in the body.
    """

    body_codec = JSONFieldCodec()

    def _marshall_frame(self, frame: WireFrame, request: Mapping, operation: OperationModel):
        metadata = operation.metadata
        frame.method = "POST"
        frame.path = "/"
        json_version = metadata.get("jsonVersion")
        content_type = (
            f"application/x-amz-json-{json_version}" if json_version else APPLICATION_AMZ_JSON_1_0
        )
        frame.headers["X-Amz-Target"] = f"{metadata['targetPrefix']}.{operation.name}"
        frame.headers["Content-Type"] = content_type
        frame.body = self._serialize_body_params(request, operation.input_shape)

    def _serialize_body_params(self, params: Mapping, shape: Optional[Shape]) -> bytes:
        body = {}
        if shape is not None:
            self._serialize(body, params, shape, None)
        return to_bytes(json.dumps(body))

    def _serialize(self, body: dict, value: Any, shape: Shape, key: Optional[str]) -> None:
        """This method dynamically invokes the correct `_serialize_type_*` method for each shape type."""
        method = getattr(self, "_serialize_type_%s" % shape.type_name, self._default_serialize)
        method(body, value, shape, key)

    def _serialize_type_structure(
        self, body: dict, value: Mapping, shape: StructureShape, key: Optional[str]
    ) -> None:
        if shape.is_document_type:
            body[key] = value
            return
        if key is not None:
            # nested structures are added as a new child object of the given body
            new_serialized = {}
            body[key] = new_serialized
            body = new_serialized
        for member_name, member_shape in self._present_members(shape, value).items():
            member_key = self._get_serialized_name(member_shape, member_name)
            self._serialize(body, value[member_name], member_shape, member_key)

    def _serialize_type_map(self, body: dict, value: Mapping, shape: MapShape, key: str) -> None:
        map_obj = {}
        body[key] = map_obj
        for sub_key, sub_value in value.items():
            if sub_value is not None:
                self._serialize(map_obj, sub_value, shape.value, sub_key)

    def _serialize_type_list(self, body: dict, value: list, shape: ListShape, key: str) -> None:
        list_obj = []
        body[key] = list_obj
        for list_item in value:
            if list_item is not None:
                # the list items are serialized into the "__current__" key of a wrapper dict
                wrapper = {}
                self._serialize(wrapper, list_item, shape.member, "__current__")
                list_obj.append(wrapper["__current__"])

    def _default_serialize(self, body: dict, value: Any, shape: Shape, key: str) -> None:
        body[key] = self.body_codec.encode(shape, value)


class BaseRestRequestMarshaller(RequestMarshaller, abc.ABC):
    """
    The ``BaseRestRequestMarshaller`` distributes the members of a request to the different locations of the frame
    (URI path, query string, headers, body) for the ReST protocols. The serialization of the body is done by the
    protocol-specific subclasses.
    """

    HEADER_TIMESTAMP_FORMAT = "rfc822"
    QUERY_STRING_TIMESTAMP_FORMAT = "iso8601"
    BODY_CONTENT_TYPE: str = None

    def _marshall_frame(self, frame: WireFrame, request: Mapping, operation: OperationModel):
        shape = operation.input_shape
        uri_params = {}
        query = MultiDict()
        headers = Headers()
        body_params = {}
        if shape is not None:
            self._partition_members(request, shape, uri_params, query, headers, body_params)

        request_uri = operation.http.get("requestUri", "/")
        path, _, static_query = request_uri.partition("?")
        frame.method = operation.http.get("method", "POST")
        frame.path = self._render_uri_template(path, uri_params)
        # static query parameters of the request URI (f.e. "/2013-04-01/tags/{ResourceType}?tagging") come first
        for key, value in parse_qsl(static_query, keep_blank_values=True):
            frame.query.add(key, value)
        for key, value in query.items(multi=True):
            frame.query.add(key, value)
        frame.headers.extend(headers)
        self._serialize_payload(frame, body_params, shape)

    def _partition_members(
        self,
        params: Mapping,
        shape: StructureShape,
        uri_params: dict,
        query: MultiDict,
        headers: Headers,
        body_params: dict,
    ) -> None:
        for member_name, member_shape in self._present_members(shape, params).items():
            value = params[member_name]
            location = member_shape.serialization.get("location")
            key_name = self._get_serialized_name(member_shape, member_name)
            if location == "uri":
                uri_params[key_name] = self.text_codec.encode(member_shape, value)
            elif location == "querystring":
                self._serialize_query_value(query, key_name, member_shape, value)
            elif location == "header":
                headers[key_name] = self._serialize_header_value(member_shape, value)
            elif location == "headers":
                for header_key, header_value in value.items():
                    if header_value is not None:
                        headers[key_name + header_key] = self.text_codec.encode(
                            member_shape.value, header_value
                        )
            else:
                body_params[member_name] = value

    def _serialize_query_value(
        self, query: MultiDict, key: str, shape: Shape, value: Any
    ) -> None:
        """Serializes a value for the location trait "querystring"."""
        if isinstance(shape, MapShape):
            for map_key, map_value in value.items():
                if isinstance(map_value, list):
                    for item in map_value:
                        query.add(map_key, self.text_codec.encode(shape.value.member, item))
                elif map_value is not None:
                    query.add(map_key, self.text_codec.encode(shape.value, map_value))
        elif isinstance(shape, ListShape):
            for item in value:
                if item is not None:
                    query.add(
                        key,
                        self.text_codec.encode(
                            shape.member, item, self.QUERY_STRING_TIMESTAMP_FORMAT
                        ),
                    )
        else:
            query.add(
                key, self.text_codec.encode(shape, value, self.QUERY_STRING_TIMESTAMP_FORMAT)
            )

    def _serialize_header_value(self, shape: Shape, value: Any) -> str:
        """Serializes a value for the location trait "header"."""
        if isinstance(shape, ListShape):
            return ",".join(
                self._serialize_header_value(shape.member, item)
                for item in value
                if item is not None
            )
        return self.text_codec.encode(shape, value, self.HEADER_TIMESTAMP_FORMAT)

    @staticmethod
    def _render_uri_template(uri_template: str, params: Dict[str, str]) -> str:
        """
        Replaces the placeholders of the URI template with the percent-encoded values. Greedy placeholders (``{Key+}``)
        keep the slashes of the value. Placeholders without a value are replaced with an empty string.
        """

        def _replace(match: re.Match) -> str:
            placeholder = match.group(1)
            if placeholder.endswith("+"):
                return percent_encode(params.get(placeholder[:-1], ""), safe="/~")
            return percent_encode(params.get(placeholder, ""))

        return URI_PLACEHOLDER_REGEX.sub(_replace, uri_template)

    def _serialize_payload(self, frame: WireFrame, body_params: dict, shape: Optional[Shape]):
        if shape is None:
            return
        payload_member = shape.serialization.get("payload")
        if payload_member is not None and shape.members[payload_member].type_name in [
            "blob",
            "string",
        ]:
            # a blob or string payload is the raw body of the frame
            frame.body = to_bytes(body_params.get(payload_member, b""))
        elif payload_member is not None:
            payload_params = body_params.get(payload_member)
            if payload_params is not None:
                frame.body = self._serialize_body_params(
                    payload_params, shape.members[payload_member]
                )
                frame.headers["Content-Type"] = self.BODY_CONTENT_TYPE
        elif self._has_body_members(shape):
            frame.body = self._serialize_body_params(body_params, shape)
            frame.headers["Content-Type"] = self.BODY_CONTENT_TYPE

    @staticmethod
    def _has_body_members(shape: StructureShape) -> bool:
        return any(
            not member_shape.serialization.get("location")
            for member_shape in shape.members.values()
        )

    @abc.abstractmethod
    def _serialize_body_params(self, params: Mapping, shape: Shape) -> bytes:
        raise NotImplementedError


class RestJSONRequestMarshaller(BaseRestRequestMarshaller, JSONRequestMarshaller):
    """
    The ``RestJSONRequestMarshaller`` is responsible for the serialization of requests for services with the
    ``rest-json`` protocol (f.e. IoT). It combines the ``BaseRestRequestMarshaller`` (for the ReST specific logic)
    with the ``JSONRequestMarshaller`` (for the JSON body serialization).
    """

    BODY_CONTENT_TYPE = APPLICATION_JSON

    # the abstract declaration of the ReST base precedes the JSON body serialization in the MRO
    _serialize_body_params = JSONRequestMarshaller._serialize_body_params


class RestXMLRequestMarshaller(BaseRestRequestMarshaller):
    """
    The ``RestXMLRequestMarshaller`` is responsible for the serialization of requests for services with the
    ``rest-xml`` protocol (f.e. Route53). The body is an XML document whose root element is named after the input
    shape (or the payload member).
    """

    BODY_CONTENT_TYPE = APPLICATION_XML
    DEFAULT_ENCODING = "utf-8"

    def _serialize_body_params(self, params: Mapping, shape: Shape) -> bytes:
        root_name = shape.serialization.get("name", shape.name)
        pseudo_root = ETree.Element("")
        self._serialize(shape, params, pseudo_root, root_name)
        real_root = list(pseudo_root)[0]
        return ETree.tostring(real_root, encoding=self.DEFAULT_ENCODING)

    def _serialize(self, shape: Shape, params: Any, xmlnode: ETree.Element, name: str) -> None:
        """This method dynamically invokes the correct `_serialize_type_*` method for each shape type."""
        method = getattr(self, "_serialize_type_%s" % shape.type_name, self._default_serialize)
        method(xmlnode, params, shape, name)

    def _serialize_type_structure(
        self, xmlnode: ETree.Element, params: Mapping, shape: StructureShape, name: str
    ) -> None:
        structure_node = ETree.SubElement(xmlnode, name)

        if "xmlNamespace" in shape.serialization:
            namespace_metadata = shape.serialization["xmlNamespace"]
            attribute_name = "xmlns"
            if namespace_metadata.get("prefix"):
                attribute_name += ":%s" % namespace_metadata["prefix"]
            structure_node.attrib[attribute_name] = namespace_metadata["uri"]
        for member_name, member_shape in self._present_members(shape, params).items():
            if member_shape.serialization.get("location"):
                # members located in the URI or the headers are not part of the body
                continue
            value = params[member_name]
            serialized_name = self._get_serialized_name(member_shape, member_name)
            if member_shape.serialization.get("xmlAttribute"):
                # xml attributes are serialized to an attribute of the current node
                structure_node.attrib[serialized_name] = self.text_codec.encode(member_shape, value)
                continue
            self._serialize(member_shape, value, structure_node, serialized_name)

    def _serialize_type_list(
        self, xmlnode: ETree.Element, params: list, shape: ListShape, name: str
    ) -> None:
        member_shape = shape.member
        if shape.serialization.get("flattened"):
            element_name = self._get_serialized_name(member_shape, name)
            list_node = xmlnode
        else:
            element_name = self._get_serialized_name(member_shape, "member")
            list_node = ETree.SubElement(xmlnode, name)
        for item in params:
            if item is not None:
                self._serialize(member_shape, item, list_node, element_name)

    def _serialize_type_map(
        self, xmlnode: ETree.Element, params: Mapping, shape: MapShape, name: str
    ) -> None:
        if shape.serialization.get("flattened"):
            entries_node = xmlnode
            entry_node_name = name
        else:
            entries_node = ETree.SubElement(xmlnode, name)
            entry_node_name = "entry"
        key_name = self._get_serialized_name(shape.key, default_name="key")
        val_name = self._get_serialized_name(shape.value, default_name="value")
        for key, value in params.items():
            if value is None:
                continue
            entry_node = ETree.SubElement(entries_node, entry_node_name)
            self._serialize(shape.key, key, entry_node, key_name)
            self._serialize(shape.value, value, entry_node, val_name)

    def _default_serialize(
        self, xmlnode: ETree.Element, params: Any, shape: Shape, name: str
    ) -> None:
        node = ETree.SubElement(xmlnode, name)
        node.text = to_str(self.text_codec.encode(shape, params))


def create_marshaller(service: ServiceModel) -> RequestMarshaller:
    """
    Creates the right marshaller for the given service model.

    :param service: to create the marshaller for
    :return: RequestMarshaller which can handle the protocol of the service
    :raises UnknownServiceProtocolError: if the service does not understand any supported protocol
    """
    protocol_specific_marshallers = {
        "query": QueryRequestMarshaller,
        "json": JSONRequestMarshaller,
        "rest-json": RestJSONRequestMarshaller,
        "rest-xml": RestXMLRequestMarshaller,
    }
    protocol = get_protocol(service)
    if protocol not in protocol_specific_marshallers:
        raise UnknownServiceProtocolError(service.service_name, service.protocol)
    return protocol_specific_marshallers[protocol]()
