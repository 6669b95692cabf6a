import logging

import pytest

from shapewire import config
from shapewire.protocol.errors import MalformedWireDataError
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
    XMLTokenCursor,
)


def _drain(cursor):
    events = []
    while True:
        event = cursor.next_event()
        events.append((event.kind, event.name, cursor.depth))
        if event.kind == END_DOCUMENT:
            return events


class TestXMLTokenCursor:
    def test_events_and_depth(self):
        cursor = XMLTokenCursor(b"<a><b>1</b><c><d>x</d></c></a>")
        assert cursor.is_start_of_document()
        assert _drain(cursor) == [
            (START_ELEMENT, "a", 1),
            (START_ELEMENT, "b", 2),
            (END_ELEMENT, "b", 1),
            (START_ELEMENT, "c", 2),
            (START_ELEMENT, "d", 3),
            (END_ELEMENT, "d", 2),
            (END_ELEMENT, "c", 1),
            (END_ELEMENT, "a", 0),
            (END_DOCUMENT, None, 0),
        ]
        assert not cursor.is_start_of_document()

    def test_end_document_is_repeated(self):
        cursor = XMLTokenCursor(b"<a/>")
        _drain(cursor)
        assert cursor.next_event().kind == END_DOCUMENT
        assert cursor.next_event().kind == END_DOCUMENT

    def test_stack_string_and_namespaces(self):
        cursor = XMLTokenCursor(
            b'<Response xmlns="https://example.com/doc/"><Result><Items/></Result></Response>'
        )
        cursor.next_event()
        cursor.next_event()
        cursor.next_event()
        assert cursor.current_event.name == "Items"
        assert cursor.stack_string == "/Response/Result/Items"
        cursor.next_event()
        assert cursor.stack_string == "/Response/Result"

    def test_test_expression_uses_depth(self):
        cursor = XMLTokenCursor(b"<a><items><member>x</member></items><b><items/></b></a>")
        cursor.next_event()  # a
        cursor.next_event()  # items
        assert cursor.test_expression("items", 2)
        assert not cursor.test_expression("items", 1)
        cursor.next_event()  # member
        assert cursor.test_expression("items/member", 2)
        assert not cursor.test_expression("items/member", 3)
        assert cursor.test_expression(".", 42)

        cursor = XMLTokenCursor(b"<a><b><items/></b></a>")
        cursor.next_event()
        cursor.next_event()
        cursor.next_event()
        # same name, but one level too deep
        assert not cursor.test_expression("items", 2)
        assert cursor.test_expression("b/items", 2)

    def test_attributes(self):
        cursor = XMLTokenCursor(b'<a><b id="1"/></a>')
        cursor.next_event()
        cursor.next_event()
        assert cursor.depth == 2
        assert cursor.attributes == {"id": "1"}

    def test_read_text(self):
        cursor = XMLTokenCursor(b"<a><b>hello</b><c/></a>")
        cursor.next_event()
        cursor.next_event()
        assert cursor.read_text() == "hello"
        # the end of the element is still pending
        assert cursor.next_event().kind == END_ELEMENT
        cursor.next_event()
        assert cursor.read_text() == ""

    def test_read_text_of_element_with_children(self):
        cursor = XMLTokenCursor(b"<a><b><c>x</c></b></a>")
        cursor.next_event()
        cursor.next_event()
        with pytest.raises(MalformedWireDataError):
            cursor.read_text()

    def test_read_text_requires_start_element(self):
        cursor = XMLTokenCursor(b"<a></a>")
        with pytest.raises(MalformedWireDataError):
            cursor.read_text()

    def test_large_documents_are_read_in_chunks(self):
        items = b"".join(b"<member>item-%d</member>" % i for i in range(2000))
        cursor = XMLTokenCursor(b"<a><items>" + items + b"</items></a>")
        texts = []
        while cursor.next_event().kind != END_DOCUMENT:
            if cursor.current_event.kind == START_ELEMENT and cursor.current_event.name == "member":
                texts.append(cursor.read_text())
        assert len(texts) == 2000
        assert texts[-1] == "item-1999"

    @pytest.mark.parametrize(
        "data",
        [b"<a><b></a>", b"<a>", b"not xml at all", b"<a></a><b></b>"],
    )
    def test_malformed_xml(self, data):
        cursor = XMLTokenCursor(data)
        with pytest.raises(MalformedWireDataError):
            _drain(cursor)

    def test_peek_does_not_consume(self):
        cursor = XMLTokenCursor(b"<a/>")
        assert cursor.peek_event().kind == START_ELEMENT
        assert cursor.depth == 0
        assert cursor.is_start_of_document()
        assert cursor.next_event().kind == START_ELEMENT
        assert cursor.depth == 1


class TestJSONTokenCursor:
    def test_events_and_depth(self):
        cursor = JSONTokenCursor(b'{"a": 1, "b": [true, null], "c": {"d": "x"}}')
        assert _drain(cursor) == [
            (START_OBJECT, None, 1),
            (FIELD_NAME, "a", 1),
            (VALUE, "a", 1),
            (FIELD_NAME, "b", 1),
            (START_ARRAY, "b", 2),
            (VALUE, "b", 2),
            (VALUE, "b", 2),
            (END_ARRAY, "b", 1),
            (FIELD_NAME, "c", 1),
            (START_OBJECT, "c", 2),
            (FIELD_NAME, "d", 2),
            (VALUE, "d", 2),
            (END_OBJECT, "c", 1),
            (END_OBJECT, None, 0),
            (END_DOCUMENT, None, 0),
        ]

    def test_values(self):
        cursor = JSONTokenCursor(b'{"a": 1.5, "b": null}')
        cursor.next_event()
        cursor.next_event()
        assert cursor.next_event().value == 1.5
        cursor.next_event()
        event = cursor.next_event()
        assert event.kind == VALUE
        assert event.value is None

    def test_test_expression(self):
        cursor = JSONTokenCursor(b'{"a": {"a": 1}}')
        cursor.next_event()
        cursor.next_event()
        assert cursor.test_expression("a", 1)
        assert not cursor.test_expression("b", 1)
        cursor.next_event()
        assert not cursor.test_expression("a", 1)
        cursor.next_event()
        assert cursor.test_expression("a", 2)
        assert not cursor.test_expression("a", 1)

    def test_empty_document(self):
        cursor = JSONTokenCursor(b"")
        assert cursor.next_event().kind == END_DOCUMENT

    @pytest.mark.parametrize("data", [b"{", b'{"a": }', b"<xml/>", b"{'a': 1}"])
    def test_malformed_json(self, data):
        with pytest.raises(MalformedWireDataError):
            JSONTokenCursor(data)


def test_events_are_logged_with_trace_logging(monkeypatch, caplog):
    monkeypatch.setattr(config, "SHAPEWIRE_LOG", "trace")
    cursor = XMLTokenCursor(b"<a><b/></a>")
    with caplog.at_level(logging.DEBUG, logger="shapewire.protocol.tokens"):
        _drain(cursor)
    assert "START_ELEMENT b (depth 2)" in caplog.text
    assert "END_ELEMENT a (depth 0)" in caplog.text
