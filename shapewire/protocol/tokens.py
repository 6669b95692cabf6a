"""
Token cursors provide a forward-only, depth-tracked view on a serialized message document.

The unmarshallers never work on a fully materialized document tree. They pull events from a cursor and decide
whether an event belongs to one of the fields they know by comparing the event's name and the cursor's depth with the
depth they expect the field at. Everything else is skipped implicitly, which makes the unmarshallers tolerant against
unknown fields at any nesting level.

* ``XMLTokenCursor`` walks the start and end events of an ``xml.etree.ElementTree.XMLPullParser``. The depth is the
  number of currently open elements.
* ``JSONTokenCursor`` walks a JSON document as a sequence of Jackson-like tokens. The depth is the number of currently
  open objects and arrays. Field names are reported at the depth of the object which contains them.
"""
import abc
import json
import logging
from typing import Dict, Iterator, List, NamedTuple, Optional
from xml.etree import ElementTree as ETree

from shapewire import config
from shapewire.protocol.errors import MalformedWireDataError

LOG = logging.getLogger(__name__)

START_ELEMENT = "START_ELEMENT"
END_ELEMENT = "END_ELEMENT"
START_OBJECT = "START_OBJECT"
END_OBJECT = "END_OBJECT"
START_ARRAY = "START_ARRAY"
END_ARRAY = "END_ARRAY"
FIELD_NAME = "FIELD_NAME"
VALUE = "VALUE"
END_DOCUMENT = "END_DOCUMENT"

START_EVENTS = (START_ELEMENT, START_OBJECT, START_ARRAY)
END_EVENTS = (END_ELEMENT, END_OBJECT, END_ARRAY)


class Event(NamedTuple):
    kind: str
    name: Optional[str] = None
    value: Optional[object] = None


class TokenCursor(abc.ABC):
    """
    Base class of the token cursors. A cursor is single-use and must not be shared between threads.
    """

    def __init__(self):
        self._depth = 0
        self._consumed = 0
        self._current: Optional[Event] = None
        self._lookahead: Optional[Event] = None
        self._trace = config.is_trace_logging_enabled()

    @property
    def depth(self) -> int:
        """The current nesting depth (after the last event returned by ``next_event``)."""
        return self._depth

    @property
    def current_event(self) -> Optional[Event]:
        return self._current

    def is_start_of_document(self) -> bool:
        """Whether no event has been consumed yet."""
        return self._consumed == 0

    def next_event(self) -> Event:
        """
        Advances the cursor and returns the next event. Once the document is exhausted, every further call returns
        an ``END_DOCUMENT`` event.

        :raises MalformedWireDataError: if the document is not well-formed
        """
        event = self.peek_event()
        self._lookahead = None
        self._consumed += 1
        self._current = event
        self._update(event)
        if self._trace:
            LOG.debug("%s %s (depth %d)", event.kind, event.name or "", self._depth)
        return event

    def peek_event(self) -> Event:
        """Returns the next event without consuming it."""
        if self._lookahead is None:
            self._lookahead = self._read_event()
        return self._lookahead

    @abc.abstractmethod
    def test_expression(self, expression: str, target_depth: int) -> bool:
        """
        Checks whether the current event is the field described by the expression at the given depth.
        """
        raise NotImplementedError

    def _update(self, event: Event) -> None:
        if event.kind in START_EVENTS:
            self._depth += 1
        elif event.kind in END_EVENTS:
            self._depth -= 1

    @abc.abstractmethod
    def _read_event(self) -> Event:
        raise NotImplementedError


class XMLTokenCursor(TokenCursor):
    """
    Token cursor on top of an XML document. Namespaces are stripped from the element names.
    """

    CHUNK_SIZE = 8192

    def __init__(self, data: bytes):
        super().__init__()
        self._data = data
        self._parser = ETree.XMLPullParser(events=("start", "end"))
        self._raw_events = self._parse()
        self._stack: List[str] = []
        self._stack_string = ""
        self._elements: List[ETree.Element] = []

    @property
    def stack_string(self) -> str:
        """The slash-separated path of the currently open elements (f.e. ``/Response/Result/Items``)."""
        return self._stack_string

    @property
    def attributes(self) -> Dict[str, str]:
        """The attributes of the innermost open element."""
        if not self._elements:
            return {}
        return {_strip_namespace(key): value for key, value in self._elements[-1].attrib.items()}

    def test_expression(self, expression: str, target_depth: int) -> bool:
        if expression == ".":
            return True
        expected_depth = target_depth
        index = expression.find("/")
        while index > -1:
            if not expression.startswith("@", index + 1):
                expected_depth += 1
            index = expression.find("/", index + 1)
        return expected_depth == self._depth and self._stack_string.endswith("/" + expression)

    def read_text(self) -> str:
        """
        Returns the text content of the element which has just been started. The end event of the element stays the
        next event of the cursor.

        :raises MalformedWireDataError: if the current event is not a start element, or the element contains elements
        """
        if self._current is None or self._current.kind != START_ELEMENT:
            raise MalformedWireDataError("Text can only be read directly after the start of an element.")
        next_event = self.peek_event()
        if next_event.kind != END_ELEMENT:
            raise MalformedWireDataError(
                f"Element {self._current.name} contains nested elements instead of a text value."
            )
        return self._elements[-1].text or ""

    def _update(self, event: Event) -> None:
        super()._update(event)
        if event.kind == START_ELEMENT:
            self._stack.append(event.name)
            self._elements.append(event.value)
        elif event.kind == END_ELEMENT:
            self._stack.pop()
            self._elements.pop()
        else:
            return
        self._stack_string = "/" + "/".join(self._stack) if self._stack else ""

    def _read_event(self) -> Event:
        return next(self._raw_events, Event(END_DOCUMENT))

    def _parse(self) -> Iterator[Event]:
        try:
            for offset in range(0, len(self._data), self.CHUNK_SIZE):
                self._parser.feed(self._data[offset : offset + self.CHUNK_SIZE])
                yield from self._convert(self._parser.read_events())
            self._parser.close()
            yield from self._convert(self._parser.read_events())
        except ETree.ParseError as e:
            raise MalformedWireDataError(f"Unable to parse XML document: {e}") from e

    @staticmethod
    def _convert(events) -> Iterator[Event]:
        for action, element in events:
            name = _strip_namespace(element.tag)
            if action == "start":
                # the element is passed along to read its text and attributes once it is closed
                yield Event(START_ELEMENT, name, element)
            else:
                yield Event(END_ELEMENT, name)


class JSONTokenCursor(TokenCursor):
    """
    Token cursor on top of a JSON document.
    """

    def __init__(self, data: bytes):
        super().__init__()
        try:
            document = json.loads(data) if data else None
        except ValueError as e:
            raise MalformedWireDataError(f"Unable to parse JSON document: {e}") from e
        self._raw_events = self._walk(document, None) if data else iter(())

    def test_expression(self, expression: str, target_depth: int) -> bool:
        if expression == ".":
            return True
        return (
            self._current is not None
            and self._current.kind == FIELD_NAME
            and self._current.name == expression
            and self._depth == target_depth
        )

    def _read_event(self) -> Event:
        return next(self._raw_events, Event(END_DOCUMENT))

    def _walk(self, value, name: Optional[str]) -> Iterator[Event]:
        if isinstance(value, dict):
            yield Event(START_OBJECT, name)
            for key, item in value.items():
                yield Event(FIELD_NAME, key)
                yield from self._walk(item, key)
            yield Event(END_OBJECT, name)
        elif isinstance(value, list):
            yield Event(START_ARRAY, name)
            for item in value:
                yield from self._walk(item, name)
            yield Event(END_ARRAY, name)
        else:
            yield Event(VALUE, name, value)


def _strip_namespace(tag: str) -> str:
    if tag.startswith("{"):
        return tag.rpartition("}")[2]
    return tag
