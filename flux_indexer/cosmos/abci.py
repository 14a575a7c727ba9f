"""ABCI events and their attributes as emitted by Cosmos chains."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be an object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class ABCIEventAttribute:
    """A key/value attribute of an event."""

    key: str
    value: str

    @classmethod
    def from_dict(cls, data: Any) -> ABCIEventAttribute:
        data = _mapping(data, "event attribute")
        return cls(key=_text(data, "key"), value=_text(data, "value"))


@dataclass
class ABCIEvent:
    """An event with a type and a list of attributes."""

    type: str
    attributes: list[ABCIEventAttribute] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ABCIEvent:
        data = _mapping(data, "event")
        attributes = data.get("attributes") or []
        return cls(
            type=_text(data, "type"),
            attributes=[ABCIEventAttribute.from_dict(item) for item in attributes],
        )

    def find_attribute_func(
        self, predicate: Callable[[ABCIEventAttribute], bool]
    ) -> ABCIEventAttribute | None:
        """Return the first attribute matching ``predicate``, or None."""
        return next((a for a in self.attributes if predicate(a)), None)

    def find_attribute(self, key: str) -> ABCIEventAttribute | None:
        """Return the first attribute with the given key, or None."""
        return self.find_attribute_func(lambda a: a.key == key)

    def find_attributes_func(
        self, predicate: Callable[[ABCIEventAttribute], bool]
    ) -> list[ABCIEventAttribute]:
        """Return all the attributes matching ``predicate``."""
        return [a for a in self.attributes if predicate(a)]

    def find_attributes(self, key: str) -> list[ABCIEventAttribute]:
        """Return all the attributes with the given key."""
        return self.find_attributes_func(lambda a: a.key == key)


class ABCIEvents(list):
    """A list of events with search helpers."""

    def __init__(self, events: Iterable[ABCIEvent] = ()) -> None:
        super().__init__(events)

    @classmethod
    def from_list(cls, data: Any) -> ABCIEvents:
        if data is None:
            return cls()
        if not isinstance(data, list):
            raise ValueError(f"events must be a list, got {type(data).__name__}")
        return cls(ABCIEvent.from_dict(item) for item in data)

    def find_event_func(self, predicate: Callable[[ABCIEvent], bool]) -> ABCIEvent | None:
        """Return the first event matching ``predicate``, or None."""
        return next((e for e in self if predicate(e)), None)

    def find_event_with_type(self, event_type: str) -> ABCIEvent | None:
        """Return the first event of the given type, or None."""
        return self.find_event_func(lambda e: e.type == event_type)

    def find_events_func(self, predicate: Callable[[ABCIEvent], bool]) -> list[ABCIEvent]:
        """Return all the events matching ``predicate``."""
        return [e for e in self if predicate(e)]

    def find_events_with_type(self, event_type: str) -> list[ABCIEvent]:
        """Return all the events of the given type."""
        return self.find_events_func(lambda e: e.type == event_type)


@dataclass
class ABCIMsgLog:
    """The events of one message, as found in a transaction log."""

    msg_index: int
    events: ABCIEvents = field(default_factory=ABCIEvents)

    @classmethod
    def from_dict(cls, data: Any) -> ABCIMsgLog:
        data = _mapping(data, "message log")
        index = data.get("msg_index", 0)
        if index is None:
            index = 0
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < 2**32:
            raise ValueError(f"invalid msg_index: {index!r}")
        return cls(msg_index=index, events=ABCIEvents.from_list(data.get("events")))