"""Transaction responses and the events and attributes they carry."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import TimestampParseError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _decode(value: bytes | str) -> str:
    if isinstance(value, str):
        return value
    return bytes(value).decode("utf-8", errors="replace")


@dataclass
class TxResultBlockAttribute:
    """A single attribute of an event."""

    key: str
    value: str


@dataclass
class TxResultBlockEvent:
    """A single event from a transaction and its attributes."""

    type: str
    attributes: list[TxResultBlockAttribute] = field(default_factory=list)

    def get_attributes(self, key: str) -> list[TxResultBlockAttribute]:
        """Return every attribute whose key is ``key``."""
        return [attr for attr in self.attributes if attr.key == key]

    def get_first_attribute_value(self, key: str) -> str | None:
        """Return the value of the first attribute with key ``key``, if any."""
        return next((attr.value for attr in self.attributes if attr.key == key), None)


def _event_from_dict(value: Mapping[str, Any]) -> TxResultBlockEvent:
    try:
        event_type = value["type"]
        attributes = value["attributes"]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed event: {value!r}") from exc
    try:
        parsed = [
            TxResultBlockAttribute(key=str(attr["key"]), value=str(attr["value"]))
            for attr in attributes
        ]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed attribute in event: {value!r}") from exc
    return TxResultBlockEvent(type=str(event_type), attributes=parsed)


@dataclass
class TxResultBlockMsg:
    """The events emitted by a single message of a transaction."""

    msg_index: int | None
    events: list[TxResultBlockEvent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> "TxResultBlockMsg":
        """Build from a JSON-like mapping with ``msg_index`` and ``events``."""
        if not isinstance(value, Mapping) or "events" not in value:
            raise ValueError(f"malformed message log: {value!r}")
        msg_index = value.get("msg_index")
        events = value["events"]
        if not isinstance(events, list):
            raise ValueError(f"events must be a list, got {events!r}")
        return cls(
            msg_index=None if msg_index is None else int(msg_index),
            events=[_event_from_dict(event) for event in events],
        )


@dataclass
class EventAttribute:
    """A raw event attribute as reported by the node; key and value may be bytes."""

    key: bytes | str
    value: bytes | str
    index: bool = False

    @property
    def key_text(self) -> str:
        return _decode(self.key)

    @property
    def value_text(self) -> str:
        return _decode(self.value)


@dataclass
class Event:
    """A raw transaction event as reported by the node."""

    type: str
    attributes: list[EventAttribute] = field(default_factory=list)

    def to_block_event(self) -> TxResultBlockEvent:
        return TxResultBlockEvent(
            type=self.type,
            attributes=[
                TxResultBlockAttribute(key=attr.key_text, value=attr.value_text)
                for attr in self.attributes
            ],
        )


def _raw_event(value: Mapping[str, Any]) -> Event:
    return Event(
        type=str(value.get("type", "")),
        attributes=[
            EventAttribute(
                key=attr.get("key", b""),
                value=attr.get("value", b""),
                index=bool(attr.get("index", False)),
            )
            for attr in value.get("attributes", [])
        ],
    )


def _raw_log(value: Mapping[str, Any]) -> TxResultBlockMsg:
    return TxResultBlockMsg(
        msg_index=int(value.get("msg_index", 0)),
        events=[
            TxResultBlockEvent(
                type=str(event.get("type", "")),
                attributes=[
                    TxResultBlockAttribute(
                        key=str(attr.get("key", "")), value=str(attr.get("value", ""))
                    )
                    for attr in event.get("attributes", [])
                ],
            )
            for event in value.get("events", [])
        ],
    )


@dataclass
class CosmTxResponse:
    """The response from a transaction performed on a blockchain."""

    height: int = 0
    txhash: str = ""
    codespace: str = ""
    code: int = 0
    data: str = ""
    raw_log: str = ""
    logs: list[TxResultBlockMsg] = field(default_factory=list)
    info: str = ""
    gas_wanted: int = 0
    gas_used: int = 0
    timestamp: datetime = _EPOCH
    events: list[Event] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "CosmTxResponse":
        """Build from a node's raw tx response mapping.

        Raises TimestampParseError when the timestamp cannot be read.
        """
        return cls(
            height=int(raw.get("height", 0)),
            txhash=str(raw.get("txhash", "")),
            codespace=str(raw.get("codespace", "")),
            code=int(raw.get("code", 0)),
            data=str(raw.get("data", "")),
            raw_log=str(raw.get("raw_log", "")),
            logs=[_raw_log(log) for log in raw.get("logs", [])],
            info=str(raw.get("info", "")),
            gas_wanted=int(raw.get("gas_wanted", 0)),
            gas_used=int(raw.get("gas_used", 0)),
            timestamp=parse_timestamp(str(raw.get("timestamp", ""))),
            events=[_raw_event(event) for event in raw.get("events", [])],
        )

    def get_attribute_from_logs(
        self, event_type: str, attribute_key: str
    ) -> list[tuple[int, str]]:
        """Find an attribute's value in the logs, as (msg_index, value) pairs.

        Only the first event of the given type in each log is looked at.
        """
        found: list[tuple[int, str]] = []
        for log in self.logs:
            event = next((e for e in log.events if e.type == event_type), None)
            if event is None:
                continue
            value = event.get_first_attribute_value(attribute_key)
            if value is not None:
                found.append((log.msg_index or 0, value))
        return found

    def get_events(self, event_type: str) -> list[TxResultBlockEvent]:
        """Return the events of a type, from the logs or else from ``events``."""
        from_logs = [
            event for log in self.logs for event in log.events if event.type == event_type
        ]
        if from_logs:
            return from_logs
        return [event.to_block_event() for event in self.events if event.type == event_type]

    def index_events(self) -> list[TxResultBlockEvent]:
        """Return every raw event with its attributes decoded to text."""
        return [event.to_block_event() for event in self.events]

    def data_binary(self) -> bytes | None:
        """Return the data as JSON-encoded bytes, or None when empty."""
        if not self.data:
            return None
        return json.dumps(list(self.data.encode("utf-8")), separators=(",", ":")).encode()

    def event_attr_value(self, event_type: str, attr_key: str) -> str:
        """Return the first value of ``attr_key`` in events of ``event_type``."""
        for value in self._attr_values(event_type, attr_key):
            return value
        raise LookupError(
            f"event of type {event_type} does not have a value at key {attr_key}"
        )

    def event_attr_values(self, event_type: str, attr_key: str) -> list[str]:
        """Return all values of ``attr_key`` in events of ``event_type``."""
        return list(self._attr_values(event_type, attr_key))

    def _attr_values(self, event_type: str, attr_key: str):
        for event in self.events:
            if event.type != event_type:
                continue
            for attr in event.attributes:
                if attr.key_text == attr_key:
                    yield attr.value_text


_BASE = (
    r"(?P<Y>\d{4})-(?P<m>\d{1,2})-(?P<d>\d{1,2})"
    r"T(?P<H>\d{1,2}):(?P<M>\d{1,2}):(?P<S>\d{1,2})"
)
# Optional fraction of a second, read as a decimal fraction.
_PLAIN = re.compile(_BASE + r"(?:\.(?P<frac>\d+))?")
# Digits after the dot are a raw nanosecond count; the offset is ignored.
_WITH_OFFSET = re.compile(_BASE + r"\.(?P<nanos>\d{1,9})[+-]\d{2}:\d{2}")
_SHORT_Z = re.compile(_BASE + r"Z")
_SHORT_Z_NANOS = re.compile(_BASE + r"\.(?P<nanos>\d{1,9})Z")


def _to_datetime(match: re.Match[str]) -> datetime | None:
    parts = match.groupdict()
    nanos = 0
    if parts.get("frac"):
        nanos = int(parts["frac"][:9].ljust(9, "0"))
    elif parts.get("nanos"):
        nanos = int(parts["nanos"])
    try:
        return datetime(
            int(parts["Y"]),
            int(parts["m"]),
            int(parts["d"]),
            int(parts["H"]),
            int(parts["M"]),
            int(parts["S"]),
            nanos // 1000,
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def parse_timestamp(s: str) -> datetime:
    """Parse a node timestamp into a UTC datetime.

    Raises TimestampParseError when no supported layout matches.
    """
    sliced = s[: max(len(s) - 4, 0)] if "." in s else s
    attempts = (
        (_PLAIN, sliced),
        (_WITH_OFFSET, s),
        (_SHORT_Z, sliced),
        (_SHORT_Z_NANOS, s),
    )
    for pattern, text in attempts:
        match = pattern.fullmatch(text)
        if match is None:
            continue
        parsed = _to_datetime(match)
        if parsed is not None:
            return parsed
    raise TimestampParseError(s)