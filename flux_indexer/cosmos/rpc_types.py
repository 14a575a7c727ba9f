"""Responses of the Cosmos RPC endpoints and helpers to extract their events."""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from flux_indexer.cosmos.abci import ABCIEvent, ABCIEventAttribute, ABCIEvents, ABCIMsgLog
from flux_indexer.interfaces import MAX_HEIGHT, Height

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; sub-microsecond digits are dropped."""
    if not isinstance(value, str):
        raise ValueError(f"time must be a string, got {type(value).__name__}")
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time: {value!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micro = int((fraction or "")[:6].ljust(6, "0"))
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(f"invalid RFC 3339 time: {value!r}")
        delta = timedelta(hours=hours, minutes=minutes)
        tz = timezone(-delta if offset[0] == "-" else delta)
    try:
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
        )
    except ValueError as err:
        raise ValueError(f"invalid RFC 3339 time: {value!r}") from err


def _time(value: Any) -> datetime:
    return _ZERO_TIME if value is None else parse_rfc3339(value)


def _mapping(data: Any, what: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _quoted_int(data: dict, key: str, low: int, high: int) -> int:
    """Read an integer that is sent as a JSON string."""
    value = data.get(key)
    if value is None:
        return 0
    if not isinstance(value, str) or not re.fullmatch(r"-?\d+", value):
        raise ValueError(f"invalid {key}: {value!r}")
    number = int(value)
    if not low <= number <= high:
        raise ValueError(f"{key} out of range: {value}")
    return number


def _height(data: dict, key: str) -> Height:
    return _quoted_int(data, key, 0, MAX_HEIGHT)


def _int64(data: dict, key: str) -> int:
    return _quoted_int(data, key, -(2**63), 2**63 - 1)


def _bytes(data: dict, key: str) -> bytes:
    value = data.get(key)
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        raise ValueError(f"invalid base64 in {key}: {err}") from err


@dataclass(frozen=True)
class NodeInfo:
    network: str = ""


@dataclass(frozen=True)
class SyncInfo:
    latest_block_height: Height = 0
    latest_block_time: datetime = _ZERO_TIME
    earliest_block_height: Height = 0
    earliest_block_time: datetime = _ZERO_TIME


@dataclass(frozen=True)
class StatusResponse:
    """Result of the ``status`` endpoint."""

    node_info: NodeInfo = field(default_factory=NodeInfo)
    sync_info: SyncInfo = field(default_factory=SyncInfo)

    @classmethod
    def from_dict(cls, data: Any) -> StatusResponse:
        data = _mapping(data, "status response")
        node_info = _mapping(data.get("node_info"), "node_info")
        sync_info = _mapping(data.get("sync_info"), "sync_info")
        return cls(
            node_info=NodeInfo(network=_text(node_info, "network")),
            sync_info=SyncInfo(
                latest_block_height=_height(sync_info, "latest_block_height"),
                latest_block_time=_time(sync_info.get("latest_block_time")),
                earliest_block_height=_height(sync_info, "earliest_block_height"),
                earliest_block_time=_time(sync_info.get("earliest_block_time")),
            ),
        )


@dataclass(frozen=True)
class BlockHeaderInfo:
    """The header of a block returned by the ``block`` endpoint."""

    chain_id: str = ""
    height: Height = 0
    time: datetime = _ZERO_TIME

    @classmethod
    def from_dict(cls, data: Any) -> BlockHeaderInfo:
        data = _mapping(data, "block header")
        return cls(
            chain_id=_text(data, "chain_id"),
            height=_height(data, "height"),
            time=_time(data.get("time")),
        )


@dataclass(frozen=True)
class ResponseDeliverTx:
    """The execution result of one transaction."""

    code: int = 0
    data: bytes = b""
    tx_hash: str = ""
    log: str = ""
    gas_wanted: int = 0
    gas_used: int = 0
    events: ABCIEvents = field(default_factory=ABCIEvents)

    @classmethod
    def from_dict(cls, data: Any) -> ResponseDeliverTx:
        data = _mapping(data, "tx result")
        code = data.get("code", 0)
        if code is None:
            code = 0
        if isinstance(code, bool) or not isinstance(code, int) or not 0 <= code < 2**32:
            raise ValueError(f"invalid code: {code!r}")
        return cls(
            code=code,
            data=_bytes(data, "data"),
            tx_hash=_text(data, "txhash"),
            log=_text(data, "log"),
            gas_wanted=_int64(data, "gas_wanted"),
            gas_used=_int64(data, "gas_used"),
            events=ABCIEvents.from_list(data.get("events")),
        )

    def is_ok(self) -> bool:
        return self.code == 0


@dataclass(frozen=True)
class BlockResultsResponse:
    """Result of the ``block_results`` endpoint."""

    height: Height = 0
    txs_results: list[ResponseDeliverTx] = field(default_factory=list)
    begin_block_events: ABCIEvents = field(default_factory=ABCIEvents)
    end_block_events: ABCIEvents = field(default_factory=ABCIEvents)
    finalize_block_events: ABCIEvents = field(default_factory=ABCIEvents)

    @classmethod
    def from_dict(cls, data: Any) -> BlockResultsResponse:
        data = _mapping(data, "block results")
        txs = data.get("txs_results") or []
        if not isinstance(txs, list):
            raise ValueError("txs_results must be a list")
        return cls(
            height=_height(data, "height"),
            txs_results=[ResponseDeliverTx.from_dict(item) for item in txs],
            begin_block_events=ABCIEvents.from_list(data.get("begin_block_events")),
            end_block_events=ABCIEvents.from_list(data.get("end_block_events")),
            finalize_block_events=ABCIEvents.from_list(data.get("finalize_block_events")),
        )


def parse_events_from_tx_log(log: str) -> ABCIEvents:
    """Extract the events of a JSON transaction log, tagging each with its ``msg_index``."""
    raw = json.loads(log)
    if raw is None:
        return ABCIEvents()
    if not isinstance(raw, list):
        raise ValueError(f"tx log must be a list, got {type(raw).__name__}")
    result = ABCIEvents()
    for msg_log in (ABCIMsgLog.from_dict(item) for item in raw):
        index_attribute = ABCIEventAttribute(key="msg_index", value=str(msg_log.msg_index))
        for event in msg_log.events:
            result.append(ABCIEvent(type=event.type, attributes=[*event.attributes, index_attribute]))
    return result


def decode_abci_events(events: ABCIEvents) -> ABCIEvents:
    """Return the events with their attribute values base64-decoded."""
    if not events:
        return events
    return ABCIEvents(decode_abci_event(event) for event in events)


def decode_abci_event(event: ABCIEvent) -> ABCIEvent:
    """Return a copy of ``event`` with its attribute values base64-decoded."""
    try:
        attributes = decode_abci_event_attributes(event.attributes)
    except ValueError as err:
        raise ValueError(f"decode {event.type} event attributes: {err}") from err
    return ABCIEvent(type=event.type, attributes=list(attributes))


def decode_abci_event_attributes(
    attributes: list[ABCIEventAttribute],
) -> list[ABCIEventAttribute]:
    """Decode the base64 value of every attribute; keys are kept as they are."""
    if not attributes:
        return attributes
    decoded = []
    for attribute in attributes:
        try:
            value = base64.b64decode(attribute.value, validate=True)
        except binascii.Error as err:
            raise ValueError(f"illegal base64 data: {err}") from err
        decoded.append(
            ABCIEventAttribute(key=attribute.key, value=value.decode("utf-8", errors="replace"))
        )
    return decoded