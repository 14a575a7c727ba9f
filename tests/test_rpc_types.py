import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from flux_indexer.cosmos.abci import ABCIEvent, ABCIEventAttribute, ABCIEvents
from flux_indexer.cosmos.rpc_types import (
    BlockHeaderInfo,
    BlockResultsResponse,
    ResponseDeliverTx,
    StatusResponse,
    decode_abci_event,
    decode_abci_event_attributes,
    decode_abci_events,
    parse_events_from_tx_log,
    parse_rfc3339,
)


def b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


def test_parse_rfc3339_utc_with_nanoseconds():
    value = parse_rfc3339("2024-01-02T03:04:05.123456789Z")
    assert value == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


def test_parse_rfc3339_with_offset():
    value = parse_rfc3339("2024-01-02T05:04:05+02:00")
    assert value.utcoffset() == timedelta(hours=2)
    assert value == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("text", ["2024-01-02", "2024-13-02T03:04:05Z", "not a time"])
def test_parse_rfc3339_rejects_invalid(text):
    with pytest.raises(ValueError):
        parse_rfc3339(text)


def test_status_response_reads_quoted_heights():
    status = StatusResponse.from_dict(
        {
            "node_info": {"network": "test-chain"},
            "sync_info": {
                "latest_block_height": "120",
                "latest_block_time": "2024-01-02T03:04:05Z",
                "earliest_block_height": "5",
                "earliest_block_time": "2023-01-02T03:04:05Z",
            },
        }
    )
    assert status.node_info.network == "test-chain"
    assert status.sync_info.latest_block_height == 120
    assert status.sync_info.earliest_block_height == 5
    assert status.sync_info.latest_block_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_status_response_rejects_unquoted_height():
    with pytest.raises(ValueError):
        StatusResponse.from_dict({"sync_info": {"latest_block_height": 10}})


def test_block_header_info():
    header = BlockHeaderInfo.from_dict(
        {"chain_id": "test-chain", "height": "7", "time": "2024-01-02T03:04:05Z"}
    )
    assert header.chain_id == "test-chain"
    assert header.height == 7


def test_response_deliver_tx_fields():
    tx = ResponseDeliverTx.from_dict(
        {
            "code": 0,
            "data": base64.b64encode(b"\x01\x02").decode(),
            "txhash": "ABC",
            "log": "",
            "gas_wanted": "200",
            "gas_used": "150",
            "events": [{"type": "transfer", "attributes": [{"key": "amount", "value": "1"}]}],
        }
    )
    assert tx.data == b"\x01\x02"
    assert tx.tx_hash == "ABC"
    assert tx.gas_wanted == 200
    assert tx.gas_used == 150
    assert tx.is_ok()
    assert tx.events.find_event_with_type("transfer").find_attribute("amount").value == "1"


def test_response_deliver_tx_failed_code():
    tx = ResponseDeliverTx.from_dict({"code": 5})
    assert tx.is_ok() is False


def test_block_results_response():
    results = BlockResultsResponse.from_dict(
        {
            "height": "9",
            "txs_results": [{"code": 0, "txhash": "A"}, {"code": 1, "txhash": "B"}],
            "begin_block_events": [{"type": "begin", "attributes": []}],
            "end_block_events": None,
        }
    )
    assert results.height == 9
    assert [tx.tx_hash for tx in results.txs_results] == ["A", "B"]
    assert [event.type for event in results.begin_block_events] == ["begin"]
    assert list(results.end_block_events) == []
    assert list(results.finalize_block_events) == []


def test_parse_events_from_tx_log_adds_msg_index():
    log = json.dumps(
        [
            {"msg_index": 0, "events": [{"type": "transfer", "attributes": [{"key": "sender", "value": "a"}]}]},
            {"msg_index": 1, "events": [{"type": "message", "attributes": []}]},
        ]
    )
    events = parse_events_from_tx_log(log)
    assert [event.type for event in events] == ["transfer", "message"]
    assert events[0].attributes == [
        ABCIEventAttribute("sender", "a"),
        ABCIEventAttribute("msg_index", "0"),
    ]
    assert events[1].attributes == [ABCIEventAttribute("msg_index", "1")]


def test_parse_events_from_tx_log_rejects_bad_json():
    with pytest.raises(ValueError):
        parse_events_from_tx_log("out of gas")


def test_decode_attributes_round_trip():
    attributes = [ABCIEventAttribute("sender", b64("addr1")), ABCIEventAttribute("amount", b64("10stake"))]
    decoded = decode_abci_event_attributes(attributes)
    assert decoded == [ABCIEventAttribute("sender", "addr1"), ABCIEventAttribute("amount", "10stake")]


def test_decode_empty_inputs_unchanged():
    empty = ABCIEvents()
    assert decode_abci_events(empty) is empty
    assert decode_abci_event_attributes([]) == []


def test_decode_events_keeps_types_and_order():
    events = ABCIEvents(
        [
            ABCIEvent("first", [ABCIEventAttribute("k", b64("v1"))]),
            ABCIEvent("second", [ABCIEventAttribute("k", b64("v2"))]),
        ]
    )
    decoded = decode_abci_events(events)
    assert [event.type for event in decoded] == ["first", "second"]
    assert [event.attributes[0].value for event in decoded] == ["v1", "v2"]
    assert events[0].attributes[0].value == b64("v1")


def test_decode_event_reports_event_type_on_error():
    event = ABCIEvent("transfer", [ABCIEventAttribute("sender", "not base64!")])
    with pytest.raises(ValueError, match="decode transfer event attributes"):
        decode_abci_event(event)