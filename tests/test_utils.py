import threading
import time

from flux_indexer.utils import copy_map, sleep_unless_cancelled


def test_copy_map():
    dst = {
        "key1": {"key2": "val2"},
        "key3": 3,
        "key4": {"key5": {"key6": 100.2, "key7": "val7"}},
    }
    src = {
        "key1": 100,
        "key4": {"key5": {"key6": "val6"}, "key8": "val8"},
    }

    copy_map(dst, src)

    assert dst == {
        "key1": 100,
        "key3": 3,
        "key4": {
            "key5": {"key6": "val6", "key7": "val7"},
            "key8": "val8",
        },
    }


def test_copy_map_replaces_map_with_scalar_and_back():
    dst = {"a": {"b": 1}, "c": 2}
    copy_map(dst, {"a": 5, "c": {"d": 3}})
    assert dst == {"a": 5, "c": {"d": 3}}


def test_copy_map_stringifies_nested_keys():
    dst = {"a": {1: "one"}}
    copy_map(dst, {"a": {2: "two"}})
    assert dst == {"a": {"1": "one", "2": "two"}}


def test_copy_map_empty_source_leaves_destination():
    dst = {"a": {"b": 1}}
    copy_map(dst, {})
    assert dst == {"a": {"b": 1}}


def test_sleep_elapses():
    assert sleep_unless_cancelled(threading.Event(), 0) is True


def test_sleep_already_cancelled():
    cancel = threading.Event()
    cancel.set()
    assert sleep_unless_cancelled(cancel, 10) is False


def test_sleep_interrupted_by_cancel():
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    started = time.monotonic()
    result = sleep_unless_cancelled(cancel, 30)
    timer.join()
    assert result is False
    assert time.monotonic() - started < 5