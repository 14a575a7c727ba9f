import urllib.error
import urllib.request

import pytest

from flux_indexer.config import MonitoringConfig
from flux_indexer.metrics import (
    DEFAULT_REGISTRY,
    INDEXER_FAILED_BLOCKS,
    CounterVec,
    GaugeVec,
    MetricsServer,
    Registry,
    new_server,
)


def test_gauge_moves_both_ways():
    gauge = GaugeVec("g_test", "help", ["indexer_name"])
    child = gauge.labels("a")
    child.inc()
    child.inc()
    child.dec()
    assert child.value == 1.0
    child.set(42)
    assert gauge.labels("a").value == 42.0


def test_labels_returns_the_same_series():
    gauge = GaugeVec("g_same", "help", ["indexer_name"])
    assert gauge.labels("x") is gauge.labels("x")
    assert gauge.labels("x") is not gauge.labels("y")


def test_wrong_number_of_labels_is_rejected():
    gauge = GaugeVec("g_labels", "help", ["indexer_name"])
    with pytest.raises(ValueError):
        gauge.labels("a", "b")


def test_counter_cannot_decrease():
    counter = CounterVec("c_test", "help", ["indexer_name"])
    counter.labels("a").inc(2)
    with pytest.raises(ValueError):
        counter.labels("a").inc(-1)
    assert counter.labels("a").value == 2.0


def test_empty_family_renders_nothing():
    assert GaugeVec("g_empty", "help", ["indexer_name"]).render() == ""


def test_render_exposition_format():
    gauge = GaugeVec("indexer_active_workers", "Number of active workers for each indexer.",
                     ["indexer_name"])
    gauge.labels("b").set(3)
    gauge.labels("a").set(0.5)
    assert gauge.render() == (
        "# HELP indexer_active_workers Number of active workers for each indexer.\n"
        "# TYPE indexer_active_workers gauge\n"
        'indexer_active_workers{indexer_name="a"} 0.5\n'
        'indexer_active_workers{indexer_name="b"} 3\n'
    )


def test_large_values_use_exponent_form():
    gauge = GaugeVec("g_large", "help", ["indexer_name"])
    gauge.labels("a").set(1_000_000)
    assert gauge.render().splitlines()[-1] == 'g_large{indexer_name="a"} 1e+06'


def test_counter_type_line():
    counter = CounterVec("c_type", "help", ["indexer_name"])
    counter.labels("a").inc()
    assert "# TYPE c_type counter\n" in counter.render()


def test_label_values_are_escaped():
    gauge = GaugeVec("g_escape", "help", ["indexer_name"])
    gauge.labels('say "hi"').set(1)
    assert 'g_escape{indexer_name="say \\"hi\\""} 1' in gauge.render()


def test_registry_renders_sorted_and_rejects_duplicates():
    registry = Registry()
    second = GaugeVec("zz_metric", "help", ["indexer_name"])
    first = GaugeVec("aa_metric", "help", ["indexer_name"])
    registry.register(second)
    registry.register(first)
    second.labels("x").set(1)
    first.labels("x").set(1)
    text = registry.render()
    assert text.index("aa_metric") < text.index("zz_metric")
    with pytest.raises(ValueError):
        registry.register(GaugeVec("aa_metric", "other", ["indexer_name"]))


def test_default_registry_holds_indexer_metrics():
    INDEXER_FAILED_BLOCKS.labels("registry-check").inc()
    assert 'indexer_failed_blocks{indexer_name="registry-check"}' in DEFAULT_REGISTRY.render()


def test_new_server_depends_on_config():
    assert new_server(None) is None
    assert new_server(MonitoringConfig(enabled=False, port=2112)) is None
    server = new_server(MonitoringConfig(enabled=True, port=2112))
    assert isinstance(server, MetricsServer)
    assert server.port == 2112


def test_server_serves_metrics():
    registry = Registry()
    gauge = registry.register(GaugeVec("served_metric", "help", ["indexer_name"]))
    gauge.labels("a").set(7)
    server = MetricsServer(0, registry)
    server.start()
    try:
        url = f"http://127.0.0.1:{server.port}"
        with urllib.request.urlopen(url + "/metrics", timeout=5) as response:
            body = response.read().decode("utf-8")
        assert body == registry.render()
        with pytest.raises(urllib.error.HTTPError) as info:
            urllib.request.urlopen(url + "/other", timeout=5)
        assert info.value.code == 404
    finally:
        server.stop()
    server.stop()
    with pytest.raises(urllib.error.URLError):
        urllib.request.urlopen(f"http://127.0.0.1:{server.port}/metrics", timeout=1)